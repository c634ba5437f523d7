from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from salonpos.core.request_context import set_request_context
from salonpos.models.tenant import Tenant
from salonpos.services.errors import NoCredential, OwnerRequired, Unresolved
from salonpos.services.tenant_store import TenantStore

logger = logging.getLogger(__name__)

VIA_OWNER = "owner"
VIA_METADATA = "metadata"
VIA_ROSTER = "roster"


@dataclass(frozen=True)
class ResolvedTenant:
    tenant_id: int
    pos_token: str
    via: str
    merchant_id: str | None = None

    @property
    def is_owner(self) -> bool:
        return self.via == VIA_OWNER

    def __repr__(self) -> str:
        # keep the credential out of reprs and tracebacks
        return f"ResolvedTenant(tenant_id={self.tenant_id}, via={self.via!r}, merchant_id={self.merchant_id!r})"


class IdentityResolver:
    """Map a caller to the tenant, and tenant credential, that authorizes it.

    Order: the caller owns a tenant; the caller's profile names a tenant;
    the caller's staff id is on a tenant's roster. First hit wins. Nothing
    is cached across calls so revoked roster entries take effect at once.
    """

    def __init__(self, store: TenantStore) -> None:
        self.store = store

    def find_tenant(self, account: Any) -> tuple[Tenant, str]:
        account_id = str(getattr(account, "id", "") or "")
        if not account_id:
            raise Unresolved()

        tenant = self.store.get_tenant_by_owner(account_id)
        if tenant is not None:
            return tenant, VIA_OWNER

        metadata_tenant_id = getattr(account, "tenant_id", None)
        if metadata_tenant_id is not None:
            tenant = self.store.get_tenant(int(metadata_tenant_id))
            if tenant is not None:
                return tenant, VIA_METADATA
            logger.warning(
                "account metadata points to a missing tenant account_id=%s tenant_id=%s",
                account_id,
                metadata_tenant_id,
            )

        staff_id = getattr(account, "staff_id", None)
        if staff_id:
            tenant = self.store.get_tenant_by_staff_id(str(staff_id))
            if tenant is not None:
                return tenant, VIA_ROSTER

        logger.info("tenant resolution failed account_id=%s", account_id)
        raise Unresolved()

    def resolve(self, account: Any) -> ResolvedTenant:
        tenant, via = self.find_tenant(account)
        set_request_context(tenant_id=str(tenant.id))
        if not tenant.has_credential:
            logger.info("tenant has no live POS credential tenant_id=%s via=%s", tenant.id, via)
            raise NoCredential(tenant_id=tenant.id)
        return ResolvedTenant(
            tenant_id=tenant.id,
            pos_token=tenant.pos_access_token,
            via=via,
            merchant_id=tenant.pos_merchant_id,
        )

    def require_owner(self, account: Any) -> Tenant:
        """The tenant the caller owns. Staff and strangers get OwnerRequired."""
        account_id = str(getattr(account, "id", "") or "")
        tenant = self.store.get_tenant_by_owner(account_id) if account_id else None
        if tenant is None:
            raise OwnerRequired()
        set_request_context(tenant_id=str(tenant.id))
        return tenant
