from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from salonpos.core.config import GRANT_MAX_AGE_SECONDS, GRANT_SECRET
from salonpos.models.account import ROLE_OWNER, Account
from salonpos.models.pending_grant import PendingPosGrant
from salonpos.models.tenant import Tenant
from salonpos.services.audit import log_action
from salonpos.services.errors import AccountConflict, InvalidGrant, NeedsEmail, OwnerRequired
from salonpos.services.pos_client import PosClient
from salonpos.services.tenant_store import TenantStore

logger = logging.getLogger(__name__)

GRANT_SALT = "pos-connect-grant"


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _serializer() -> URLSafeTimedSerializer:
    if not GRANT_SECRET:
        raise RuntimeError("GRANT_SECRET is not configured.")
    return URLSafeTimedSerializer(GRANT_SECRET, salt=GRANT_SALT)


@dataclass(frozen=True)
class TokenGrant:
    access_token: str
    merchant_id: str | None
    email: str | None = None

    def __repr__(self) -> str:
        return f"TokenGrant(merchant_id={self.merchant_id!r}, email={self.email!r})"


class PosOAuthService:
    """Connect an owner's POS account and bind its credential to their tenant."""

    def __init__(self, db: Session, client: PosClient) -> None:
        self.db = db
        self.client = client
        self.store = TenantStore(db)

    def exchange_code(self, code: str, *, redirect_uri: str | None = None) -> TokenGrant:
        body = self.client.exchange_code(code, redirect_uri=redirect_uri)
        access_token = body["access_token"]
        merchant_id = body.get("merchant_id")
        email = self.client.fetch_owner_email(access_token)
        logger.info("pos code exchanged merchant_id=%s email_known=%s", merchant_id, bool(email))
        return TokenGrant(access_token=access_token, merchant_id=merchant_id, email=email)

    def connect_owner(self, grant: TokenGrant, email: str | None = None) -> tuple[Account, Tenant]:
        """Bind the grant to its owner account.

        The email reported by the POS wins. An email typed by the caller is only
        good for creating a new owner; it never unlocks an existing account.
        """
        verified = bool(grant.email)
        owner_email = ((grant.email if verified else email) or "").strip().lower()
        if not owner_email:
            raise NeedsEmail()

        account = self.store.get_account_by_email(owner_email)
        if account is not None and not account.is_owner:
            raise AccountConflict("This email belongs to a staff account")
        if account is not None and not verified:
            logger.warning("unverified email matches existing owner account_id=%s", account.id)
            raise AccountConflict("This email already has an account; sign in to reconnect")

        try:
            if account is None:
                account = Account(email=owner_email, role=ROLE_OWNER)
                self.db.add(account)
                self.db.flush()
            self._warn_if_merchant_shared(grant.merchant_id, account.id)
            tenant = self.store.upsert_tenant_credential(
                owner_id=account.id,
                merchant_id=grant.merchant_id,
                access_token=grant.access_token,
                now=_now(),
            )
            log_action(
                self.db,
                tenant_id=tenant.id,
                actor_id=account.id,
                action="pos.connected",
                entity_type="tenant",
                entity_id=str(tenant.id),
                meta={"merchant_id": grant.merchant_id, "method": "oauth"},
            )
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise AccountConflict() from exc

        logger.info("owner connected tenant_id=%s account_id=%s", tenant.id, account.id)
        return account, tenant

    def submit_credentials(self, account: Any, access_token: str) -> Tenant:
        """Manual token entry by a signed-in owner. The token is checked against the POS first."""
        if getattr(account, "staff_id", None) or (
            getattr(account, "tenant_id", None) is not None and not account.is_owner
        ):
            raise OwnerRequired()

        token = (access_token or "").strip()
        merchant = self.client.fetch_merchant(token)
        merchant_id = merchant.get("id")
        self._warn_if_merchant_shared(merchant_id, account.id)
        account.role = ROLE_OWNER
        tenant = self.store.upsert_tenant_credential(
            owner_id=account.id,
            merchant_id=merchant_id,
            access_token=token,
            now=_now(),
            name=merchant.get("business_name"),
        )
        log_action(
            self.db,
            tenant_id=tenant.id,
            actor_id=account.id,
            action="pos.connected",
            entity_type="tenant",
            entity_id=str(tenant.id),
            meta={"merchant_id": merchant_id, "method": "manual"},
        )
        self.db.commit()
        logger.info("pos credential stored manually tenant_id=%s", tenant.id)
        return tenant

    # Pending grants

    def park_grant(self, grant: TokenGrant) -> str:
        pending = PendingPosGrant(
            id=uuid.uuid4().hex,
            pos_merchant_id=grant.merchant_id,
            pos_access_token=grant.access_token,
        )
        self.db.add(pending)
        self.db.commit()
        return _serializer().dumps({"grant_id": pending.id})

    def redeem_grant(self, signed_grant: str) -> TokenGrant:
        try:
            payload = _serializer().loads(signed_grant, max_age=GRANT_MAX_AGE_SECONDS)
        except (BadSignature, SignatureExpired) as exc:
            raise InvalidGrant() from exc

        grant_id = payload.get("grant_id") if isinstance(payload, dict) else None
        pending = (
            self.db.query(PendingPosGrant)
            .filter(PendingPosGrant.id == str(grant_id), PendingPosGrant.consumed_at.is_(None))
            .first()
        )
        if pending is None:
            raise InvalidGrant()
        pending.consumed_at = _now()
        self.db.flush()
        return TokenGrant(access_token=pending.pos_access_token, merchant_id=pending.pos_merchant_id)

    def _warn_if_merchant_shared(self, merchant_id: str | None, owner_id: str) -> None:
        if not merchant_id:
            return
        other = (
            self.db.query(Tenant)
            .filter(Tenant.pos_merchant_id == merchant_id, Tenant.owner_user_id != str(owner_id))
            .first()
        )
        if other is not None:
            logger.warning(
                "merchant already linked to another tenant merchant_id=%s tenant_id=%s",
                merchant_id,
                other.id,
            )
