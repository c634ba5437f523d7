from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from salonpos.deps import get_current_account, get_resolver, get_session_id, get_store, http_error
from salonpos.models.account import Account
from salonpos.services.errors import SalonPosError
from salonpos.services.identity_resolver import VIA_OWNER, IdentityResolver
from salonpos.services.permissions import effective_permissions
from salonpos.services.tenant_cache import tenant_data_cache
from salonpos.services.tenant_store import TenantStore

router = APIRouter(prefix="/api/stylist-data", tags=["stylist-data"])


def _build_payload(store: TenantStore, tenant_id: int) -> dict:
    services = [
        {
            "id": item.pos_variation_id,
            "item_id": item.pos_item_id,
            "name": item.name,
            "variation_name": item.variation_name,
            "price_cents": item.price_cents,
            "currency": item.currency,
            "duration_minutes": item.duration_minutes,
            "category_id": item.category_id,
        }
        for item in store.list_catalog(tenant_id)
    ]
    clients = [
        {
            "id": customer.pos_customer_id,
            "name": customer.display_name,
            "email": customer.email,
            "phone": customer.phone,
        }
        for customer in store.list_customers(tenant_id)
    ]
    team = [
        {
            "staff_id": staff.pos_team_member_id,
            "name": staff.display_name,
            "level_id": staff.level_id,
            "status": staff.status,
        }
        for staff in store.list_team(tenant_id)
    ]
    return {"tenant_id": tenant_id, "services": services, "clients": clients, "team": team}


@router.get("")
def stylist_data(
    request: Request,
    account: Account = Depends(get_current_account),
    session_id: str = Depends(get_session_id),
    resolver: IdentityResolver = Depends(get_resolver),
    store: TenantStore = Depends(get_store),
):
    try:
        tenant, via = resolver.find_tenant(account)
    except SalonPosError as exc:
        raise http_error(exc) from exc
    request.state.tenant_id = tenant.id

    payload = tenant_data_cache.get(session_id=session_id, tenant_id=tenant.id)
    if payload is None:
        payload = _build_payload(store, tenant.id)
        tenant_data_cache.put(session_id=session_id, tenant_id=tenant.id, value=payload)

    if via != VIA_OWNER:
        permissions = account.permissions or effective_permissions(account.level_id)
        if not permissions.get("view_client_contact", False):
            payload = {
                **payload,
                "clients": [{**client, "email": None, "phone": None} for client in payload["clients"]],
            }
    return payload
