from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from salonpos.core.database import get_db
from salonpos.deps import get_current_account, get_pos_client, get_store, http_error
from salonpos.models.account import Account
from salonpos.services.auth import session_response
from salonpos.services.errors import NeedsEmail, SalonPosError
from salonpos.services.pos_client import PosClient
from salonpos.services.pos_oauth import PosOAuthService
from salonpos.services.tenant_store import TenantStore

router = APIRouter(prefix="/api/pos", tags=["pos-connection"])

logger = logging.getLogger(__name__)


class CodeExchangePayload(BaseModel):
    code: str = Field(..., min_length=1)
    redirect_uri: str | None = None


class CompleteConnectionPayload(BaseModel):
    grant: str = Field(..., min_length=1)
    email: EmailStr


class ManualCredentialPayload(BaseModel):
    access_token: str = Field(..., min_length=10, max_length=512)


class ConnectionResponse(BaseModel):
    connected: bool
    tenant_id: int | None = None
    merchant_id: str | None = None
    name: str | None = None
    connected_at: str | None = None


def _connected(service: PosOAuthService, grant, email: str | None):
    account, tenant = service.connect_owner(grant, email)
    return {
        "status": "connected",
        **session_response(account, tenant_id=tenant.id),
        "merchant_id": tenant.pos_merchant_id,
    }


@router.post("/oauth/token")
def exchange_code(
    payload: CodeExchangePayload,
    db: Session = Depends(get_db),
    client: PosClient = Depends(get_pos_client),
):
    service = PosOAuthService(db, client)
    try:
        grant = service.exchange_code(payload.code, redirect_uri=payload.redirect_uri)
    except SalonPosError as exc:
        raise http_error(exc) from exc

    try:
        return _connected(service, grant, None)
    except NeedsEmail:
        signed = service.park_grant(grant)
        logger.info("pos connection waiting for owner email merchant_id=%s", grant.merchant_id)
        return {"status": "needs_email", "grant": signed, "merchant_id": grant.merchant_id}
    except SalonPosError as exc:
        raise http_error(exc) from exc


@router.post("/oauth/complete")
def complete_connection(
    payload: CompleteConnectionPayload,
    db: Session = Depends(get_db),
    client: PosClient = Depends(get_pos_client),
):
    service = PosOAuthService(db, client)
    try:
        grant = service.redeem_grant(payload.grant)
        return _connected(service, grant, payload.email)
    except SalonPosError as exc:
        raise http_error(exc) from exc


@router.post("/credentials", response_model=ConnectionResponse)
def submit_credentials(
    payload: ManualCredentialPayload,
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
    client: PosClient = Depends(get_pos_client),
):
    try:
        tenant = PosOAuthService(db, client).submit_credentials(account, payload.access_token)
    except SalonPosError as exc:
        raise http_error(exc) from exc
    return _connection(tenant)


@router.get("/connection", response_model=ConnectionResponse)
def connection_status(
    account: Account = Depends(get_current_account),
    store: TenantStore = Depends(get_store),
):
    tenant = store.get_tenant_by_owner(account.id)
    if tenant is None:
        return ConnectionResponse(connected=False)
    return _connection(tenant)


def _connection(tenant) -> ConnectionResponse:
    return ConnectionResponse(
        connected=tenant.has_credential,
        tenant_id=tenant.id,
        merchant_id=tenant.pos_merchant_id,
        name=tenant.name,
        connected_at=tenant.pos_connected_at.isoformat() if tenant.pos_connected_at else None,
    )
