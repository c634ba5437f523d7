# salonpos/routers/auth.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from salonpos.core.database import get_db
from salonpos.deps import get_current_account, get_resolver, get_session_id
from salonpos.models.account import Account
from salonpos.services.auth import session_response
from salonpos.services.errors import Unresolved
from salonpos.services.identity_resolver import IdentityResolver
from salonpos.services.passwords import verify_password
from salonpos.services.tenant_cache import tenant_data_cache
from salonpos.services.tenant_store import TenantStore

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger(__name__)


class LoginPayload(BaseModel):
    email: EmailStr
    password: str


def _authenticate(db: Session, email: str, password: str) -> Account:
    account = TenantStore(db).get_account_by_email(email)
    if not account or not account.active or not verify_password(password, account.password_hash):
        logger.info("login rejected email_domain=%s", email.split("@")[-1])
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "INVALID_CREDENTIALS", "message": "Invalid email or password"},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return account


def _tenant_id_for(db: Session, account: Account) -> int | None:
    try:
        tenant, _via = IdentityResolver(TenantStore(db)).find_tenant(account)
    except Unresolved:
        return None
    return tenant.id


@router.post("/login")
def login(payload: LoginPayload, db: Session = Depends(get_db)):
    account = _authenticate(db, payload.email, payload.password)
    return session_response(account, tenant_id=_tenant_id_for(db, account))


@router.post("/token")
def token(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
    """Endpoint used by the Swagger UI Authorize button (form fields username/password)."""
    account = _authenticate(db, form_data.username, form_data.password)
    return session_response(account, tenant_id=_tenant_id_for(db, account))


@router.post("/logout")
def logout(
    session_id: str = Depends(get_session_id),
    _account: Account = Depends(get_current_account),
):
    cleared = tenant_data_cache.invalidate_session(session_id)
    return {"ok": True, "cleared_entries": cleared}


@router.get("/me")
def me(
    account: Account = Depends(get_current_account),
    resolver: IdentityResolver = Depends(get_resolver),
):
    tenant_id = None
    via = None
    has_pos_credential = False
    try:
        tenant, via = resolver.find_tenant(account)
        tenant_id = tenant.id
        has_pos_credential = tenant.has_credential
    except Unresolved:
        pass

    return {
        "id": account.id,
        "email": account.email,
        "role": account.role,
        "display_name": account.display_name,
        "staff_id": account.staff_id,
        "level_id": account.level_id,
        "permissions": account.permissions or {},
        "tenant_id": tenant_id,
        "resolved_via": via,
        "has_pos_credential": has_pos_credential,
    }
