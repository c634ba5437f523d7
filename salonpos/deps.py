# salonpos/deps.py
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from salonpos.core.config import TRUSTED_PROXY_COUNT
from salonpos.core.database import get_db
from salonpos.core.request_context import set_request_context
from salonpos.models.account import Account
from salonpos.models.tenant import Tenant
from salonpos.services.auth import decode_access_token
from salonpos.services.errors import SalonPosError
from salonpos.services.identity_resolver import IdentityResolver
from salonpos.services.pos_client import PosClient
from salonpos.services.tenant_store import TenantStore

# Swagger "Authorize" (OAuth2 password flow) posts to this endpoint:
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")

logger = logging.getLogger(__name__)


def http_error(exc: SalonPosError) -> HTTPException:
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail(), headers=headers)


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "UNAUTHENTICATED", "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _extract_account_id(payload: Dict[str, Any]) -> Optional[str]:
    raw = payload.get("sub")
    if raw is None:
        return None
    value = str(raw).strip()
    return value or None


def get_token_payload(token: str = Depends(oauth2_scheme)) -> Dict[str, Any]:
    try:
        return decode_access_token(token)
    except ValueError:
        raise _unauthorized("Invalid or expired token")


def get_session_id(payload: Dict[str, Any] = Depends(get_token_payload)) -> str:
    return str(payload.get("sid") or payload.get("sub") or "")


def get_current_account(
    request: Request,
    payload: Dict[str, Any] = Depends(get_token_payload),
    db: Session = Depends(get_db),
) -> Account:
    """Reads the bearer token and loads the active account it names."""
    account_id = _extract_account_id(payload)
    if account_id is None:
        raise _unauthorized("Token has no subject")

    account = db.query(Account).filter(Account.id == account_id, Account.active.is_(True)).first()
    if not account:
        raise _unauthorized("Account not found")

    request.state.account = account
    set_request_context(user_id=account.id)
    return account


def get_store(db: Session = Depends(get_db)) -> TenantStore:
    return TenantStore(db)


def get_resolver(store: TenantStore = Depends(get_store)) -> IdentityResolver:
    return IdentityResolver(store)


def get_pos_client() -> PosClient:
    return PosClient()


def _log_access_denied(*, reason: str, account: Account, request: Request) -> None:
    endpoint = f"{request.method} {request.url.path}"
    logger.warning(
        "Access denied (%s): account_id=%s role=%s tenant_id=%s endpoint=%s",
        reason,
        getattr(account, "id", None),
        getattr(account, "role", None),
        getattr(account, "tenant_id", None),
        endpoint,
    )


def require_owner_tenant(
    request: Request,
    account: Account = Depends(get_current_account),
    resolver: IdentityResolver = Depends(get_resolver),
) -> Tenant:
    """The tenant owned by the caller; staff and unaffiliated accounts are refused."""
    try:
        tenant = resolver.require_owner(account)
    except SalonPosError as exc:
        _log_access_denied(reason="owner_required", account=account, request=request)
        raise http_error(exc) from exc
    request.state.tenant_id = tenant.id
    return tenant


def client_key(request: Request) -> str:
    """Address the PIN throttle counts against.

    X-Forwarded-For is only read behind TRUSTED_PROXY_COUNT proxies, and then
    only the hop the outermost trusted proxy appended.
    """
    direct = request.client.host if request.client else "unknown"
    if TRUSTED_PROXY_COUNT <= 0:
        return direct
    hops = [hop.strip() for hop in (request.headers.get("x-forwarded-for") or "").split(",") if hop.strip()]
    if len(hops) < TRUSTED_PROXY_COUNT:
        return direct
    return hops[-TRUSTED_PROXY_COUNT]
