from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from salonpos.core.config import JWT_ALGORITHM, JWT_EXPIRE_MINUTES, JWT_SECRET_KEY


def create_access_token(
    account_id: str,
    extra: Optional[Dict[str, Any]] = None,
    expires_minutes: int = JWT_EXPIRE_MINUTES,
) -> str:
    """Session token for an account.

    ``sub`` is the stable account id; ``sid`` identifies this session so
    per-session caches can be dropped on sign-out.
    """
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=expires_minutes)

    payload: Dict[str, Any] = {
        "sub": str(account_id),
        "sid": uuid.uuid4().hex,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    if extra:
        payload.update(extra)

    return jwt.encode(payload, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Returns the JWT payload or raises ValueError when invalid."""
    try:
        return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as exc:
        raise ValueError("Invalid or expired token") from exc


def session_response(account: Any, tenant_id: int | None = None) -> Dict[str, Any]:
    token = create_access_token(
        str(account.id),
        extra={"role": account.role},
    )
    return {
        "access_token": token,
        "token_type": "bearer",
        "account_id": str(account.id),
        "role": account.role,
        "tenant_id": tenant_id,
    }
