from __future__ import annotations

import hashlib
import hmac
import os
from typing import Optional

from passlib.context import CryptContext

from salonpos.core.config import MIN_PASSWORD_LENGTH
from salonpos.services.errors import WeakPassword

PBKDF2_PREFIX = "pbkdf2$"
PBKDF2_ITERATIONS = 120_000
PBKDF2_SALT_BYTES = 16

_pwd_context: Optional[CryptContext]

# passlib's bcrypt backend breaks on some bcrypt releases; PBKDF2 keeps signup working.
try:
    _pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
except Exception:
    _pwd_context = None


def ensure_password_strength(password: str | None) -> str:
    if password is None or len(password) < MIN_PASSWORD_LENGTH:
        raise WeakPassword(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return password


def _pbkdf2_hash(password: str, salt: bytes, iterations: int = PBKDF2_ITERATIONS) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)


def _pbkdf2_encode(password: str) -> str:
    salt = os.urandom(PBKDF2_SALT_BYTES)
    digest = _pbkdf2_hash(password, salt)
    return f"{PBKDF2_PREFIX}{PBKDF2_ITERATIONS}${salt.hex()}${digest.hex()}"


def hash_password(password: str) -> str:
    # bcrypt only looks at 72 bytes; longer secrets go through PBKDF2 so no byte is ignored.
    if _pwd_context is not None and len(password.encode("utf-8")) <= 72:
        try:
            return _pwd_context.hash(password)
        except Exception:
            pass
    return _pbkdf2_encode(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False

    if password_hash.startswith(PBKDF2_PREFIX):
        try:
            _, iter_str, salt_hex, digest_hex = password_hash.split("$", 3)
            iterations = int(iter_str)
            salt = bytes.fromhex(salt_hex)
            expected = bytes.fromhex(digest_hex)
        except ValueError:
            return False
        computed = _pbkdf2_hash(password, salt, iterations=iterations)
        return hmac.compare_digest(computed, expected)

    if _pwd_context is None:
        return False

    try:
        return _pwd_context.verify(password, password_hash)
    except Exception:
        return False
