from __future__ import annotations

from typing import Any


class SalonPosError(Exception):
    """Base for domain failures; routers turn these into HTTP responses."""

    code = "SALONPOS_ERROR"
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None, *, status_code: int | None = None, **context: Any) -> None:
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.context = context
        super().__init__(self.message)

    def to_detail(self) -> dict[str, Any]:
        detail: dict[str, Any] = {"code": self.code, "message": self.message}
        detail.update(self.context)
        return detail


class Unresolved(SalonPosError):
    code = "UNRESOLVED_TENANT"
    status_code = 401
    default_message = "No salon is linked to this account"


class NoCredential(SalonPosError):
    code = "NO_POS_CREDENTIAL"
    status_code = 401
    default_message = "POS access token not available. Reconnect the POS from the owner account."


class OwnerRequired(SalonPosError):
    code = "OWNER_REQUIRED"
    status_code = 403
    default_message = "Only the salon owner can do this"


class StaffNotFound(SalonPosError):
    code = "STAFF_NOT_FOUND"
    status_code = 404
    default_message = "Staff member not found"


class InvalidPin(SalonPosError):
    code = "INVALID_PIN"
    status_code = 400
    default_message = "Invalid PIN"


class ExpiredPin(SalonPosError):
    code = "EXPIRED_PIN"
    status_code = 400
    default_message = "PIN has expired. Ask the salon owner for a new one."


class TooManyAttempts(SalonPosError):
    code = "TOO_MANY_ATTEMPTS"
    status_code = 429
    default_message = "Too many attempts. Try again later."


class WeakPassword(SalonPosError):
    code = "WEAK_PASSWORD"
    status_code = 400
    default_message = "Password must be at least 8 characters"


class AccountConflict(SalonPosError):
    code = "ACCOUNT_CONFLICT"
    status_code = 409
    default_message = "An account with this email already exists"


class NeedsEmail(SalonPosError):
    code = "NEEDS_EMAIL"
    status_code = 400
    default_message = "An email address is required to finish connecting"


class InvalidGrant(SalonPosError):
    code = "INVALID_GRANT"
    status_code = 400
    default_message = "Connection grant is invalid or expired"


class UpstreamError(SalonPosError):
    code = "UPSTREAM_ERROR"
    status_code = 502
    default_message = "POS API request failed"


class SyncAborted(SalonPosError):
    code = "SYNC_ABORTED"
    status_code = 502
    default_message = "Sync aborted; previously synced data was kept"
