from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from salonpos.core.config import PIN_ATTEMPT_WINDOW_MINUTES, PIN_LOCK_MINUTES, PIN_MAX_FAILED_ATTEMPTS
from salonpos.models.pin_attempt import PinAttempt

MAX_FAILED_ATTEMPTS = PIN_MAX_FAILED_ATTEMPTS
ATTEMPT_WINDOW = timedelta(minutes=PIN_ATTEMPT_WINDOW_MINUTES)
LOCK_DURATION = timedelta(minutes=PIN_LOCK_MINUTES)


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_pin_attempt(db: Session, client_key: str) -> Optional[PinAttempt]:
    return db.query(PinAttempt).filter(PinAttempt.client_key == client_key).first()


def is_locked(attempt: PinAttempt, now: Optional[datetime] = None) -> bool:
    now = now or _now()
    if attempt.locked_until is None:
        return False
    return attempt.locked_until > now


def check_pin_lock(db: Session, client_key: str) -> Tuple[bool, Optional[datetime]]:
    attempt = get_pin_attempt(db, client_key)
    if attempt is not None and is_locked(attempt):
        return True, attempt.locked_until
    return False, None


def register_failed_pin(db: Session, client_key: str) -> Tuple[PinAttempt, bool]:
    now = _now()
    attempt = get_pin_attempt(db, client_key)
    if attempt is None:
        attempt = PinAttempt(
            client_key=client_key,
            failed_count=1,
            first_failed_at=now,
            last_failed_at=now,
        )
        db.add(attempt)
    else:
        if attempt.first_failed_at is None or (now - attempt.first_failed_at) > ATTEMPT_WINDOW:
            attempt.failed_count = 0
            attempt.first_failed_at = now
            attempt.locked_until = None
        attempt.failed_count += 1
        attempt.last_failed_at = now

    locked = False
    if attempt.failed_count >= MAX_FAILED_ATTEMPTS:
        attempt.locked_until = now + LOCK_DURATION
        locked = True

    return attempt, locked


def clear_pin_attempts(db: Session, client_key: str) -> None:
    attempt = get_pin_attempt(db, client_key)
    if attempt is None:
        return
    db.delete(attempt)
