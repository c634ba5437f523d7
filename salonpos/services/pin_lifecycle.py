from __future__ import annotations

import logging
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from salonpos.core.config import PIN_TTL_HOURS
from salonpos.models.account import ROLE_STAFF, Account
from salonpos.models.staff_member import SOURCE_INVITE, STATUS_PENDING_PIN, StaffMember
from salonpos.services.audit import log_action
from salonpos.services.errors import (
    AccountConflict,
    ExpiredPin,
    InvalidPin,
    SalonPosError,
    StaffNotFound,
)
from salonpos.services.identity_resolver import IdentityResolver
from salonpos.services.passwords import ensure_password_strength, hash_password
from salonpos.services.permissions import effective_permissions, normalize_level_id
from salonpos.services.tenant_store import TenantStore

logger = logging.getLogger(__name__)

PIN_PATTERN = re.compile(r"^\d{4}$")
PIN_TTL = timedelta(hours=PIN_TTL_HOURS)
MAX_CODE_ATTEMPTS = 50


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _random_code() -> str:
    return str(1000 + secrets.randbelow(9000))


@dataclass(frozen=True)
class PinRecord:
    code: str
    issued_at: datetime

    @classmethod
    def from_staff(cls, staff: StaffMember) -> "PinRecord | None":
        if not staff.join_pin or staff.pin_created_at is None:
            return None
        return cls(code=staff.join_pin, issued_at=staff.pin_created_at)

    def expires_at(self, ttl: timedelta = PIN_TTL) -> datetime:
        return self.issued_at + ttl

    def is_live(self, now: datetime, ttl: timedelta = PIN_TTL) -> bool:
        return now - self.issued_at <= ttl


@dataclass(frozen=True)
class IssuedPin:
    staff_id: str
    code: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class PinMatch:
    staff: StaffMember
    record: PinRecord


@dataclass(frozen=True)
class JoinResult:
    account: Account
    staff: StaffMember
    tenant_id: int
    created: bool


class PinLifecycleManager:
    """Issue, preview and redeem one-time staff join PINs.

    ``now`` and ``code_factory`` are injectable so expiry and collisions
    can be exercised deterministically.
    """

    def __init__(
        self,
        db: Session,
        *,
        now: Callable[[], datetime] = _now,
        ttl: timedelta = PIN_TTL,
        code_factory: Callable[[], str] = _random_code,
    ) -> None:
        self.db = db
        self.store = TenantStore(db)
        self.resolver = IdentityResolver(self.store)
        self.now = now
        self.ttl = ttl
        self.code_factory = code_factory

    # Generate

    def generate(
        self,
        owner_account: Any,
        staff_id: str,
        *,
        display_name: str | None = None,
        email: str | None = None,
        level_id: str | None = None,
    ) -> IssuedPin:
        tenant = self.resolver.require_owner(owner_account)
        staff_id = (staff_id or "").strip()
        if not staff_id:
            raise StaffNotFound("Staff id is required", status_code=400)

        staff = self.store.get_staff(staff_id)
        if staff is None:
            staff = StaffMember(
                tenant_id=tenant.id,
                pos_team_member_id=staff_id,
                display_name=display_name,
                email=(email or "").strip().lower() or None,
                level_id=normalize_level_id(level_id),
                source=SOURCE_INVITE,
            )
            self.db.add(staff)
        elif staff.tenant_id != tenant.id:
            logger.warning(
                "pin generation refused for staff of another tenant staff_id=%s tenant_id=%s",
                staff_id,
                tenant.id,
            )
            raise StaffNotFound()
        else:
            if display_name and not staff.display_name:
                staff.display_name = display_name
            if email and not staff.email:
                staff.email = email.strip().lower()

        issued_at = self.now()
        code = self._new_code(issued_at)
        staff.status = STATUS_PENDING_PIN
        self.store.store_pin(staff, code, issued_at)
        log_action(
            self.db,
            tenant_id=tenant.id,
            actor_id=owner_account.id,
            action="staff.pin_generated",
            entity_type="staff_member",
            entity_id=staff_id,
        )
        self.db.commit()
        logger.info("join pin issued tenant_id=%s staff_id=%s", tenant.id, staff_id)
        return IssuedPin(
            staff_id=staff_id,
            code=code,
            issued_at=issued_at,
            expires_at=issued_at + self.ttl,
        )

    def _new_code(self, now: datetime) -> str:
        live_codes = {
            record.code
            for record in (PinRecord.from_staff(staff) for staff in self.store.list_staff_with_pin())
            if record is not None and record.is_live(now, self.ttl)
        }
        for _ in range(MAX_CODE_ATTEMPTS):
            code = self.code_factory()
            if code not in live_codes:
                return code
        logger.error("could not allocate a unique join pin live_codes=%s", len(live_codes))
        raise SalonPosError("Could not allocate a join PIN, try again", status_code=503)

    # Verify

    def match(self, code: str | None) -> PinMatch:
        code = (code or "").strip()
        if not PIN_PATTERN.match(code):
            raise InvalidPin("PIN must be 4 digits")

        now = self.now()
        candidates = [
            (staff, PinRecord.from_staff(staff)) for staff in self.store.find_staff_by_pin(code)
        ]
        candidates = [(staff, record) for staff, record in candidates if record is not None]
        live = [(staff, record) for staff, record in candidates if record.is_live(now, self.ttl)]

        if len(live) > 1:
            logger.warning("ambiguous join pin rejected matches=%s", len(live))
            raise InvalidPin()
        if live:
            staff, record = live[0]
            return PinMatch(staff=staff, record=record)
        if candidates:
            raise ExpiredPin()
        raise InvalidPin()

    def verify(self, code: str | None) -> dict[str, Any]:
        found = self.match(code)
        return {
            "name": found.staff.display_name,
            "email": found.staff.email,
            "staff_id": found.staff.pos_team_member_id,
            "expires_at": found.record.expires_at(self.ttl),
        }

    # Join

    def join(self, code: str | None, email: str | None, password: str | None) -> JoinResult:
        found = self.match(code)
        ensure_password_strength(password)
        normalized_email = (email or "").strip().lower()
        if not normalized_email:
            raise SalonPosError("Email is required")

        staff = found.staff
        tenant_id = staff.tenant_id
        staff_id = staff.pos_team_member_id
        level_id = normalize_level_id(staff.level_id)
        permissions = effective_permissions(level_id, staff.permission_overrides)
        display_name = staff.display_name
        joined_at = self.now()

        try:
            consumed = self.store.consume_pin(
                staff_row_id=staff.id,
                code=found.record.code,
                issued_at=found.record.issued_at,
                joined_at=joined_at,
                email=normalized_email,
            )
            if not consumed:
                logger.info("join lost the race for pin staff_id=%s", staff_id)
                raise InvalidPin()

            account = self.store.get_account_by_email(normalized_email)
            created = account is None
            if account is not None and account.is_owner:
                raise AccountConflict("This email belongs to a salon owner account")
            if account is None:
                account = Account(email=normalized_email)
                self.db.add(account)

            account.password_hash = hash_password(password)
            account.role = ROLE_STAFF
            account.display_name = display_name or account.display_name
            account.tenant_id = tenant_id
            account.staff_id = staff_id
            account.level_id = level_id
            account.permissions = permissions
            account.active = True
            self.db.flush()

            for other in self.store.list_accounts_for_staff(staff_id):
                if other.id != account.id and other.active:
                    other.active = False

            log_action(
                self.db,
                tenant_id=tenant_id,
                actor_id=account.id,
                action="staff.joined",
                entity_type="staff_member",
                entity_id=staff_id,
                meta={"created": created},
            )
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.info("join account conflict staff_id=%s", staff_id)
            raise AccountConflict() from exc
        except SalonPosError:
            self.db.rollback()
            raise

        self.db.refresh(staff)
        logger.info(
            "staff joined tenant_id=%s staff_id=%s account_id=%s created=%s",
            tenant_id,
            staff_id,
            account.id,
            created,
        )
        return JoinResult(account=account, staff=staff, tenant_id=tenant_id, created=created)
