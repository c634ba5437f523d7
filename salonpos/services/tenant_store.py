from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from salonpos.models.account import Account
from salonpos.models.staff_member import (
    SOURCE_ROSTER,
    STATUS_INVITED,
    STATUS_JOINED,
    StaffMember,
)
from salonpos.models.sync_run import SyncRun
from salonpos.models.synced_catalog_item import SyncedCatalogItem
from salonpos.models.synced_customer import SyncedCustomer
from salonpos.models.tenant import Tenant

logger = logging.getLogger(__name__)

_IN_CHUNK = 500


def _chunks(values: Sequence[str], size: int = _IN_CHUNK) -> Iterable[Sequence[str]]:
    for start in range(0, len(values), size):
        yield values[start : start + size]


class TenantStore:
    """Persistence for tenants, staff, PIN records and synced POS data.

    Methods only flush; the caller owns the transaction.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    # Tenants

    def get_tenant(self, tenant_id: int) -> Tenant | None:
        return self.db.query(Tenant).filter(Tenant.id == tenant_id).first()

    def get_tenant_by_owner(self, owner_id: str) -> Tenant | None:
        return self.db.query(Tenant).filter(Tenant.owner_user_id == str(owner_id)).first()

    def get_tenant_by_staff_id(self, staff_id: str) -> Tenant | None:
        staff = self.get_staff(staff_id)
        if staff is None:
            return None
        return self.get_tenant(staff.tenant_id)

    def upsert_tenant_credential(
        self,
        *,
        owner_id: str,
        merchant_id: str | None,
        access_token: str,
        now: datetime,
        name: str | None = None,
    ) -> Tenant:
        tenant = self.get_tenant_by_owner(owner_id)
        if tenant is None:
            tenant = Tenant(owner_user_id=str(owner_id))
            self.db.add(tenant)
        tenant.pos_access_token = access_token
        tenant.pos_connected_at = now
        if merchant_id:
            tenant.pos_merchant_id = merchant_id
        if name:
            tenant.name = name
        self.db.flush()
        return tenant

    # Accounts

    def get_account(self, account_id: str) -> Account | None:
        return self.db.query(Account).filter(Account.id == str(account_id)).first()

    def get_account_by_email(self, email: str) -> Account | None:
        normalized = (email or "").strip().lower()
        return self.db.query(Account).filter(func.lower(Account.email) == normalized).first()

    def list_accounts_for_staff(self, staff_id: str) -> list[Account]:
        return self.db.query(Account).filter(Account.staff_id == staff_id).all()

    # Staff

    def get_staff(self, staff_id: str) -> StaffMember | None:
        return self.db.query(StaffMember).filter(StaffMember.pos_team_member_id == str(staff_id)).first()

    def list_team(self, tenant_id: int) -> list[StaffMember]:
        return (
            self.db.query(StaffMember)
            .filter(StaffMember.tenant_id == tenant_id)
            .order_by(StaffMember.display_name.asc(), StaffMember.id.asc())
            .all()
        )

    def list_staff_with_pin(self) -> list[StaffMember]:
        return self.db.query(StaffMember).filter(StaffMember.join_pin.isnot(None)).all()

    def find_staff_by_pin(self, code: str) -> list[StaffMember]:
        """Every staff row, across all tenants, currently holding ``code``."""
        return (
            self.db.query(StaffMember)
            .filter(StaffMember.join_pin == code, StaffMember.pin_created_at.isnot(None))
            .all()
        )

    def store_pin(self, staff: StaffMember, code: str, issued_at: datetime) -> StaffMember:
        staff.join_pin = code
        staff.pin_created_at = issued_at
        self.db.flush()
        return staff

    def consume_pin(
        self,
        *,
        staff_row_id: int,
        code: str,
        issued_at: datetime,
        joined_at: datetime,
        email: str,
    ) -> bool:
        """Clear the PIN only if the row still holds this exact issuance.

        Returns False when another join (or a reissue) got there first.
        """
        updated = (
            self.db.query(StaffMember)
            .filter(
                StaffMember.id == staff_row_id,
                StaffMember.join_pin == code,
                StaffMember.pin_created_at == issued_at,
            )
            .update(
                {
                    StaffMember.join_pin: None,
                    StaffMember.pin_created_at: None,
                    StaffMember.joined_at: joined_at,
                    StaffMember.status: STATUS_JOINED,
                    StaffMember.email: email,
                },
                synchronize_session="fetch",
            )
        )
        return updated == 1

    # Synced POS data

    def _existing_by_key(self, model, key_column, tenant_id: int, keys: Sequence[str]) -> dict[str, Any]:
        existing: dict[str, Any] = {}
        for chunk in _chunks(list(keys)):
            rows = (
                self.db.query(model)
                .filter(model.tenant_id == tenant_id, key_column.in_(list(chunk)))
                .all()
            )
            for row in rows:
                existing[getattr(row, key_column.key)] = row
        return existing

    def _upsert(self, model, key_column, tenant_id: int, rows: Sequence[dict[str, Any]]) -> int:
        key_name = key_column.key
        keys = [row[key_name] for row in rows]
        existing = self._existing_by_key(model, key_column, tenant_id, keys)
        for row in rows:
            record = existing.get(row[key_name])
            if record is None:
                record = model(tenant_id=tenant_id, **row)
                self.db.add(record)
                existing[row[key_name]] = record
                continue
            for field, value in row.items():
                setattr(record, field, value)
        self.db.flush()
        return len(existing)

    def upsert_catalog(self, tenant_id: int, rows: Sequence[dict[str, Any]]) -> int:
        return self._upsert(SyncedCatalogItem, SyncedCatalogItem.pos_variation_id, tenant_id, rows)

    def upsert_customers(self, tenant_id: int, rows: Sequence[dict[str, Any]]) -> int:
        return self._upsert(SyncedCustomer, SyncedCustomer.pos_customer_id, tenant_id, rows)

    def upsert_team(self, tenant_id: int, rows: Sequence[dict[str, Any]]) -> int:
        """Roster upsert. PIN, level, overrides and status of known rows are left alone."""
        keys = [row["pos_team_member_id"] for row in rows]
        existing: dict[str, StaffMember] = {}
        for chunk in _chunks(keys):
            for staff in (
                self.db.query(StaffMember).filter(StaffMember.pos_team_member_id.in_(list(chunk))).all()
            ):
                existing[staff.pos_team_member_id] = staff

        written = 0
        for row in rows:
            staff = existing.get(row["pos_team_member_id"])
            if staff is None:
                staff = StaffMember(
                    tenant_id=tenant_id,
                    pos_team_member_id=row["pos_team_member_id"],
                    display_name=row.get("display_name"),
                    email=row.get("email"),
                    status=STATUS_INVITED,
                    source=SOURCE_ROSTER,
                )
                self.db.add(staff)
                existing[staff.pos_team_member_id] = staff
                written += 1
                continue
            if staff.tenant_id != tenant_id:
                logger.warning(
                    "team member belongs to another tenant; skipped staff_id=%s tenant_id=%s owner_tenant_id=%s",
                    staff.pos_team_member_id,
                    tenant_id,
                    staff.tenant_id,
                )
                continue
            if row.get("display_name"):
                staff.display_name = row["display_name"]
            if row.get("email") and not staff.email:
                staff.email = row["email"]
            written += 1
        self.db.flush()
        return written

    def list_catalog(self, tenant_id: int) -> list[SyncedCatalogItem]:
        return (
            self.db.query(SyncedCatalogItem)
            .filter(SyncedCatalogItem.tenant_id == tenant_id)
            .order_by(SyncedCatalogItem.name.asc(), SyncedCatalogItem.id.asc())
            .all()
        )

    def list_customers(self, tenant_id: int) -> list[SyncedCustomer]:
        return (
            self.db.query(SyncedCustomer)
            .filter(SyncedCustomer.tenant_id == tenant_id)
            .order_by(SyncedCustomer.display_name.asc(), SyncedCustomer.id.asc())
            .all()
        )

    # Sync runs

    def latest_sync_runs(self, tenant_id: int) -> dict[str, SyncRun]:
        runs = (
            self.db.query(SyncRun)
            .filter(SyncRun.tenant_id == tenant_id)
            .order_by(SyncRun.id.desc())
            .all()
        )
        latest: dict[str, SyncRun] = {}
        for run in runs:
            latest.setdefault(run.kind, run)
        return latest
