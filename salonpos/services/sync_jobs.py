from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from salonpos.core.config import POS_SYNC_PAGE_LIMIT
from salonpos.models.sync_run import SYNC_FAILED, SYNC_RUNNING, SYNC_SUCCEEDED, SyncRun
from salonpos.services.errors import SalonPosError, SyncAborted
from salonpos.services.identity_resolver import IdentityResolver, ResolvedTenant
from salonpos.services.pos_client import PosClient
from salonpos.services.tenant_cache import TenantDataCache, tenant_data_cache
from salonpos.services.tenant_store import TenantStore

logger = logging.getLogger(__name__)

SYNC_KIND_CATALOG = "catalog"
SYNC_KIND_CUSTOMERS = "customers"
SYNC_KIND_TEAM = "team"

DEFAULT_SERVICE_NAME = "Unnamed Service"
DEFAULT_CUSTOMER_NAME = "Client"
DEFAULT_TEAM_MEMBER_NAME = "Team member"
DEFAULT_CURRENCY = "USD"


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _full_name(given: str | None, family: str | None) -> str:
    return " ".join(part.strip() for part in (given, family) if part and part.strip())


def duration_minutes(service_duration_ms: Any) -> int | None:
    if service_duration_ms in (None, ""):
        return None
    try:
        millis = int(service_duration_ms)
    except (TypeError, ValueError):
        return None
    # half-up, so 90s becomes 2 minutes
    return (millis + 30_000) // 60_000


def _category_id(item_data: dict[str, Any]) -> str | None:
    if item_data.get("category_id"):
        return item_data["category_id"]
    categories = item_data.get("categories") or []
    if categories and categories[0].get("id"):
        return categories[0]["id"]
    reporting = item_data.get("reporting_category") or {}
    return reporting.get("id")


def _catalog_row(item: dict[str, Any], variation: dict[str, Any]) -> dict[str, Any]:
    item_data = item.get("item_data") or {}
    variation_data = variation.get("item_variation_data") or {}
    price = variation_data.get("price_money") or {}
    amount = price.get("amount")
    return {
        "pos_item_id": item.get("id"),
        "pos_variation_id": variation["id"],
        "name": item_data.get("name") or DEFAULT_SERVICE_NAME,
        "variation_name": variation_data.get("name"),
        "price_cents": int(amount) if amount is not None else None,
        "currency": price.get("currency") or DEFAULT_CURRENCY,
        "duration_minutes": duration_minutes(variation_data.get("service_duration")),
        "category_id": _category_id(item_data),
    }


def flatten_catalog(objects: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """One row per variation.

    Each item contributes its embedded variations, then any top-level
    ITEM_VARIATION objects pointing at it. The first occurrence of a
    variation id wins.
    """
    objects = list(objects)
    items = [obj for obj in objects if obj.get("type") == "ITEM" and not obj.get("is_deleted")]
    by_item: dict[str, list[dict[str, Any]]] = {}
    for obj in objects:
        if obj.get("type") != "ITEM_VARIATION" or obj.get("is_deleted"):
            continue
        item_id = (obj.get("item_variation_data") or {}).get("item_id")
        if item_id:
            by_item.setdefault(item_id, []).append(obj)

    rows: list[dict[str, Any]] = []
    seen: set[str] = set()
    for item in items:
        embedded = (item.get("item_data") or {}).get("variations") or []
        for variation in [*embedded, *by_item.get(item.get("id"), [])]:
            variation_id = variation.get("id")
            if not variation_id or variation_id in seen:
                continue
            seen.add(variation_id)
            rows.append(_catalog_row(item, variation))
    return rows


def customer_rows(customers: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    seen: set[str] = set()
    for customer in customers:
        customer_id = customer.get("id")
        if not customer_id or customer_id in seen:
            continue
        seen.add(customer_id)
        rows.append(
            {
                "pos_customer_id": customer_id,
                "display_name": _full_name(customer.get("given_name"), customer.get("family_name"))
                or DEFAULT_CUSTOMER_NAME,
                "email": customer.get("email_address"),
                "phone": customer.get("phone_number"),
            }
        )
    return rows


def team_rows(members: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    seen: set[str] = set()
    for member in members:
        member_id = member.get("id")
        if not member_id or member_id in seen:
            continue
        seen.add(member_id)
        email = (member.get("email_address") or "").strip().lower() or None
        rows.append(
            {
                "pos_team_member_id": member_id,
                "display_name": _full_name(member.get("given_name"), member.get("family_name"))
                or DEFAULT_TEAM_MEMBER_NAME,
                "email": email,
            }
        )
    return rows


class SyncJob:
    """Pull one POS collection into the tenant's tables.

    The run is all-or-nothing: every page is fetched before anything is
    written, and a failure leaves rows from earlier runs in place.
    """

    kind = ""

    def __init__(self, db: Session, client: PosClient, *, cache: TenantDataCache = tenant_data_cache) -> None:
        self.db = db
        self.client = client
        self.cache = cache
        self.store = TenantStore(db)
        self.resolver = IdentityResolver(self.store)

    def fetch(self, resolved: ResolvedTenant) -> list[dict[str, Any]]:
        raise NotImplementedError

    def transform(self, raw: list[dict[str, Any]]) -> list[dict[str, Any]]:
        raise NotImplementedError

    def upsert(self, tenant_id: int, rows: list[dict[str, Any]]) -> int:
        raise NotImplementedError

    def run(self, account: Any) -> SyncRun:
        resolved = self.resolver.resolve(account)
        run = SyncRun(tenant_id=resolved.tenant_id, kind=self.kind, status=SYNC_RUNNING, started_at=_now())
        self.db.add(run)
        self.db.commit()
        run_id = run.id
        logger.info(
            "sync started kind=%s tenant_id=%s run_id=%s",
            self.kind,
            resolved.tenant_id,
            run_id,
            extra={"sync_kind": self.kind},
        )

        try:
            raw = self.fetch(resolved)
            rows = self.transform(raw)
            count = self.upsert(resolved.tenant_id, rows)
            run.status = SYNC_SUCCEEDED
            run.row_count = count
            run.finished_at = _now()
            self.db.commit()
        except SalonPosError as exc:
            self._mark_failed(run_id, exc.message)
            if isinstance(exc, SyncAborted):
                raise
            raise SyncAborted(exc.message, status_code=exc.status_code) from exc
        except SQLAlchemyError as exc:
            logger.exception("sync write failed kind=%s tenant_id=%s", self.kind, resolved.tenant_id)
            self._mark_failed(run_id, exc.__class__.__name__)
            raise SyncAborted("Sync could not be saved", status_code=500) from exc

        self.cache.invalidate_tenant(resolved.tenant_id)
        logger.info(
            "sync finished kind=%s tenant_id=%s rows=%s",
            self.kind,
            resolved.tenant_id,
            count,
            extra={"sync_kind": self.kind},
        )
        return run

    def _mark_failed(self, run_id: int, error: str) -> None:
        self.db.rollback()
        run = self.db.query(SyncRun).filter(SyncRun.id == run_id).first()
        if run is None:
            return
        run.status = SYNC_FAILED
        run.error = error[:1000]
        run.finished_at = _now()
        self.db.commit()
        logger.warning(
            "sync failed kind=%s tenant_id=%s run_id=%s error=%s",
            self.kind,
            run.tenant_id,
            run_id,
            error,
            extra={"sync_kind": self.kind},
        )


class CatalogSync(SyncJob):
    kind = SYNC_KIND_CATALOG

    def fetch(self, resolved: ResolvedTenant) -> list[dict[str, Any]]:
        return self.client.fetch_all_pages(
            "/v2/catalog/list",
            token=resolved.pos_token,
            items_key="objects",
            params={"types": "ITEM,ITEM_VARIATION"},
            tenant_id=resolved.tenant_id,
        )

    def transform(self, raw: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return flatten_catalog(raw)

    def upsert(self, tenant_id: int, rows: list[dict[str, Any]]) -> int:
        return self.store.upsert_catalog(tenant_id, rows)


class CustomerSync(SyncJob):
    kind = SYNC_KIND_CUSTOMERS

    def fetch(self, resolved: ResolvedTenant) -> list[dict[str, Any]]:
        return self.client.fetch_all_pages(
            "/v2/customers",
            token=resolved.pos_token,
            items_key="customers",
            params={"limit": POS_SYNC_PAGE_LIMIT},
            tenant_id=resolved.tenant_id,
        )

    def transform(self, raw: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return customer_rows(raw)

    def upsert(self, tenant_id: int, rows: list[dict[str, Any]]) -> int:
        return self.store.upsert_customers(tenant_id, rows)


class TeamSync(SyncJob):
    kind = SYNC_KIND_TEAM

    def fetch(self, resolved: ResolvedTenant) -> list[dict[str, Any]]:
        return self.client.fetch_all_pages(
            "/v2/team-members/search",
            token=resolved.pos_token,
            items_key="team_members",
            method="POST",
            body={"query": {"filter": {"status": "ACTIVE"}}, "limit": POS_SYNC_PAGE_LIMIT},
            tenant_id=resolved.tenant_id,
        )

    def transform(self, raw: list[dict[str, Any]]) -> list[dict[str, Any]]:
        return team_rows(raw)

    def upsert(self, tenant_id: int, rows: list[dict[str, Any]]) -> int:
        return self.store.upsert_team(tenant_id, rows)


SYNC_JOBS: dict[str, type[SyncJob]] = {
    SYNC_KIND_CATALOG: CatalogSync,
    SYNC_KIND_CUSTOMERS: CustomerSync,
    SYNC_KIND_TEAM: TeamSync,
}
