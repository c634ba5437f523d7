from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from salonpos.core.database import get_db
from salonpos.deps import get_current_account, get_pos_client, get_resolver, get_store, http_error
from salonpos.models.account import Account
from salonpos.models.sync_run import SYNC_SUCCEEDED, SyncRun
from salonpos.services.errors import SalonPosError
from salonpos.services.identity_resolver import IdentityResolver
from salonpos.services.pos_client import PosClient
from salonpos.services.sync_jobs import SYNC_JOBS
from salonpos.services.tenant_store import TenantStore

router = APIRouter(prefix="/api/pos/sync", tags=["pos-sync"])


def _serialize_run(run: SyncRun) -> dict:
    return {
        "run_id": run.id,
        "kind": run.kind,
        "status": run.status,
        "fully_synced": run.status == SYNC_SUCCEEDED,
        "row_count": run.row_count,
        "error": run.error,
        "started_at": run.started_at.isoformat() if run.started_at else None,
        "finished_at": run.finished_at.isoformat() if run.finished_at else None,
    }


@router.get("/status")
def sync_status(
    request: Request,
    account: Account = Depends(get_current_account),
    resolver: IdentityResolver = Depends(get_resolver),
    store: TenantStore = Depends(get_store),
):
    try:
        tenant, _via = resolver.find_tenant(account)
    except SalonPosError as exc:
        raise http_error(exc) from exc
    request.state.tenant_id = tenant.id

    latest = store.latest_sync_runs(tenant.id)
    return {
        "tenant_id": tenant.id,
        "runs": {kind: _serialize_run(latest[kind]) if kind in latest else None for kind in SYNC_JOBS},
    }


@router.post("/{kind}")
def run_sync(
    kind: str,
    account: Account = Depends(get_current_account),
    db: Session = Depends(get_db),
    client: PosClient = Depends(get_pos_client),
):
    job_class = SYNC_JOBS.get(kind)
    if job_class is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "UNKNOWN_SYNC", "message": f"Unknown sync '{kind}'", "available": sorted(SYNC_JOBS)},
        )

    try:
        run = job_class(db, client).run(account)
    except SalonPosError as exc:
        raise http_error(exc) from exc
    return _serialize_run(run)
