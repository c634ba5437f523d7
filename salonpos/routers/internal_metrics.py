from __future__ import annotations

from fastapi import APIRouter, Depends

from salonpos.core.metrics import pos_call_metrics, request_metrics
from salonpos.deps import require_owner_tenant
from salonpos.models.tenant import Tenant

router = APIRouter(prefix="/internal/metrics", tags=["internal-metrics"])


@router.get("/pos")
def pos_metrics(tenant: Tenant = Depends(require_owner_tenant)):
    per_tenant = pos_call_metrics.snapshot_per_tenant()
    return {
        "tenant_id": tenant.id,
        "pos_calls": per_tenant.get(str(tenant.id), {}),
    }


@router.get("/tenants")
def tenant_metrics(tenant: Tenant = Depends(require_owner_tenant)):
    return {"tenant": request_metrics.snapshot_per_tenant().get(str(tenant.id), {})}
