from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from salonpos.deps import get_current_account, get_pos_client, get_resolver, http_error
from salonpos.models.account import Account
from salonpos.services.errors import SalonPosError
from salonpos.services.identity_resolver import IdentityResolver
from salonpos.services.pos_client import PosClient
from salonpos.services.pos_proxy import PosProxy

router = APIRouter(prefix="/api/pos", tags=["pos-proxy"])

PROXY_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]
NO_BODY_STATUSES = {204, 304}


@router.api_route("/proxy", methods=PROXY_METHODS)
async def proxy(
    request: Request,
    path: str = Query(..., description="POS API path, e.g. /v2/locations"),
    account: Account = Depends(get_current_account),
    resolver: IdentityResolver = Depends(get_resolver),
    client: PosClient = Depends(get_pos_client),
):
    body = await request.body()
    query = [(key, value) for key, value in request.query_params.multi_items() if key != "path"]
    try:
        result = await run_in_threadpool(
            PosProxy(resolver, client).forward,
            account,
            method=request.method,
            path=path,
            body=body,
            query=query,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail={"code": "INVALID_PATH", "message": str(exc)}) from exc
    except SalonPosError as exc:
        raise http_error(exc) from exc

    request.state.tenant_id = result.tenant_id
    upstream = result.response
    if upstream.status_code in NO_BODY_STATUSES:
        return Response(status_code=upstream.status_code)
    return JSONResponse(status_code=upstream.status_code, content=upstream.body)
