from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from salonpos.core.metrics import request_metrics
from salonpos.core.request_context import clear_request_context, set_request_context

logger = logging.getLogger(__name__)


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        set_request_context(request_id=request_id)

        status_code = 500
        endpoint = request.url.path
        method = request.method

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            tenant_id = _extract_tenant_id(request)
            user_id = _extract_user_id(request)
            duration_ms = round((time.perf_counter() - start) * 1000, 2)

            set_request_context(tenant_id=tenant_id, user_id=user_id)
            request_metrics.observe(
                endpoint=endpoint,
                method=method,
                status_code=status_code,
                duration_ms=duration_ms,
                tenant_id=tenant_id,
            )

            logger.info(
                "request completed",
                extra={
                    "request_id": request_id,
                    "tenant_id": tenant_id,
                    "user_id": user_id,
                    "endpoint": endpoint,
                    "method": method,
                    "status_code": status_code,
                    "duration_ms": duration_ms,
                },
            )

            if "response" in locals():
                response.headers["X-Request-ID"] = request_id

            clear_request_context()


def _extract_tenant_id(request: Request) -> str | None:
    # Set by the account dependency once the Identity Resolver has run.
    tenant_id = getattr(request.state, "tenant_id", None)
    return str(tenant_id) if tenant_id is not None else None


def _extract_user_id(request: Request) -> str | None:
    account = getattr(request.state, "account", None)
    if account is None:
        return None
    account_id = getattr(account, "id", None)
    return str(account_id) if account_id is not None else None
