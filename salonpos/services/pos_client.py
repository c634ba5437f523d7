from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

import httpx

from salonpos.core.config import (
    POS_API_VERSION,
    POS_APPLICATION_ID,
    POS_APPLICATION_SECRET,
    POS_BASE_URL,
    POS_TIMEOUT_SECONDS,
)
from salonpos.core.metrics import pos_call_metrics
from salonpos.services.errors import SyncAborted, UpstreamError

logger = logging.getLogger(__name__)

BODYLESS_METHODS = {"GET", "HEAD", "DELETE"}
MAX_PAGES = 1000


@dataclass
class PosResponse:
    status_code: int
    body: Any

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


def parse_body(response: httpx.Response) -> Any:
    text = response.text
    if not text:
        return {}
    try:
        return response.json()
    except (json.JSONDecodeError, ValueError):
        return {"raw": text}


def validate_path(path: str | None) -> str:
    """Only relative API paths; anything that could retarget the host is refused."""
    value = (path or "").strip()
    if not value.startswith("/") or value.startswith("//") or "\\" in value or "://" in value:
        raise ValueError("path must be a relative POS API path starting with '/'")
    return value


class PosClient:
    """Thin httpx wrapper for the POS REST API.

    Every call carries the configured API version header and a bounded
    timeout. Retries are opt-in and meant for idempotent reads.
    """

    def __init__(
        self,
        *,
        base_url: str = POS_BASE_URL,
        api_version: str = POS_API_VERSION,
        timeout: float = POS_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_version = api_version
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.Client:
        return httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    def _headers(self, token: str | None) -> dict[str, str]:
        headers = {
            "Square-Version": self.api_version,
            "Accept": "application/json",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def request(
        self,
        method: str,
        path: str,
        *,
        token: str | None,
        json_body: Any = None,
        content: bytes | None = None,
        params: Mapping[str, Any] | Sequence[tuple[str, Any]] | None = None,
        retry: bool = False,
        tenant_id: int | None = None,
    ) -> PosResponse:
        method = method.upper()
        path = validate_path(path)
        headers = self._headers(token)
        send_body = method not in BODYLESS_METHODS
        kwargs: dict[str, Any] = {"headers": headers}
        if params:
            pairs = params.items() if isinstance(params, Mapping) else params
            kwargs["params"] = [(key, value) for key, value in pairs if value is not None]
        if send_body and content:
            headers["Content-Type"] = "application/json"
            kwargs["content"] = content
        elif send_body and json_body is not None:
            kwargs["json"] = json_body

        attempts = 2 if retry else 1
        metric_path = path.split("?", 1)[0]
        for attempt in range(1, attempts + 1):
            start = time.perf_counter()
            try:
                with self._client() as client:
                    response = client.request(method, path, **kwargs)
            except httpx.HTTPError as exc:
                duration_ms = round((time.perf_counter() - start) * 1000, 2)
                pos_call_metrics.observe(metric_path, method, 599, duration_ms, tenant_id=tenant_id)
                logger.warning(
                    "pos request transport failure method=%s path=%s attempt=%s error=%s",
                    method,
                    metric_path,
                    attempt,
                    exc.__class__.__name__,
                    extra={"pos_path": metric_path, "method": method, "duration_ms": duration_ms},
                )
                if attempt < attempts:
                    continue
                raise UpstreamError(f"POS API unreachable: {exc.__class__.__name__}") from exc

            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            pos_call_metrics.observe(metric_path, method, response.status_code, duration_ms, tenant_id=tenant_id)
            if retry and response.status_code >= 500 and attempt < attempts:
                logger.warning(
                    "pos request retrying after server error method=%s path=%s status=%s",
                    method,
                    metric_path,
                    response.status_code,
                )
                continue

            logger.info(
                "pos request method=%s path=%s status=%s",
                method,
                metric_path,
                response.status_code,
                extra={"pos_path": metric_path, "method": method, "duration_ms": duration_ms},
            )
            return PosResponse(status_code=response.status_code, body=parse_body(response))

        raise UpstreamError("POS API request failed")  # pragma: no cover

    def fetch_all_pages(
        self,
        path: str,
        *,
        token: str,
        items_key: str,
        params: Mapping[str, Any] | None = None,
        method: str = "GET",
        body: Mapping[str, Any] | None = None,
        tenant_id: int | None = None,
    ) -> list[dict[str, Any]]:
        """Follow ``cursor`` until exhausted. Any failing page aborts the whole read."""
        items: list[dict[str, Any]] = []
        cursor: str | None = None
        seen_cursors: set[str] = set()

        for _ in range(MAX_PAGES):
            page_params = dict(params or {})
            page_body = dict(body or {}) if method.upper() not in BODYLESS_METHODS else None
            if cursor:
                if page_body is not None:
                    page_body["cursor"] = cursor
                else:
                    page_params["cursor"] = cursor

            response = self.request(
                method,
                path,
                token=token,
                params=page_params,
                json_body=page_body,
                retry=True,
                tenant_id=tenant_id,
            )
            if not response.ok:
                status = response.status_code if response.status_code >= 400 else 502
                raise SyncAborted(
                    f"POS API returned {response.status_code} for {path}",
                    status_code=status,
                    upstream_status=response.status_code,
                    upstream_body=response.body,
                )

            page = response.body if isinstance(response.body, dict) else {}
            items.extend(page.get(items_key) or [])
            cursor = page.get("cursor")
            if not cursor:
                return items
            if cursor in seen_cursors:
                raise SyncAborted(f"POS API repeated a pagination cursor for {path}", status_code=502)
            seen_cursors.add(cursor)

        raise SyncAborted(f"Too many pages for {path}", status_code=502)

    def exchange_code(self, code: str, *, redirect_uri: str | None = None) -> dict[str, Any]:
        if not POS_APPLICATION_ID or not POS_APPLICATION_SECRET:
            raise UpstreamError("POS application credentials are not configured", status_code=503)
        payload: dict[str, Any] = {
            "client_id": POS_APPLICATION_ID,
            "client_secret": POS_APPLICATION_SECRET,
            "code": code,
            "grant_type": "authorization_code",
        }
        if redirect_uri:
            payload["redirect_uri"] = redirect_uri
        response = self.request("POST", "/oauth2/token", token=None, json_body=payload)
        if not response.ok or not isinstance(response.body, dict) or not response.body.get("access_token"):
            status = response.status_code if response.status_code >= 400 else 502
            raise UpstreamError("POS token exchange failed", status_code=status)
        return response.body

    def fetch_owner_email(self, token: str) -> str | None:
        response = self.request(
            "POST",
            "/v2/team-members/search",
            token=token,
            json_body={"query": {"filter": {"is_owner": True}}, "limit": 1},
            retry=True,
        )
        if not response.ok or not isinstance(response.body, dict):
            logger.info("owner email lookup failed status=%s", response.status_code)
            return None
        members = response.body.get("team_members") or []
        if not members:
            return None
        email = (members[0].get("email_address") or "").strip().lower()
        return email or None

    def fetch_merchant(self, token: str) -> dict[str, Any]:
        response = self.request("GET", "/v2/merchants/me", token=token, retry=True)
        if not response.ok or not isinstance(response.body, dict):
            status = response.status_code if response.status_code >= 400 else 502
            raise UpstreamError("POS credential was rejected", status_code=status)
        return response.body.get("merchant") or {}
