from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from salonpos.services.identity_resolver import IdentityResolver
from salonpos.services.pos_client import PosClient, PosResponse, validate_path

logger = logging.getLogger(__name__)


@dataclass
class ProxyResult:
    tenant_id: int
    response: PosResponse


class PosProxy:
    """Forward a caller's request to the POS API under their tenant's credential.

    Resolution failures surface before any upstream call is made. The
    upstream status and body come back unchanged; nothing is cached or retried.
    """

    def __init__(self, resolver: IdentityResolver, client: PosClient) -> None:
        self.resolver = resolver
        self.client = client

    def forward(
        self,
        account: Any,
        *,
        method: str,
        path: str,
        body: bytes | None = None,
        query: Mapping[str, Any] | Sequence[tuple[str, Any]] | None = None,
    ) -> ProxyResult:
        path = validate_path(path)
        resolved = self.resolver.resolve(account)
        logger.info(
            "proxying pos request method=%s path=%s tenant_id=%s via=%s",
            method.upper(),
            path.split("?", 1)[0],
            resolved.tenant_id,
            resolved.via,
        )
        response = self.client.request(
            method,
            path,
            token=resolved.pos_token,
            content=body or None,
            params=query,
            tenant_id=resolved.tenant_id,
        )
        return ProxyResult(tenant_id=resolved.tenant_id, response=response)
