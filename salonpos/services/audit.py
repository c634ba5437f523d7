from __future__ import annotations

import json
from typing import Any, Mapping, Optional

from sqlalchemy.orm import Session

from salonpos.models.audit_log import AuditLog


def log_action(
    db: Session,
    *,
    tenant_id: Optional[int],
    actor_id: Optional[str],
    action: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    meta: Optional[Mapping[str, Any]] = None,
) -> AuditLog:
    entry = AuditLog(
        tenant_id=tenant_id,
        actor_id=str(actor_id) if actor_id is not None else None,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta_json=json.dumps(meta) if meta else None,
    )
    db.add(entry)
    return entry
