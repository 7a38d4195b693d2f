from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.models.activity_log import ActivityLog
from app.schemas.principal import Principal

logger = logging.getLogger(__name__)


def log_activity(
    db: Session,
    *,
    principal: Principal | None,
    action: str,
    tenant_id: str | None = None,
    entity_type: str | None = None,
    entity_id: str | None = None,
    details: dict | None = None,
) -> None:
    """Stage an activity record in the caller's transaction; it commits with the change it describes."""
    record = ActivityLog(
        tenant_id=tenant_id if tenant_id is not None else (principal.tenant_id if principal else None),
        actor_id=principal.id if principal is not None else None,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
    )
    db.add(record)
    logger.debug("Activity %s on %s %s by %s", action, entity_type, entity_id, record.actor_id)
