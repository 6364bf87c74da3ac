from __future__ import annotations

from datetime import datetime
import logging
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from . import models, schemas

logger = logging.getLogger(__name__)


def create_audit_event(
    db: Session,
    *,
    organization_id: str,
    data: schemas.AuditEventCreate,
) -> models.AuditEvent:
    fields = data.model_dump(exclude={"metadata", "occurred_at"})
    event = models.AuditEvent(organization_id=organization_id, metadata_json=data.metadata, **fields)
    if data.occurred_at is not None:
        event.occurred_at = data.occurred_at
    db.add(event)
    db.flush()
    return event


def log_event(
    db: Session,
    *,
    organization_id: str,
    actor_id: Optional[str],
    entity_type: str,
    entity_id: str,
    action: str,
    before: Optional[dict] = None,
    after: Optional[dict] = None,
    correlation_id: Optional[str] = None,
    metadata: Optional[dict] = None,
    critical: bool = False,
) -> Optional[models.AuditEvent]:
    """
    Record an audit event in the caller's transaction.

    Critical events (status transitions, record issuance) raise on failure
    so the surrounding change rolls back with them. Other events are
    written in a savepoint; a failure is logged and the caller carries on.
    """
    data = schemas.AuditEventCreate(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor_id,
        before=before,
        after=after,
        correlation_id=correlation_id,
        metadata=metadata,
    )
    if critical:
        return create_audit_event(db, organization_id=organization_id, data=data)

    try:
        with db.begin_nested():
            return create_audit_event(db, organization_id=organization_id, data=data)
    except Exception:
        logger.warning(
            "Dropped non-critical audit event",
            extra={
                "organization_id": organization_id,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "action": action,
            },
            exc_info=True,
        )
        return None


def list_audit_events(
    db: Session,
    *,
    organization_id: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 10,
) -> Sequence[models.AuditEvent]:
    """Newest first, scoped to one organization."""
    filters = [models.AuditEvent.organization_id == organization_id]
    if entity_type:
        filters.append(models.AuditEvent.entity_type == entity_type)
    if entity_id:
        filters.append(models.AuditEvent.entity_id == entity_id)
    if start:
        filters.append(models.AuditEvent.occurred_at >= start)
    if end:
        filters.append(models.AuditEvent.occurred_at <= end)
    return (
        db.query(models.AuditEvent)
        .filter(*filters)
        .order_by(models.AuditEvent.occurred_at.desc())
        .limit(limit)
        .all()
    )
