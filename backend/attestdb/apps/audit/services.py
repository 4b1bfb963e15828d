from __future__ import annotations

from datetime import datetime
import logging
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from . import models, schemas

logger = logging.getLogger(__name__)

SYSTEM_TENANT = "__system__"


def create_audit_event(
    db: Session,
    *,
    tenant_id: str,
    data: schemas.AuditEventCreate,
) -> models.AuditEvent:
    event = models.AuditEvent(
        tenant_id=tenant_id or SYSTEM_TENANT,
        event_type=data.event_type,
        employee_id=data.employee_id,
        metadata_json=data.metadata,
    )
    if data.occurred_at is not None:
        event.occurred_at = data.occurred_at
    db.add(event)
    db.flush()
    return event


def log_event(
    db: Session,
    *,
    tenant_id: str,
    event_type: str | models.AuditEventType,
    employee_id: Optional[str],
    metadata: Optional[dict] = None,
    critical: bool = False,
) -> Optional[models.AuditEvent]:
    """
    Best-effort audit event logger.
    - Called after the state change it describes has been committed.
    - For critical events (evidence export), raise on failure.
    - For everything else, log a warning and continue.
    """
    if isinstance(event_type, models.AuditEventType):
        event_type = event_type.value
    try:
        return create_audit_event(
            db,
            tenant_id=tenant_id,
            data=schemas.AuditEventCreate(
                event_type=event_type,
                employee_id=employee_id,
                metadata=metadata or {},
            ),
        )
    except Exception:
        logger.warning(
            "Failed to log audit event",
            extra={
                "tenant_id": tenant_id,
                "event_type": event_type,
                "critical": critical,
            },
        )
        if critical:
            raise
        return None


def list_audit_events(
    db: Session,
    *,
    tenant_id: str,
    event_type: Optional[str] = None,
    employee_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Sequence[models.AuditEvent]:
    query = db.query(models.AuditEvent).filter(models.AuditEvent.tenant_id == tenant_id)
    if event_type:
        query = query.filter(models.AuditEvent.event_type == event_type)
    if employee_id:
        query = query.filter(models.AuditEvent.employee_id == employee_id)
    if start:
        query = query.filter(models.AuditEvent.occurred_at >= start)
    if end:
        query = query.filter(models.AuditEvent.occurred_at <= end)
    return query.order_by(models.AuditEvent.occurred_at.desc()).all()
