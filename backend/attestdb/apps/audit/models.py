# backend/attestdb/apps/audit/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, JSON, String, desc

from ...database import Base
from ...utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, enum.Enum):
    SESSION_STARTED = "training-session-started"
    MODULE_COMPLETED = "training-module-completed"
    QUIZ_SUBMITTED = "training-quiz-submitted"
    EVALUATION_COMPLETED = "training-evaluation-completed"
    REMEDIATION_INITIATED = "training-remediation-initiated"
    SESSION_ABANDONED = "training-session-abandoned"
    SESSION_EXHAUSTED = "training-session-exhausted"
    EVIDENCE_EXPORTED = "evidence-exported"
    INTEGRATION_PUSH_SUCCESS = "integration-push-success"
    INTEGRATION_PUSH_FAILURE = "integration-push-failure"


class AuditEvent(Base):
    """
    Append-only audit trail for training, evidence and compliance actions.

    Metadata carries ids, scores, counts and topic names only; employee
    answers and generated content never land here.
    """

    __tablename__ = "audit_events"
    __table_args__ = (
        Index("ix_audit_events_tenant_type", "tenant_id", "event_type"),
        Index("ix_audit_events_tenant_employee", "tenant_id", "employee_id"),
        Index("ix_audit_events_tenant_time_desc", "tenant_id", desc("occurred_at")),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7, index=True)
    tenant_id = Column(String(64), nullable=False, index=True)
    event_type = Column(String(64), nullable=False, index=True)
    employee_id = Column(String(128), nullable=True, index=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    metadata_json = Column("metadata", JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<AuditEvent id={self.id} tenant={self.tenant_id} type={self.event_type}>"
