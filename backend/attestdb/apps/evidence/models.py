# backend/attestdb/apps/evidence/models.py

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, Integer, JSON, String, UniqueConstraint, event

from ...database import Base
from ...utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EvidenceImmutableError(RuntimeError):
    pass


class TrainingEvidence(Base):
    """
    Immutable evidence record for a terminal training session.

    At most one per (tenant, session). `content_hash` is the canonical
    SHA-256 of `evidence`; rows are never updated or deleted.
    """

    __tablename__ = "training_evidence"
    __table_args__ = (
        UniqueConstraint("tenant_id", "session_id", name="uq_training_evidence_tenant_session"),
        Index("ix_training_evidence_tenant_generated", "tenant_id", "generated_at"),
        Index("ix_training_evidence_tenant_employee", "tenant_id", "employee_id"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(String(64), nullable=False, index=True)
    session_id = Column(String(36), nullable=False, index=True)
    employee_id = Column(String(128), nullable=False)
    schema_version = Column(Integer, nullable=False, default=1)
    # Session status at generation time, copied out of the body for filtering.
    outcome = Column(String(32), nullable=False, index=True)
    evidence = Column(JSON, nullable=False)
    content_hash = Column(String(64), nullable=False)
    generated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<TrainingEvidence id={self.id} session={self.session_id} hash={self.content_hash[:12]}>"


@event.listens_for(TrainingEvidence, "before_update")
def _block_update(mapper, connection, target) -> None:
    raise EvidenceImmutableError(f"Evidence {target.id} is immutable")


@event.listens_for(TrainingEvidence, "before_delete")
def _block_delete(mapper, connection, target) -> None:
    raise EvidenceImmutableError(f"Evidence {target.id} cannot be deleted")
