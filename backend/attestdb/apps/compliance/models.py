# backend/attestdb/apps/compliance/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from ...database import Base
from ...utils.identifiers import generate_uuid7


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UploadStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ComplianceUploadRecord(Base):
    """
    Ledger entry for delivering one evidence record to one compliance provider.

    Status only ever moves pending -> succeeded or pending -> failed.
    """

    __tablename__ = "compliance_uploads"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "evidence_id",
            "provider",
            name="uq_compliance_uploads_tenant_evidence_provider",
        ),
        Index("ix_compliance_uploads_tenant_status", "tenant_id", "status"),
        CheckConstraint("attempt_count >= 0", name="ck_compliance_uploads_attempts_nonnegative"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(String(64), nullable=False, index=True)
    evidence_id = Column(String(36), nullable=False, index=True)
    # Empty when the evidence record could not be found.
    session_id = Column(String(36), nullable=False, default="")
    provider = Column(String(32), nullable=False)

    status = Column(
        SAEnum(
            UploadStatus,
            name="compliance_upload_status",
            native_enum=False,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
            length=16,
        ),
        nullable=False,
        default=UploadStatus.PENDING,
    )
    attempt_count = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False)
    provider_reference_id = Column(String(255), nullable=True)
    last_error = Column(Text, nullable=True)
    last_error_code = Column(String(64), nullable=True)
    retryable = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<ComplianceUploadRecord id={self.id} evidence={self.evidence_id} status={self.status}>"
