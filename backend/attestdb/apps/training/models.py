# backend/attestdb/apps/training/models.py

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    UniqueConstraint,
)

from ...database import Base
from ...utils.identifiers import generate_uuid7
from .state_machine import ModuleStatus, SessionStatus


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class TrainingSession(Base):
    """
    One assessment attempt chain for an employee.

    `version` is the optimistic-lock counter: it starts at 1 and every
    accepted write increments it by exactly one (see SessionRepository).
    """

    __tablename__ = "training_sessions"
    __table_args__ = (
        Index("ix_training_sessions_tenant_employee", "tenant_id", "employee_id"),
        Index("ix_training_sessions_tenant_status", "tenant_id", "status"),
        CheckConstraint("version >= 1", name="ck_training_sessions_version_positive"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(String(64), nullable=False, index=True)
    employee_id = Column(String(128), nullable=False, index=True)

    role_profile_id = Column(String(64), nullable=False)
    role_profile_version = Column(Integer, nullable=False, default=1)
    config_hash = Column(String(64), nullable=False)
    app_version = Column(String(32), nullable=False, default="unknown")

    status = Column(
        SAEnum(
            SessionStatus,
            name="training_session_status",
            native_enum=False,
            values_callable=_enum_values,
            length=32,
        ),
        nullable=False,
        default=SessionStatus.CURRICULUM_GENERATING,
        index=True,
    )
    attempt_number = Column(Integer, nullable=False, default=1)
    curriculum = Column(JSON, nullable=True)
    aggregate_score = Column(Float, nullable=True)
    weak_areas = Column(JSON, nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<TrainingSession id={self.id} status={self.status} v={self.version}>"


class TrainingModule(Base):
    """
    A single module of a session's curriculum. Created locked when the
    curriculum is confirmed and never deleted. Each remediation round appends
    a fresh set of modules under the new `attempt_number`, indexed from 0.
    """

    __tablename__ = "training_modules"
    __table_args__ = (
        UniqueConstraint(
            "session_id",
            "attempt_number",
            "module_index",
            name="uq_training_modules_session_attempt_index",
        ),
        Index("ix_training_modules_tenant_session", "tenant_id", "session_id"),
        CheckConstraint(
            "(status = 'scored' AND module_score IS NOT NULL) "
            "OR (status <> 'scored' AND module_score IS NULL)",
            name="ck_training_modules_score_iff_scored",
        ),
        CheckConstraint("version >= 1", name="ck_training_modules_version_positive"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid7)
    tenant_id = Column(String(64), nullable=False, index=True)
    session_id = Column(
        String(36),
        ForeignKey("training_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    module_index = Column(Integer, nullable=False)
    attempt_number = Column(Integer, nullable=False, default=1)

    title = Column(String(255), nullable=False)
    topic_area = Column(String(255), nullable=False)
    job_expectation_indices = Column(JSON, nullable=False, default=list)

    status = Column(
        SAEnum(
            ModuleStatus,
            name="training_module_status",
            native_enum=False,
            values_callable=_enum_values,
            length=32,
        ),
        nullable=False,
        default=ModuleStatus.LOCKED,
    )
    content = Column(JSON, nullable=True)
    scenario_responses = Column(JSON, nullable=False, default=list)
    quiz_answers = Column(JSON, nullable=False, default=list)
    module_score = Column(Float, nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<TrainingModule session={self.session_id} index={self.module_index} status={self.status}>"
