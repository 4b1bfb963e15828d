"""
Create audit, training session/module, evidence and compliance upload tables.

Revision ID: a1c3e5f7b9d0
Revises:
Create Date: 2026-02-14
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1c3e5f7b9d0"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


SESSION_STATUSES = (
    "curriculum-generating",
    "in-progress",
    "in-remediation",
    "evaluating",
    "passed",
    "failed",
    "exhausted",
    "abandoned",
)
MODULE_STATUSES = (
    "locked",
    "content-generating",
    "learning",
    "scenario-active",
    "quiz-active",
    "scored",
)
UPLOAD_STATUSES = ("pending", "succeeded", "failed")


def upgrade() -> None:
    op.create_table(
        "audit_events",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("employee_id", sa.String(length=128), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_events_id", "audit_events", ["id"])
    op.create_index("ix_audit_events_tenant_id", "audit_events", ["tenant_id"])
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"])
    op.create_index("ix_audit_events_employee_id", "audit_events", ["employee_id"])
    op.create_index("ix_audit_events_occurred_at", "audit_events", ["occurred_at"])
    op.create_index("ix_audit_events_tenant_type", "audit_events", ["tenant_id", "event_type"])
    op.create_index("ix_audit_events_tenant_employee", "audit_events", ["tenant_id", "employee_id"])
    op.create_index(
        "ix_audit_events_tenant_time_desc",
        "audit_events",
        ["tenant_id", sa.text("occurred_at DESC")],
    )

    op.create_table(
        "training_sessions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("employee_id", sa.String(length=128), nullable=False),
        sa.Column("role_profile_id", sa.String(length=64), nullable=False),
        sa.Column("role_profile_version", sa.Integer(), nullable=False),
        sa.Column("config_hash", sa.String(length=64), nullable=False),
        sa.Column("app_version", sa.String(length=32), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*SESSION_STATUSES, name="training_session_status", native_enum=False, length=32),
            nullable=False,
        ),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column("curriculum", sa.JSON(), nullable=True),
        sa.Column("aggregate_score", sa.Float(), nullable=True),
        sa.Column("weak_areas", sa.JSON(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("version >= 1", name="ck_training_sessions_version_positive"),
    )
    op.create_index("ix_training_sessions_tenant_id", "training_sessions", ["tenant_id"])
    op.create_index("ix_training_sessions_employee_id", "training_sessions", ["employee_id"])
    op.create_index("ix_training_sessions_status", "training_sessions", ["status"])
    op.create_index("ix_training_sessions_tenant_employee", "training_sessions", ["tenant_id", "employee_id"])
    op.create_index("ix_training_sessions_tenant_status", "training_sessions", ["tenant_id", "status"])

    op.create_table(
        "training_modules",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column(
            "session_id",
            sa.String(length=36),
            sa.ForeignKey("training_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("module_index", sa.Integer(), nullable=False),
        sa.Column("attempt_number", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("topic_area", sa.String(length=255), nullable=False),
        sa.Column("job_expectation_indices", sa.JSON(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*MODULE_STATUSES, name="training_module_status", native_enum=False, length=32),
            nullable=False,
        ),
        sa.Column("content", sa.JSON(), nullable=True),
        sa.Column("scenario_responses", sa.JSON(), nullable=False),
        sa.Column("quiz_answers", sa.JSON(), nullable=False),
        sa.Column("module_score", sa.Float(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "session_id",
            "attempt_number",
            "module_index",
            name="uq_training_modules_session_attempt_index",
        ),
        sa.CheckConstraint(
            "(status = 'scored' AND module_score IS NOT NULL) "
            "OR (status <> 'scored' AND module_score IS NULL)",
            name="ck_training_modules_score_iff_scored",
        ),
        sa.CheckConstraint("version >= 1", name="ck_training_modules_version_positive"),
    )
    op.create_index("ix_training_modules_tenant_id", "training_modules", ["tenant_id"])
    op.create_index("ix_training_modules_session_id", "training_modules", ["session_id"])
    op.create_index("ix_training_modules_tenant_session", "training_modules", ["tenant_id", "session_id"])

    op.create_table(
        "training_evidence",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("employee_id", sa.String(length=128), nullable=False),
        sa.Column("schema_version", sa.Integer(), nullable=False),
        sa.Column("outcome", sa.String(length=32), nullable=False),
        sa.Column("evidence", sa.JSON(), nullable=False),
        sa.Column("content_hash", sa.String(length=64), nullable=False),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("tenant_id", "session_id", name="uq_training_evidence_tenant_session"),
    )
    op.create_index("ix_training_evidence_tenant_id", "training_evidence", ["tenant_id"])
    op.create_index("ix_training_evidence_session_id", "training_evidence", ["session_id"])
    op.create_index("ix_training_evidence_outcome", "training_evidence", ["outcome"])
    op.create_index("ix_training_evidence_tenant_generated", "training_evidence", ["tenant_id", "generated_at"])
    op.create_index("ix_training_evidence_tenant_employee", "training_evidence", ["tenant_id", "employee_id"])

    op.create_table(
        "compliance_uploads",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=64), nullable=False),
        sa.Column("evidence_id", sa.String(length=36), nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=False),
        sa.Column("provider", sa.String(length=32), nullable=False),
        sa.Column(
            "status",
            sa.Enum(*UPLOAD_STATUSES, name="compliance_upload_status", native_enum=False, length=16),
            nullable=False,
        ),
        sa.Column("attempt_count", sa.Integer(), nullable=False),
        sa.Column("max_attempts", sa.Integer(), nullable=False),
        sa.Column("provider_reference_id", sa.String(length=255), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("last_error_code", sa.String(length=64), nullable=True),
        sa.Column("retryable", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint(
            "tenant_id",
            "evidence_id",
            "provider",
            name="uq_compliance_uploads_tenant_evidence_provider",
        ),
        sa.CheckConstraint("attempt_count >= 0", name="ck_compliance_uploads_attempts_nonnegative"),
    )
    op.create_index("ix_compliance_uploads_tenant_id", "compliance_uploads", ["tenant_id"])
    op.create_index("ix_compliance_uploads_evidence_id", "compliance_uploads", ["evidence_id"])
    op.create_index("ix_compliance_uploads_tenant_status", "compliance_uploads", ["tenant_id", "status"])


def downgrade() -> None:
    op.drop_table("compliance_uploads")
    op.drop_table("training_evidence")
    op.drop_table("training_modules")
    op.drop_table("training_sessions")
    op.drop_table("audit_events")
