"""
Audit events for the training lifecycle.

Only ids, scores, counts and topic names are recorded. Employee answers and
generated content are never passed to the audit log.
"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy.orm import Session

from ..audit import services as audit_services
from ..audit.models import AuditEventType


def log_session_started(
    db: Session,
    *,
    tenant_id: str,
    employee_id: str,
    session_id: str,
    attempt_number: int,
    role_profile_version: int,
    config_hash: str,
) -> None:
    audit_services.log_event(
        db,
        tenant_id=tenant_id,
        event_type=AuditEventType.SESSION_STARTED,
        employee_id=employee_id,
        metadata={
            "session_id": session_id,
            "attempt_number": attempt_number,
            "role_profile_version": role_profile_version,
            "config_hash": config_hash,
        },
    )


def log_module_completed(
    db: Session,
    *,
    tenant_id: str,
    employee_id: str,
    session_id: str,
    module_index: int,
    module_title: str,
    module_score: float,
) -> None:
    audit_services.log_event(
        db,
        tenant_id=tenant_id,
        event_type=AuditEventType.MODULE_COMPLETED,
        employee_id=employee_id,
        metadata={
            "session_id": session_id,
            "module_index": module_index,
            "module_title": module_title,
            "module_score": module_score,
        },
    )


def log_quiz_submitted(
    db: Session,
    *,
    tenant_id: str,
    employee_id: str,
    session_id: str,
    module_index: int,
    question_count: int,
    mc_count: int,
    free_text_count: int,
) -> None:
    audit_services.log_event(
        db,
        tenant_id=tenant_id,
        event_type=AuditEventType.QUIZ_SUBMITTED,
        employee_id=employee_id,
        metadata={
            "session_id": session_id,
            "module_index": module_index,
            "question_count": question_count,
            "mc_count": mc_count,
            "free_text_count": free_text_count,
        },
    )


def log_evaluation_completed(
    db: Session,
    *,
    tenant_id: str,
    employee_id: str,
    session_id: str,
    attempt_number: int,
    aggregate_score: float,
    passed: bool,
) -> None:
    audit_services.log_event(
        db,
        tenant_id=tenant_id,
        event_type=AuditEventType.EVALUATION_COMPLETED,
        employee_id=employee_id,
        metadata={
            "session_id": session_id,
            "attempt_number": attempt_number,
            "aggregate_score": aggregate_score,
            "passed": passed,
        },
    )


def log_remediation_initiated(
    db: Session,
    *,
    tenant_id: str,
    employee_id: str,
    session_id: str,
    attempt_number: int,
    weak_areas: List[str],
) -> None:
    audit_services.log_event(
        db,
        tenant_id=tenant_id,
        event_type=AuditEventType.REMEDIATION_INITIATED,
        employee_id=employee_id,
        metadata={
            "session_id": session_id,
            "attempt_number": attempt_number,
            "weak_area_count": len(weak_areas),
            "weak_areas": list(weak_areas),
        },
    )


def log_session_abandoned(
    db: Session,
    *,
    tenant_id: str,
    employee_id: str,
    session_id: str,
    attempt_number: int,
    modules_completed: int,
    total_modules: int,
) -> None:
    audit_services.log_event(
        db,
        tenant_id=tenant_id,
        event_type=AuditEventType.SESSION_ABANDONED,
        employee_id=employee_id,
        metadata={
            "session_id": session_id,
            "attempt_number": attempt_number,
            "modules_completed": modules_completed,
            "total_modules": total_modules,
        },
    )


def log_session_exhausted(
    db: Session,
    *,
    tenant_id: str,
    employee_id: str,
    session_id: str,
    final_score: Optional[float],
    attempts_used: int,
) -> None:
    audit_services.log_event(
        db,
        tenant_id=tenant_id,
        event_type=AuditEventType.SESSION_EXHAUSTED,
        employee_id=employee_id,
        metadata={
            "session_id": session_id,
            "final_score": final_score,
            "attempts_used": attempts_used,
        },
    )
