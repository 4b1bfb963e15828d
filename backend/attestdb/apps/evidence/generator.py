# backend/attestdb/apps/evidence/generator.py
"""
Evidence generation for terminal training sessions.

`generate_evidence_for_session` is idempotent: the first call for a session
assembles, hashes and stores the record and hands it to compliance dispatch;
later calls return the stored record unchanged and dispatch nothing.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from ...config import TenantConfigProvider, TrainingPolicy
from ...errors import Conflict, NotFound
from ..compliance.worker import get_upload_dispatch
from ..training import models as training_models
from ..training.repository import SessionRepository
from ..training.state_machine import ModuleStatus, SessionStatus, is_session_terminal
from . import models, schemas
from .hashing import compute_content_hash, normalize_body
from .repository import EvidenceRepository

logger = logging.getLogger(__name__)

Dispatch = Callable[[str, str], None]


class SessionNotTerminalError(Conflict):
    code = "session_not_terminal"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _options(options: Optional[List[Dict[str, Any]]]) -> Optional[List[Dict[str, str]]]:
    if options is None:
        return None
    # Only key/text survive; which option was correct never enters evidence.
    return [{"key": option["key"], "text": option["text"]} for option in options]


def _employee_answer(answer: Optional[Dict[str, Any]], fallback_time: datetime) -> Dict[str, Any]:
    answer = answer or {}
    return {
        "selected_option": answer.get("selected_option"),
        "free_text_response": answer.get("free_text_response"),
        "score": answer.get("score", 0.0),
        "llm_rationale": answer.get("llm_rationale"),
        "submitted_at": answer.get("submitted_at") or fallback_time,
    }


def build_module_evidence(module: training_models.TrainingModule) -> schemas.ModuleEvidence:
    content = module.content or {}
    fallback_time = module.updated_at or module.created_at
    responses = {item.get("scenario_id"): item for item in module.scenario_responses or []}
    answers = {item.get("question_id"): item for item in module.quiz_answers or []}

    scenarios = [
        {
            "scenario_id": scenario["id"],
            "narrative": scenario["narrative"],
            "response_type": scenario["response_type"],
            "options": _options(scenario.get("options")),
            "employee_answer": _employee_answer(responses.get(scenario["id"]), fallback_time),
        }
        for scenario in content.get("scenarios", [])
    ]
    questions = [
        {
            "question_id": question["id"],
            "question_text": question["text"],
            "response_type": question["response_type"],
            "options": _options(question.get("options")),
            "employee_answer": _employee_answer(answers.get(question["id"]), fallback_time),
        }
        for question in (content.get("quiz") or {}).get("questions", [])
    ]
    return schemas.ModuleEvidence(
        module_index=module.module_index,
        attempt_number=module.attempt_number,
        title=module.title,
        topic_area=module.topic_area,
        module_score=module.module_score,
        scenarios=scenarios,
        quiz_questions=questions,
        completed_at=module.updated_at if module.status == ModuleStatus.SCORED else None,
    )


def build_evidence_body(
    session: training_models.TrainingSession,
    modules: List[training_models.TrainingModule],
    policy: TrainingPolicy,
) -> schemas.EvidenceBody:
    status = SessionStatus(session.status)
    if status == SessionStatus.PASSED:
        passed: Optional[bool] = True
    elif status == SessionStatus.ABANDONED:
        passed = None
    else:
        passed = False

    final_attempt = [module for module in modules if module.attempt_number == session.attempt_number]
    return schemas.EvidenceBody(
        session=schemas.SessionSummary(
            session_id=session.id,
            employee_id=session.employee_id,
            tenant_id=session.tenant_id,
            attempt_number=session.attempt_number,
            total_attempts=policy.max_attempts,
            status=status.value,
            created_at=session.created_at,
            completed_at=session.completed_at,
        ),
        policy_attestation=schemas.PolicyAttestation(
            config_hash=session.config_hash,
            role_profile_id=session.role_profile_id,
            role_profile_version=session.role_profile_version,
            app_version=session.app_version,
            pass_threshold=policy.pass_threshold,
            max_attempts=policy.max_attempts,
        ),
        modules=[build_module_evidence(module) for module in modules],
        outcome=schemas.OutcomeSummary(
            aggregate_score=session.aggregate_score,
            passed=passed,
            pass_threshold=policy.pass_threshold,
            weak_areas=session.weak_areas,
            module_scores=[
                schemas.ModuleScore(module_index=module.module_index, title=module.title, score=module.module_score)
                for module in final_attempt
            ],
        ),
    )


def generate_evidence_for_session(
    db: Session,
    tenant_id: str,
    session_id: str,
    *,
    config_provider: TenantConfigProvider,
    dispatch: Optional[Dispatch] = None,
) -> models.TrainingEvidence:
    session_repo = SessionRepository(db)
    evidence_repo = EvidenceRepository(db)

    session = session_repo.find_session(tenant_id, session_id)
    if session is None:
        raise NotFound(f"Session '{session_id}' not found")
    if not is_session_terminal(session.status):
        raise SessionNotTerminalError(
            f"Session '{session_id}' is in '{session.status.value}' state, "
            "expected terminal state (passed, exhausted, or abandoned)"
        )

    existing = evidence_repo.find_by_session_id(tenant_id, session_id)
    if existing is not None:
        return existing

    modules = session_repo.find_modules_by_session(tenant_id, session_id)
    tenant = config_provider.get_tenant(tenant_id)
    policy = tenant.training if tenant is not None else TrainingPolicy()

    body = normalize_body(build_evidence_body(session, modules, policy).model_dump(mode="json"))
    record, created = evidence_repo.create(
        tenant_id,
        session_id=session.id,
        employee_id=session.employee_id,
        schema_version=schemas.CURRENT_SCHEMA_VERSION,
        outcome=session.status.value,
        evidence=body,
        content_hash=compute_content_hash(body),
        generated_at=_utcnow(),
    )
    db.commit()
    if not created:
        return record

    logger.info(
        "Evidence generated",
        extra={
            "tenant_id": tenant_id,
            "session_id": session_id,
            "evidence_id": record.id,
            "content_hash": record.content_hash,
        },
    )

    submit = dispatch or get_upload_dispatch()
    try:
        submit(tenant_id, record.id)
    except Exception:
        logger.exception(
            "Compliance upload dispatch failed",
            extra={"tenant_id": tenant_id, "evidence_id": record.id},
        )
    return record
