# backend/attestdb/apps/training/services.py
"""
Training lifecycle actions.

Every action follows the same shape:
1. Resolve the tenant policy and the employee's current session.
2. Ask the state machine whether the requested transition is legal.
3. Persist through SessionRepository with the version last read.
4. Commit, then write audit events describing what was committed.

Terminal outcomes (passed, exhausted, abandoned) trigger evidence generation
after the commit. A failure there is logged and does not change the result of
the action; evidence can be produced later through the evidence endpoints.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from ...config import APP_VERSION, TenantConfig, TenantConfigProvider
from ...errors import Conflict, NotFound, ValidationError
from . import audit, generators, models, schemas
from .repository import SessionRepository
from .redaction import redact_optional
from .scoring import (
    compute_aggregate_score,
    compute_module_score,
    identify_weak_areas,
    is_passing,
    score_mc_answer,
)
from .state_machine import (
    ModuleEvent,
    ModuleStatus,
    SessionEvent,
    SessionStatus,
    apply_session_event,
    is_session_terminal,
    transition_module,
    transition_session,
)

logger = logging.getLogger(__name__)

Dispatch = Callable[[str, str], None]

# Sessions the employee can still act on module-by-module.
_WORKING_STATES = (SessionStatus.IN_PROGRESS, SessionStatus.IN_REMEDIATION)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# HELPERS
# ---------------------------------------------------------------------------


def _require_tenant(config_provider: TenantConfigProvider, tenant_id: str) -> TenantConfig:
    tenant = config_provider.get_tenant(tenant_id)
    if tenant is None:
        raise NotFound("Tenant not found")
    return tenant


def _require_active_session(repo: SessionRepository, tenant_id: str, employee_id: str) -> models.TrainingSession:
    session = repo.find_active_session(tenant_id, employee_id)
    if session is None:
        raise NotFound("No active training session found")
    return session


def _require_working_module(
    repo: SessionRepository,
    tenant_id: str,
    employee_id: str,
    module_index: int,
) -> Tuple[models.TrainingSession, models.TrainingModule]:
    if module_index < 0 or module_index > schemas.MAX_MODULE_INDEX:
        raise ValidationError(f"module_index must be between 0 and {schemas.MAX_MODULE_INDEX}")
    session = _require_active_session(repo, tenant_id, employee_id)
    if session.status not in _WORKING_STATES:
        raise Conflict(f"Session is in '{session.status.value}' state and does not accept module actions")
    module = repo.find_module_by_index(
        tenant_id,
        session.id,
        module_index,
        attempt_number=session.attempt_number,
    )
    if module is None:
        raise NotFound(f"Module {module_index} not found")
    return session, module


def _strip_options(options: Optional[List[Dict[str, Any]]]) -> Optional[List[Dict[str, Any]]]:
    if options is None:
        return None
    return [{"key": option["key"], "text": option["text"]} for option in options]


def client_safe_content(content: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Drop answer keys (`correct`) and rubrics before content leaves the server."""
    if not content:
        return content
    return {
        "instruction": content["instruction"],
        "generated_at": content["generated_at"],
        "scenarios": [
            {
                "id": scenario["id"],
                "narrative": scenario["narrative"],
                "response_type": scenario["response_type"],
                "options": _strip_options(scenario.get("options")),
            }
            for scenario in content.get("scenarios", [])
        ],
        "quiz": {
            "questions": [
                {
                    "id": question["id"],
                    "text": question["text"],
                    "response_type": question["response_type"],
                    "options": _strip_options(question.get("options")),
                }
                for question in (content.get("quiz") or {}).get("questions", [])
            ]
        },
    }


def to_module_read(module: models.TrainingModule) -> schemas.TrainingModuleRead:
    return schemas.TrainingModuleRead(
        id=module.id,
        session_id=module.session_id,
        module_index=module.module_index,
        attempt_number=module.attempt_number,
        title=module.title,
        topic_area=module.topic_area,
        job_expectation_indices=list(module.job_expectation_indices or []),
        status=module.status,
        content=client_safe_content(module.content),
        scenario_responses=list(module.scenario_responses or []),
        quiz_answers=list(module.quiz_answers or []),
        module_score=module.module_score,
        version=module.version,
        created_at=module.created_at,
        updated_at=module.updated_at,
    )


def _session_state(
    repo: SessionRepository,
    session: Optional[models.TrainingSession],
    *,
    max_attempts: int,
    current_attempt_only: bool = True,
) -> schemas.SessionStateResponse:
    if session is None:
        return schemas.SessionStateResponse(session=None, modules=[], max_attempts=max_attempts)
    modules = repo.find_modules_by_session(
        session.tenant_id,
        session.id,
        attempt_number=session.attempt_number if current_attempt_only else None,
    )
    return schemas.SessionStateResponse(
        session=schemas.TrainingSessionRead.model_validate(session),
        modules=[to_module_read(module) for module in modules],
        max_attempts=max_attempts,
    )


def _record_answer(
    capabilities: generators.TrainingCapabilities,
    tenant: TenantConfig,
    *,
    item: schemas.Scenario | schemas.QuizQuestion,
    prompt: str,
    submission: schemas.ScenarioSubmission | schemas.QuizAnswerSubmission,
) -> Dict[str, Any]:
    if submission.response_type != item.response_type:
        raise ValidationError(
            f"'{item.id}' expects a {item.response_type.value} response, got {submission.response_type.value}"
        )

    rationale: Optional[str] = None
    free_text: Optional[str] = None
    if item.response_type == schemas.ResponseType.MULTIPLE_CHOICE:
        correct = next((option.key for option in item.options or [] if option.correct), "")
        score = score_mc_answer(submission.selected_option or "", correct)
    else:
        evaluation = generators.evaluate_free_text(
            capabilities,
            question=prompt,
            rubric=item.rubric or "",
            response=submission.free_text_response or "",
        )
        score = evaluation.score
        if tenant.retention.transcripts_enabled:
            free_text = redact_optional(submission.free_text_response)
            rationale = redact_optional(evaluation.rationale)

    return {
        "response_type": item.response_type.value,
        "selected_option": submission.selected_option,
        "free_text_response": free_text,
        "score": score,
        "llm_rationale": rationale,
        "submitted_at": _utcnow().isoformat(),
    }


def _produce_evidence(
    db: Session,
    tenant_id: str,
    session_id: str,
    config_provider: TenantConfigProvider,
    dispatch: Optional[Dispatch],
) -> None:
    from ..evidence.generator import generate_evidence_for_session

    try:
        generate_evidence_for_session(
            db,
            tenant_id,
            session_id,
            config_provider=config_provider,
            dispatch=dispatch,
        )
    except Exception:
        db.rollback()
        logger.exception(
            "Evidence generation failed",
            extra={"tenant_id": tenant_id, "session_id": session_id},
        )


# ---------------------------------------------------------------------------
# SESSION START / REMEDIATION
# ---------------------------------------------------------------------------


def _confirm_curriculum(
    db: Session,
    repo: SessionRepository,
    session: models.TrainingSession,
    outline: schemas.CurriculumOutline,
) -> Tuple[models.TrainingSession, List[models.TrainingModule]]:
    status = transition_session(session.status, SessionEvent.CURRICULUM_READY)
    with repo.transaction():
        updated = repo.update_session(
            session.tenant_id,
            session.id,
            {"status": status, "curriculum": outline.model_dump(mode="json")},
            session.version,
        )
        modules = repo.create_modules(
            session.tenant_id,
            session.id,
            [module.model_dump() for module in outline.modules],
            attempt_number=updated.attempt_number,
        )
    return updated, modules


def start_session(
    db: Session,
    *,
    tenant_id: str,
    employee_id: str,
    config_provider: TenantConfigProvider,
    capabilities: generators.TrainingCapabilities,
) -> schemas.SessionStateResponse:
    """
    Start a new session, resume one stuck in curriculum generation, or start
    remediation when the employee's most recent session failed.
    """
    tenant = _require_tenant(config_provider, tenant_id)
    policy = tenant.training
    repo = SessionRepository(db)

    active = repo.find_active_session(tenant_id, employee_id)
    if active is not None and active.status != SessionStatus.CURRICULUM_GENERATING:
        raise Conflict("An active training session already exists")

    if active is None:
        history = repo.find_session_history(tenant_id, employee_id, limit=1)
        # A failed session with no attempts left under the current policy
        # falls through to a fresh session.
        if (
            history
            and history[0].status == SessionStatus.FAILED
            and history[0].attempt_number < policy.max_attempts
        ):
            return start_remediation(
                db,
                tenant=tenant,
                session=history[0],
                capabilities=capabilities,
            )

    profile = generators.resolve_role_profile(capabilities, tenant_id, employee_id)

    if active is None:
        session = repo.create_session(
            tenant_id,
            employee_id=employee_id,
            role_profile_id=profile.id,
            role_profile_version=profile.version,
            config_hash=config_provider.snapshot().config_hash,
            app_version=APP_VERSION,
        )
        db.commit()
    else:
        session = active

    # On failure the session stays in curriculum-generating and the next
    # start_session call resumes it.
    outline = generators.generate_curriculum(capabilities, profile, max_modules=policy.max_modules)
    session, modules = _confirm_curriculum(db, repo, session, outline)

    audit.log_session_started(
        db,
        tenant_id=tenant_id,
        employee_id=employee_id,
        session_id=session.id,
        attempt_number=session.attempt_number,
        role_profile_version=session.role_profile_version,
        config_hash=session.config_hash,
    )
    db.commit()
    return _session_state(repo, session, max_attempts=policy.max_attempts)


def start_remediation(
    db: Session,
    *,
    tenant: TenantConfig,
    session: models.TrainingSession,
    capabilities: generators.TrainingCapabilities,
) -> schemas.SessionStateResponse:
    policy = tenant.training
    repo = SessionRepository(db)

    if not policy.enable_remediation:
        raise Conflict("Remediation is not enabled for this tenant")
    if session.attempt_number >= policy.max_attempts:
        raise Conflict("No remediation attempts remain for this session")

    status, attempt_number = apply_session_event(
        session.status,
        session.attempt_number,
        SessionEvent.REMEDIATION_STARTED,
    )
    profile = generators.resolve_role_profile(capabilities, session.tenant_id, session.employee_id)
    weak_areas = list(session.weak_areas or [])
    outline = generators.plan_remediation(
        capabilities,
        profile,
        weak_areas=weak_areas,
        max_modules=policy.max_modules,
    )

    with repo.transaction():
        updated = repo.update_session(
            session.tenant_id,
            session.id,
            {
                "status": status,
                "attempt_number": attempt_number,
                "curriculum": outline.model_dump(mode="json"),
                "weak_areas": None,
                "aggregate_score": None,
                "completed_at": None,
            },
            session.version,
        )
        repo.create_modules(
            session.tenant_id,
            session.id,
            [module.model_dump() for module in outline.modules],
            attempt_number=attempt_number,
        )

    audit.log_remediation_initiated(
        db,
        tenant_id=session.tenant_id,
        employee_id=session.employee_id,
        session_id=session.id,
        attempt_number=attempt_number,
        weak_areas=weak_areas,
    )
    db.commit()
    return _session_state(repo, updated, max_attempts=policy.max_attempts)


def get_session_state(
    db: Session,
    *,
    tenant_id: str,
    employee_id: str,
    config_provider: TenantConfigProvider,
) -> schemas.SessionStateResponse:
    tenant = _require_tenant(config_provider, tenant_id)
    repo = SessionRepository(db)
    session = repo.find_current_session(tenant_id, employee_id)
    return _session_state(repo, session, max_attempts=tenant.training.max_attempts)


def get_session_history(
    db: Session,
    *,
    tenant_id: str,
    employee_id: str,
    config_provider: TenantConfigProvider,
) -> schemas.SessionHistoryResponse:
    tenant = _require_tenant(config_provider, tenant_id)
    repo = SessionRepository(db)
    return schemas.SessionHistoryResponse(
        sessions=[
            _session_state(
                repo,
                session,
                max_attempts=tenant.training.max_attempts,
                current_attempt_only=False,
            )
            for session in repo.find_session_history(tenant_id, employee_id)
        ]
    )


# ---------------------------------------------------------------------------
# MODULE PROGRESSION
# ---------------------------------------------------------------------------


def generate_module_content(
    db: Session,
    *,
    tenant_id: str,
    employee_id: str,
    module_index: int,
    config_provider: TenantConfigProvider,
    capabilities: generators.TrainingCapabilities,
) -> schemas.TrainingModuleRead:
    _require_tenant(config_provider, tenant_id)
    repo = SessionRepository(db)
    session, module = _require_working_module(repo, tenant_id, employee_id, module_index)

    if module.content is not None:
        return to_module_read(module)

    if module_index > 0:
        previous = repo.find_module_by_index(
            tenant_id,
            session.id,
            module_index - 1,
            attempt_number=session.attempt_number,
        )
        if previous is None or previous.status != ModuleStatus.SCORED:
            raise Conflict("Previous module must be completed first")

    profile = generators.resolve_role_profile(capabilities, tenant_id, employee_id)

    status = transition_module(module.status, ModuleEvent.GENERATE_CONTENT)
    module = repo.update_module(tenant_id, module.id, {"status": status}, module.version)
    db.commit()

    # Any failure puts the module back to locked so the call can be retried.
    try:
        content = generators.generate_module_content(
            capabilities,
            profile,
            title=module.title,
            topic_area=module.topic_area,
            job_expectation_indices=module.job_expectation_indices or [],
        )
    except Exception:
        db.rollback()
        rolled_back = transition_module(module.status, ModuleEvent.CONTENT_FAILED)
        repo.update_module(tenant_id, module.id, {"status": rolled_back}, module.version)
        db.commit()
        raise

    status = transition_module(module.status, ModuleEvent.CONTENT_READY)
    module = repo.update_module(
        tenant_id,
        module.id,
        {"status": status, "content": content.model_dump(mode="json")},
        module.version,
    )
    db.commit()
    return to_module_read(module)


def submit_scenario_response(
    db: Session,
    *,
    tenant_id: str,
    employee_id: str,
    module_index: int,
    submission: schemas.ScenarioSubmission,
    config_provider: TenantConfigProvider,
    capabilities: generators.TrainingCapabilities,
) -> schemas.ScenarioResult:
    tenant = _require_tenant(config_provider, tenant_id)
    repo = SessionRepository(db)
    _, module = _require_working_module(repo, tenant_id, employee_id, module_index)

    if module.status not in (ModuleStatus.LEARNING, ModuleStatus.SCENARIO_ACTIVE):
        raise Conflict(f"Module is in '{module.status.value}' state and does not accept scenario responses")

    content = schemas.ModuleContent.model_validate(module.content)
    scenario = next((item for item in content.scenarios if item.id == submission.scenario_id), None)
    if scenario is None:
        raise NotFound(f"Scenario '{submission.scenario_id}' not found")

    responses = list(module.scenario_responses or [])
    if any(response.get("scenario_id") == scenario.id for response in responses):
        raise Conflict(f"Scenario '{scenario.id}' has already been answered")

    record = _record_answer(
        capabilities,
        tenant,
        item=scenario,
        prompt=scenario.narrative,
        submission=submission,
    )
    record["scenario_id"] = scenario.id
    responses.append(record)

    status = module.status
    if status == ModuleStatus.LEARNING:
        status = transition_module(status, ModuleEvent.START_SCENARIO)
    if len(responses) == len(content.scenarios):
        status = transition_module(status, ModuleEvent.SCENARIOS_COMPLETE)

    module = repo.update_module(
        tenant_id,
        module.id,
        {"scenario_responses": responses, "status": status},
        module.version,
    )
    db.commit()
    return schemas.ScenarioResult(
        scenario_id=scenario.id,
        score=record["score"],
        rationale=record["llm_rationale"],
        module_status=module.status,
    )


def submit_quiz(
    db: Session,
    *,
    tenant_id: str,
    employee_id: str,
    module_index: int,
    submission: schemas.QuizSubmission,
    config_provider: TenantConfigProvider,
    capabilities: generators.TrainingCapabilities,
) -> schemas.QuizResult:
    tenant = _require_tenant(config_provider, tenant_id)
    repo = SessionRepository(db)
    session, module = _require_working_module(repo, tenant_id, employee_id, module_index)

    if module.status != ModuleStatus.QUIZ_ACTIVE:
        raise Conflict(f"Module is in '{module.status.value}' state, expected 'quiz-active'")

    content = schemas.ModuleContent.model_validate(module.content)
    questions = {question.id: question for question in content.quiz.questions}
    if len(submission.answers) != len(questions):
        raise ValidationError(f"Expected {len(questions)} answers, got {len(submission.answers)}")
    submitted_ids = [answer.question_id for answer in submission.answers]
    if len(set(submitted_ids)) != len(submitted_ids):
        raise ValidationError("Each question may be answered only once")

    answers: List[Dict[str, Any]] = []
    for answer in submission.answers:
        question = questions.get(answer.question_id)
        if question is None:
            raise ValidationError(f"Unknown question '{answer.question_id}'")
        record = _record_answer(
            capabilities,
            tenant,
            item=question,
            prompt=question.text,
            submission=answer,
        )
        record["question_id"] = question.id
        answers.append(record)

    module_score = compute_module_score(
        [response["score"] for response in module.scenario_responses or []],
        [answer["score"] for answer in answers],
    )
    status = transition_module(module.status, ModuleEvent.QUIZ_SCORED)

    with repo.transaction():
        module = repo.update_module(
            tenant_id,
            module.id,
            {"quiz_answers": answers, "status": status, "module_score": module_score},
            module.version,
        )
        siblings = repo.find_modules_by_session(tenant_id, session.id, attempt_number=session.attempt_number)
        if all(sibling.status == ModuleStatus.SCORED for sibling in siblings):
            session = repo.update_session(
                tenant_id,
                session.id,
                {"status": transition_session(session.status, SessionEvent.ALL_MODULES_SCORED)},
                session.version,
            )

    audit.log_module_completed(
        db,
        tenant_id=tenant_id,
        employee_id=employee_id,
        session_id=session.id,
        module_index=module.module_index,
        module_title=module.title,
        module_score=module_score,
    )
    mc_count = sum(1 for answer in answers if answer["response_type"] == schemas.ResponseType.MULTIPLE_CHOICE.value)
    audit.log_quiz_submitted(
        db,
        tenant_id=tenant_id,
        employee_id=employee_id,
        session_id=session.id,
        module_index=module.module_index,
        question_count=len(answers),
        mc_count=mc_count,
        free_text_count=len(answers) - mc_count,
    )
    db.commit()

    return schemas.QuizResult(
        module_index=module.module_index,
        module_score=module_score,
        session_status=session.status,
        answers=[{"question_id": answer["question_id"], "score": answer["score"]} for answer in answers],
    )


# ---------------------------------------------------------------------------
# EVALUATION / ABANDON
# ---------------------------------------------------------------------------


def evaluate_session(
    db: Session,
    *,
    tenant_id: str,
    employee_id: str,
    config_provider: TenantConfigProvider,
    dispatch: Optional[Dispatch] = None,
) -> schemas.EvaluationResult:
    tenant = _require_tenant(config_provider, tenant_id)
    policy = tenant.training
    repo = SessionRepository(db)
    session = _require_active_session(repo, tenant_id, employee_id)
    if session.status != SessionStatus.EVALUATING:
        raise Conflict(f"Session is in '{session.status.value}' state, expected 'evaluating'")

    modules = repo.find_modules_by_session(tenant_id, session.id, attempt_number=session.attempt_number)
    if not modules or any(module.module_score is None for module in modules):
        raise Conflict("Not all modules have been scored")

    aggregate_score = compute_aggregate_score([module.module_score for module in modules])
    weak_areas = identify_weak_areas(
        [(module.topic_area, module.module_score) for module in modules],
        policy.pass_threshold,
    )
    passed = is_passing(aggregate_score, policy.pass_threshold)
    attempts_remain = session.attempt_number < policy.max_attempts and policy.enable_remediation

    changes: Dict[str, Any] = {"aggregate_score": aggregate_score}
    if passed:
        event, action = SessionEvent.EVALUATION_PASSED, schemas.EvaluationAction.COMPLETE
        changes["completed_at"] = _utcnow()
    elif attempts_remain:
        event, action = SessionEvent.EVALUATION_FAILED, schemas.EvaluationAction.REMEDIATION_AVAILABLE
        changes["weak_areas"] = weak_areas
    else:
        event, action = SessionEvent.EVALUATION_EXHAUSTED, schemas.EvaluationAction.EXHAUSTED
        changes["weak_areas"] = weak_areas
        changes["completed_at"] = _utcnow()
    changes["status"] = transition_session(session.status, event)

    session = repo.update_session(tenant_id, session.id, changes, session.version)
    db.commit()

    audit.log_evaluation_completed(
        db,
        tenant_id=tenant_id,
        employee_id=employee_id,
        session_id=session.id,
        attempt_number=session.attempt_number,
        aggregate_score=aggregate_score,
        passed=passed,
    )
    if session.status == SessionStatus.EXHAUSTED:
        audit.log_session_exhausted(
            db,
            tenant_id=tenant_id,
            employee_id=employee_id,
            session_id=session.id,
            final_score=aggregate_score,
            attempts_used=session.attempt_number,
        )
    db.commit()

    if is_session_terminal(session.status):
        _produce_evidence(db, tenant_id, session.id, config_provider, dispatch)

    return schemas.EvaluationResult(
        session_id=session.id,
        passed=passed,
        aggregate_score=aggregate_score,
        pass_threshold=policy.pass_threshold,
        attempt_number=session.attempt_number,
        max_attempts=policy.max_attempts,
        action=action,
        weak_areas=None if passed else weak_areas,
        module_scores=[
            {"module_index": module.module_index, "title": module.title, "score": module.module_score}
            for module in modules
        ],
        status=session.status,
    )


def abandon_session(
    db: Session,
    *,
    tenant_id: str,
    employee_id: str,
    config_provider: TenantConfigProvider,
    dispatch: Optional[Dispatch] = None,
) -> schemas.TrainingSessionRead:
    _require_tenant(config_provider, tenant_id)
    repo = SessionRepository(db)
    session = _require_active_session(repo, tenant_id, employee_id)
    status = transition_session(session.status, SessionEvent.SESSION_ABANDONED)

    modules = repo.find_modules_by_session(tenant_id, session.id, attempt_number=session.attempt_number)
    session = repo.update_session(
        tenant_id,
        session.id,
        {"status": status, "completed_at": _utcnow()},
        session.version,
    )
    db.commit()

    audit.log_session_abandoned(
        db,
        tenant_id=tenant_id,
        employee_id=employee_id,
        session_id=session.id,
        attempt_number=session.attempt_number,
        modules_completed=sum(1 for module in modules if module.status == ModuleStatus.SCORED),
        total_modules=len(modules),
    )
    db.commit()

    _produce_evidence(db, tenant_id, session.id, config_provider, dispatch)
    return schemas.TrainingSessionRead.model_validate(session)
