# backend/attestdb/apps/training/generators.py
"""
Content generation capabilities consumed by the training services.

This module defines the seams only. A deployment plugs a real generator in
by overriding `get_training_capabilities`; without one every generation call
fails with ServiceUnavailable.

Generators return plain dicts (the structured output of whatever model sits
behind them). Everything returned is validated here before it reaches the
database, so a misbehaving generator surfaces as `generation_failed` rather
than corrupt session state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from ...errors import NotFound, ServiceUnavailable
from . import schemas


class GenerationError(ServiceUnavailable):
    """code is `ai_unavailable` (upstream down) or `generation_failed` (bad output)."""


@dataclass(frozen=True)
class RoleProfile:
    id: str
    version: int
    job_expectations: List[str] = field(default_factory=list)


class RoleProfileSource:
    def find_by_employee(self, tenant_id: str, employee_id: str) -> Optional[RoleProfile]:
        raise NotImplementedError


class ContentGenerator:
    def generate_curriculum(self, *, job_expectations: Sequence[str], max_modules: int) -> Dict[str, Any]:
        raise NotImplementedError

    def generate_module_content(
        self,
        *,
        title: str,
        topic_area: str,
        job_expectations: Sequence[str],
    ) -> Dict[str, Any]:
        raise NotImplementedError

    def evaluate_free_text(self, *, question: str, rubric: str, response: str) -> Dict[str, Any]:
        raise NotImplementedError

    def plan_remediation(
        self,
        *,
        weak_areas: Sequence[str],
        job_expectations: Sequence[str],
        max_modules: int,
    ) -> Dict[str, Any]:
        raise NotImplementedError


class UnconfiguredContentGenerator(ContentGenerator):
    def _unavailable(self, *args, **kwargs):
        raise GenerationError("No content generator is configured", code="ai_unavailable")

    generate_curriculum = _unavailable
    generate_module_content = _unavailable
    evaluate_free_text = _unavailable
    plan_remediation = _unavailable


class UnconfiguredRoleProfileSource(RoleProfileSource):
    def find_by_employee(self, tenant_id: str, employee_id: str) -> Optional[RoleProfile]:
        return None


@dataclass
class TrainingCapabilities:
    generator: ContentGenerator = field(default_factory=UnconfiguredContentGenerator)
    profiles: RoleProfileSource = field(default_factory=UnconfiguredRoleProfileSource)


def get_training_capabilities() -> TrainingCapabilities:
    """FastAPI dependency; override in the app to plug real capabilities in."""
    return TrainingCapabilities()


# ---------------------------------------------------------------------------
# VALIDATING WRAPPERS
# ---------------------------------------------------------------------------


def _call(fn, **kwargs) -> Dict[str, Any]:
    try:
        return fn(**kwargs)
    except GenerationError:
        raise
    except NotImplementedError as exc:
        raise GenerationError("Content generator does not support this operation", code="ai_unavailable") from exc
    except Exception as exc:
        raise GenerationError(f"AI provider error: {exc}", code="ai_unavailable") from exc


def _with_timestamp(payload: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise GenerationError("Generator returned a non-object payload", code="generation_failed")
    data = dict(payload)
    data.setdefault("generated_at", datetime.now(timezone.utc))
    return data


def resolve_role_profile(capabilities: TrainingCapabilities, tenant_id: str, employee_id: str) -> RoleProfile:
    profile = capabilities.profiles.find_by_employee(tenant_id, employee_id)
    if profile is None:
        raise NotFound("No confirmed role profile found")
    return profile


def generate_curriculum(
    capabilities: TrainingCapabilities,
    profile: RoleProfile,
    *,
    max_modules: int,
) -> schemas.CurriculumOutline:
    raw = _call(
        capabilities.generator.generate_curriculum,
        job_expectations=list(profile.job_expectations),
        max_modules=max_modules,
    )
    try:
        outline = schemas.CurriculumOutline.model_validate(_with_timestamp(raw))
    except PydanticValidationError as exc:
        raise GenerationError(f"Curriculum failed validation: {exc}", code="generation_failed") from exc
    if len(outline.modules) > max_modules:
        raise GenerationError(
            f"Curriculum has {len(outline.modules)} modules, more than the allowed {max_modules}",
            code="generation_failed",
        )
    return outline


def generate_module_content(
    capabilities: TrainingCapabilities,
    profile: RoleProfile,
    *,
    title: str,
    topic_area: str,
    job_expectation_indices: Sequence[int],
) -> schemas.ModuleContent:
    expectations = [
        profile.job_expectations[index]
        for index in job_expectation_indices
        if 0 <= index < len(profile.job_expectations)
    ]
    raw = _call(
        capabilities.generator.generate_module_content,
        title=title,
        topic_area=topic_area,
        job_expectations=expectations,
    )
    try:
        content = schemas.ModuleContent.model_validate(_with_timestamp(raw))
    except PydanticValidationError as exc:
        raise GenerationError(f"Module content failed validation: {exc}", code="generation_failed") from exc

    for item in [*content.scenarios, *content.quiz.questions]:
        if item.response_type == schemas.ResponseType.MULTIPLE_CHOICE:
            correct = [option for option in item.options or [] if option.correct]
            if len(correct) != 1:
                raise GenerationError(
                    f"Multiple-choice item '{item.id}' must have exactly one correct option",
                    code="generation_failed",
                )
    return content


def evaluate_free_text(
    capabilities: TrainingCapabilities,
    *,
    question: str,
    rubric: str,
    response: str,
) -> schemas.FreeTextEvaluation:
    if len(response) > schemas.MAX_FREE_TEXT_LENGTH:
        raise GenerationError(
            f"Response exceeds maximum length of {schemas.MAX_FREE_TEXT_LENGTH} characters",
            code="generation_failed",
        )
    raw = _call(
        capabilities.generator.evaluate_free_text,
        question=question,
        rubric=rubric,
        response=response,
    )
    try:
        return schemas.FreeTextEvaluation.model_validate(raw)
    except PydanticValidationError as exc:
        raise GenerationError(f"Evaluation failed validation: {exc}", code="generation_failed") from exc


def plan_remediation(
    capabilities: TrainingCapabilities,
    profile: RoleProfile,
    *,
    weak_areas: Sequence[str],
    max_modules: int,
) -> schemas.CurriculumOutline:
    raw = _call(
        capabilities.generator.plan_remediation,
        weak_areas=list(weak_areas),
        job_expectations=list(profile.job_expectations),
        max_modules=max_modules,
    )
    try:
        outline = schemas.CurriculumOutline.model_validate(_with_timestamp(raw))
    except PydanticValidationError as exc:
        raise GenerationError(f"Remediation plan failed validation: {exc}", code="generation_failed") from exc
    if len(outline.modules) > max_modules:
        raise GenerationError(
            f"Remediation plan has {len(outline.modules)} modules, more than the allowed {max_modules}",
            code="generation_failed",
        )

    lowered = [area.lower() for area in weak_areas]
    for module in outline.modules:
        topic = module.topic_area.lower()
        if not any(topic in area or area in topic for area in lowered):
            raise GenerationError(
                f'Remediation module topic "{module.topic_area}" does not align with any weak area',
                code="generation_failed",
            )
    return outline
