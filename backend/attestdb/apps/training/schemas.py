from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from .state_machine import ModuleStatus, SessionStatus

MAX_MODULE_INDEX = 19
MAX_FREE_TEXT_LENGTH = 2000


class ResponseType(str, enum.Enum):
    MULTIPLE_CHOICE = "multiple-choice"
    FREE_TEXT = "free-text"


# ---------------------------------------------------------------------------
# GENERATED CONTENT (stored as JSON on the session/module rows)
# ---------------------------------------------------------------------------


class CurriculumOutlineModule(BaseModel):
    title: str = Field(..., min_length=1)
    topic_area: str = Field(..., min_length=1)
    job_expectation_indices: List[int] = Field(default_factory=list)


class CurriculumOutline(BaseModel):
    modules: List[CurriculumOutlineModule] = Field(..., min_length=1, max_length=8)
    generated_at: datetime


class McOption(BaseModel):
    key: str
    text: str
    correct: bool = False


class Scenario(BaseModel):
    id: str
    narrative: str
    response_type: ResponseType
    options: Optional[List[McOption]] = None
    rubric: Optional[str] = None


class QuizQuestion(BaseModel):
    id: str
    text: str
    response_type: ResponseType
    options: Optional[List[McOption]] = None
    rubric: Optional[str] = None


class Quiz(BaseModel):
    questions: List[QuizQuestion] = Field(..., min_length=1)


class ModuleContent(BaseModel):
    instruction: str = Field(..., min_length=1)
    scenarios: List[Scenario] = Field(..., min_length=1)
    quiz: Quiz
    generated_at: datetime


class FreeTextEvaluation(BaseModel):
    score: float = Field(..., ge=0.0, le=1.0)
    rationale: str = Field(..., min_length=1)


class RecordedAnswer(BaseModel):
    """Shape of one entry in scenario_responses / quiz_answers."""

    response_type: ResponseType
    selected_option: Optional[str] = None
    free_text_response: Optional[str] = Field(None, max_length=MAX_FREE_TEXT_LENGTH)
    score: float = Field(..., ge=0.0, le=1.0)
    llm_rationale: Optional[str] = None
    submitted_at: datetime


class ScenarioResponse(RecordedAnswer):
    scenario_id: str


class QuizAnswer(RecordedAnswer):
    question_id: str


# ---------------------------------------------------------------------------
# REQUESTS
# ---------------------------------------------------------------------------


class _AnswerSubmission(BaseModel):
    response_type: ResponseType
    selected_option: Optional[str] = None
    free_text_response: Optional[str] = Field(None, max_length=MAX_FREE_TEXT_LENGTH)

    @model_validator(mode="after")
    def _check_payload(self):
        if self.response_type == ResponseType.MULTIPLE_CHOICE and self.selected_option is None:
            raise ValueError("selected_option is required for multiple-choice responses")
        if self.response_type == ResponseType.FREE_TEXT and self.free_text_response is None:
            raise ValueError("free_text_response is required for free-text responses")
        return self


class ScenarioSubmission(_AnswerSubmission):
    scenario_id: str = Field(..., min_length=1)


class QuizAnswerSubmission(_AnswerSubmission):
    question_id: str = Field(..., min_length=1)


class QuizSubmission(BaseModel):
    answers: List[QuizAnswerSubmission] = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# RESPONSES (client-safe: answer keys and rubrics are stripped)
# ---------------------------------------------------------------------------


class McOptionClient(BaseModel):
    key: str
    text: str


class ScenarioClient(BaseModel):
    id: str
    narrative: str
    response_type: ResponseType
    options: Optional[List[McOptionClient]] = None


class QuizQuestionClient(BaseModel):
    id: str
    text: str
    response_type: ResponseType
    options: Optional[List[McOptionClient]] = None


class QuizClient(BaseModel):
    questions: List[QuizQuestionClient]


class ModuleContentClient(BaseModel):
    instruction: str
    scenarios: List[ScenarioClient]
    quiz: QuizClient
    generated_at: datetime


class TrainingModuleRead(BaseModel):
    id: str
    session_id: str
    module_index: int
    attempt_number: int
    title: str
    topic_area: str
    job_expectation_indices: List[int]
    status: ModuleStatus
    content: Optional[ModuleContentClient] = None
    scenario_responses: List[Dict[str, Any]] = Field(default_factory=list)
    quiz_answers: List[Dict[str, Any]] = Field(default_factory=list)
    module_score: Optional[float] = None
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TrainingSessionRead(BaseModel):
    id: str
    tenant_id: str
    employee_id: str
    role_profile_id: str
    role_profile_version: int
    config_hash: str
    app_version: str
    status: SessionStatus
    attempt_number: int
    curriculum: Optional[Dict[str, Any]] = None
    aggregate_score: Optional[float] = None
    weak_areas: Optional[List[str]] = None
    version: int
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SessionStateResponse(BaseModel):
    session: Optional[TrainingSessionRead] = None
    modules: List[TrainingModuleRead] = Field(default_factory=list)
    max_attempts: int


class SessionHistoryResponse(BaseModel):
    sessions: List[SessionStateResponse] = Field(default_factory=list)


class ScenarioResult(BaseModel):
    scenario_id: str
    score: float
    rationale: Optional[str] = None
    module_status: ModuleStatus


class QuizResult(BaseModel):
    module_index: int
    module_score: float
    session_status: SessionStatus
    answers: List[Dict[str, Any]]


class EvaluationAction(str, enum.Enum):
    COMPLETE = "complete"
    REMEDIATION_AVAILABLE = "remediation-available"
    EXHAUSTED = "exhausted"


class EvaluationResult(BaseModel):
    session_id: str
    passed: bool
    aggregate_score: float
    pass_threshold: float
    attempt_number: int
    max_attempts: int
    action: EvaluationAction
    weak_areas: Optional[List[str]] = None
    module_scores: List[Dict[str, Any]] = Field(default_factory=list)
    status: SessionStatus
