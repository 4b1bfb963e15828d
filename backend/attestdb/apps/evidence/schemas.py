from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

CURRENT_SCHEMA_VERSION = 1


# ---------------------------------------------------------------------------
# EVIDENCE BODY
# ---------------------------------------------------------------------------


class SessionSummary(BaseModel):
    session_id: str
    employee_id: str
    tenant_id: str
    attempt_number: int
    total_attempts: int
    status: str
    created_at: datetime
    completed_at: Optional[datetime] = None


class PolicyAttestation(BaseModel):
    config_hash: str
    role_profile_id: str
    role_profile_version: int
    app_version: str
    pass_threshold: float
    max_attempts: int


class EmployeeAnswer(BaseModel):
    selected_option: Optional[str] = None
    free_text_response: Optional[str] = None
    score: float = 0.0
    llm_rationale: Optional[str] = None
    submitted_at: Optional[datetime] = None


class OptionEvidence(BaseModel):
    key: str
    text: str


class ScenarioEvidence(BaseModel):
    scenario_id: str
    narrative: str
    response_type: str
    options: Optional[List[OptionEvidence]] = None
    employee_answer: EmployeeAnswer


class QuizQuestionEvidence(BaseModel):
    question_id: str
    question_text: str
    response_type: str
    options: Optional[List[OptionEvidence]] = None
    employee_answer: EmployeeAnswer


class ModuleEvidence(BaseModel):
    module_index: int
    attempt_number: int
    title: str
    topic_area: str
    module_score: Optional[float] = None
    scenarios: List[ScenarioEvidence] = Field(default_factory=list)
    quiz_questions: List[QuizQuestionEvidence] = Field(default_factory=list)
    completed_at: Optional[datetime] = None


class ModuleScore(BaseModel):
    module_index: int
    title: str
    score: Optional[float] = None


class OutcomeSummary(BaseModel):
    aggregate_score: Optional[float] = None
    # True (passed), False (exhausted), None (abandoned: no verdict).
    passed: Optional[bool] = None
    pass_threshold: float
    weak_areas: Optional[List[str]] = None
    module_scores: List[ModuleScore] = Field(default_factory=list)


class EvidenceBody(BaseModel):
    session: SessionSummary
    policy_attestation: PolicyAttestation
    modules: List[ModuleEvidence]
    outcome: OutcomeSummary


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


class TrainingEvidenceRead(BaseModel):
    id: str
    tenant_id: str
    session_id: str
    employee_id: str
    schema_version: int
    outcome: str
    evidence: Dict[str, Any]
    content_hash: str
    generated_at: datetime

    class Config:
        from_attributes = True


class EvidenceSummary(BaseModel):
    id: str
    session_id: str
    employee_id: str
    schema_version: int
    outcome: str
    content_hash: str
    generated_at: datetime
    aggregate_score: Optional[float] = None
    passed: Optional[bool] = None


class EvidenceListResponse(BaseModel):
    items: List[EvidenceSummary]
    total: int
    limit: int
    offset: int


class EvidenceDetailResponse(BaseModel):
    evidence: TrainingEvidenceRead
    hash_valid: bool
    uploads: List[Dict[str, Any]] = Field(default_factory=list)
