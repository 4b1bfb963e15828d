from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["COMPLIANCE_WORKER_ENABLED"] = "0"

from attestdb.database import Base  # noqa: E402
from attestdb.config import (  # noqa: E402
    ComplianceIntegration,
    RetryPolicy,
    StaticConfigProvider,
    TenantConfig,
    TrainingPolicy,
)
from attestdb.apps.audit import models as audit_models  # noqa: E402
from attestdb.apps.training import models as training_models  # noqa: E402
from attestdb.apps.training.generators import (  # noqa: E402
    ContentGenerator,
    RoleProfile,
    RoleProfileSource,
    TrainingCapabilities,
)
from attestdb.apps.evidence import models as evidence_models  # noqa: E402
from attestdb.apps.compliance import models as compliance_models  # noqa: E402

TENANT_ID = "acme"
EMPLOYEE_ID = "emp-001"


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(
        bind=engine,
        tables=[
            audit_models.AuditEvent.__table__,
            training_models.TrainingSession.__table__,
            training_models.TrainingModule.__table__,
            evidence_models.TrainingEvidence.__table__,
            compliance_models.ComplianceUploadRecord.__table__,
        ],
    )
    yield sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ---------------------------------------------------------------------------
# TENANT CONFIG
# ---------------------------------------------------------------------------


def make_tenant(
    tenant_id: str = TENANT_ID,
    *,
    compliance: Optional[ComplianceIntegration] = None,
    **training: Any,
) -> TenantConfig:
    return TenantConfig(
        tenant_id=tenant_id,
        name="Acme Corp",
        training=TrainingPolicy(**training),
        compliance=compliance,
    )


def make_integration(**retry: Any) -> ComplianceIntegration:
    return ComplianceIntegration(
        provider="sprinto",
        api_key_ref="${SPRINTO_API_KEY:-test-key}",
        workflow_check_id="3fa85f64-5717-4562-b3fc-2c963f66afa6",
        region="us",
        retry=RetryPolicy(**retry),
    )


@pytest.fixture()
def config_provider():
    return StaticConfigProvider([make_tenant()])


# ---------------------------------------------------------------------------
# CONTENT GENERATION FAKES
# ---------------------------------------------------------------------------


class FakeContentGenerator(ContentGenerator):
    """
    Each module has one multiple-choice scenario (correct key "a") and one
    free-text quiz question. Free-text answers are scored by parsing the
    response as a float, so tests pick module scores directly:
    module score = mean(mc score, float(free text)).
    """

    def __init__(self, topics: Sequence[str] = ("Phishing", "Passwords")) -> None:
        self.topics = list(topics)
        self.fail_content = False
        self.calls: List[str] = []

    def generate_curriculum(self, *, job_expectations, max_modules) -> Dict[str, Any]:
        self.calls.append("curriculum")
        return {
            "modules": [
                {"title": f"{topic} basics", "topic_area": topic, "job_expectation_indices": [0]}
                for topic in self.topics[:max_modules]
            ]
        }

    def generate_module_content(self, *, title, topic_area, job_expectations) -> Dict[str, Any]:
        self.calls.append(f"content:{topic_area}")
        if self.fail_content:
            raise RuntimeError("model offline")
        return {
            "instruction": f"Learn about {topic_area}.",
            "scenarios": [
                {
                    "id": "s1",
                    "narrative": f"A {topic_area} situation arises.",
                    "response_type": "multiple-choice",
                    "options": [
                        {"key": "a", "text": "Report it", "correct": True},
                        {"key": "b", "text": "Ignore it", "correct": False},
                    ],
                }
            ],
            "quiz": {
                "questions": [
                    {
                        "id": "q1",
                        "text": f"Explain how you handle {topic_area}.",
                        "response_type": "free-text",
                        "rubric": "Mentions reporting.",
                    }
                ]
            },
        }

    def evaluate_free_text(self, *, question, rubric, response) -> Dict[str, Any]:
        self.calls.append("evaluate")
        try:
            score = float(response.split()[0])
        except (IndexError, ValueError):
            score = 0.5
        return {"score": score, "rationale": f"Scored {score} against rubric."}

    def plan_remediation(self, *, weak_areas, job_expectations, max_modules) -> Dict[str, Any]:
        self.calls.append("remediation")
        return {
            "modules": [
                {"title": f"{area} refresher", "topic_area": area, "job_expectation_indices": [0]}
                for area in list(weak_areas)[:max_modules]
            ]
        }


class FakeRoleProfileSource(RoleProfileSource):
    def __init__(self, profile: Optional[RoleProfile] = None) -> None:
        self.profile = profile or RoleProfile(
            id="role-analyst",
            version=2,
            job_expectations=["Handles customer data", "Reads external email"],
        )

    def find_by_employee(self, tenant_id: str, employee_id: str) -> Optional[RoleProfile]:
        return self.profile


@pytest.fixture()
def fake_generator():
    return FakeContentGenerator()


@pytest.fixture()
def capabilities(fake_generator):
    return TrainingCapabilities(generator=fake_generator, profiles=FakeRoleProfileSource())


@pytest.fixture()
def dispatched():
    """Records (tenant_id, evidence_id) pairs handed to compliance dispatch."""
    calls: List[tuple] = []

    def dispatch(tenant_id: str, evidence_id: str) -> None:
        calls.append((tenant_id, evidence_id))

    dispatch.calls = calls  # type: ignore[attr-defined]
    return dispatch


@pytest.fixture()
def tenant_factory():
    return make_tenant


@pytest.fixture()
def integration_factory():
    return make_integration


class TrainingFlow:
    """Drives the training services through whole modules for a test."""

    def __init__(self, db, config_provider, capabilities, dispatch) -> None:
        self.db = db
        self.config_provider = config_provider
        self.capabilities = capabilities
        self.dispatch = dispatch

    def _kwargs(self, employee_id: str) -> Dict[str, Any]:
        return {
            "tenant_id": TENANT_ID,
            "employee_id": employee_id,
            "config_provider": self.config_provider,
        }

    def start(self, employee_id: str = EMPLOYEE_ID):
        from attestdb.apps.training import services

        return services.start_session(self.db, capabilities=self.capabilities, **self._kwargs(employee_id))

    def complete_module(
        self,
        module_index: int,
        *,
        mc_key: str = "a",
        free_text_score: float = 1.0,
        employee_id: str = EMPLOYEE_ID,
    ):
        from attestdb.apps.training import schemas, services

        kwargs = self._kwargs(employee_id)
        services.generate_module_content(
            self.db, module_index=module_index, capabilities=self.capabilities, **kwargs
        )
        services.submit_scenario_response(
            self.db,
            module_index=module_index,
            submission=schemas.ScenarioSubmission(
                scenario_id="s1", response_type="multiple-choice", selected_option=mc_key
            ),
            capabilities=self.capabilities,
            **kwargs,
        )
        return services.submit_quiz(
            self.db,
            module_index=module_index,
            submission=schemas.QuizSubmission(
                answers=[
                    schemas.QuizAnswerSubmission(
                        question_id="q1",
                        response_type="free-text",
                        free_text_response=f"{free_text_score} I would report it to security.",
                    )
                ]
            ),
            capabilities=self.capabilities,
            **kwargs,
        )

    def evaluate(self, employee_id: str = EMPLOYEE_ID):
        from attestdb.apps.training import services

        return services.evaluate_session(self.db, dispatch=self.dispatch, **self._kwargs(employee_id))

    def abandon(self, employee_id: str = EMPLOYEE_ID):
        from attestdb.apps.training import services

        return services.abandon_session(self.db, dispatch=self.dispatch, **self._kwargs(employee_id))


@pytest.fixture()
def training_flow(db_session, config_provider, capabilities, dispatched):
    return TrainingFlow(db_session, config_provider, capabilities, dispatched)
