from __future__ import annotations

import pytest

from attestdb.apps.training.repository import SessionRepository, VersionConflictError
from attestdb.apps.training.state_machine import ModuleStatus, SessionStatus
from attestdb.errors import Conflict, NotFound

OUTLINES = [
    {"title": "Phishing basics", "topic_area": "Phishing", "job_expectation_indices": [0]},
    {"title": "Password hygiene", "topic_area": "Passwords", "job_expectation_indices": [1]},
]


def _create_session(repo: SessionRepository, tenant_id: str = "acme", employee_id: str = "emp-1"):
    session = repo.create_session(
        tenant_id,
        employee_id=employee_id,
        role_profile_id="role-analyst",
        role_profile_version=1,
        config_hash="a" * 64,
        app_version="test",
    )
    repo.db.commit()
    return session


def test_create_session_starts_at_version_one(db_session):
    repo = SessionRepository(db_session)
    session = _create_session(repo)
    assert session.version == 1
    assert session.status == SessionStatus.CURRICULUM_GENERATING
    assert session.attempt_number == 1


def test_update_increments_version_by_one(db_session):
    repo = SessionRepository(db_session)
    session = _create_session(repo)

    updated = repo.update_session("acme", session.id, {"status": SessionStatus.IN_PROGRESS}, 1)
    db_session.commit()

    assert updated.version == 2
    assert updated.status == SessionStatus.IN_PROGRESS


def test_stale_version_is_rejected_and_not_merged(db_session):
    repo = SessionRepository(db_session)
    session = _create_session(repo)
    repo.update_session("acme", session.id, {"status": SessionStatus.IN_PROGRESS}, 1)
    db_session.commit()

    with pytest.raises(VersionConflictError) as excinfo:
        repo.update_session("acme", session.id, {"status": SessionStatus.ABANDONED}, 1)
    db_session.rollback()

    assert isinstance(excinfo.value, Conflict)
    assert excinfo.value.expected_version == 1
    current = repo.get_session("acme", session.id)
    assert current.status == SessionStatus.IN_PROGRESS
    assert current.version == 2


def test_other_tenant_cannot_see_or_update_session(db_session):
    repo = SessionRepository(db_session)
    session = _create_session(repo)

    assert repo.find_session("globex", session.id) is None
    with pytest.raises(NotFound):
        repo.get_session("globex", session.id)
    with pytest.raises(VersionConflictError):
        repo.update_session("globex", session.id, {"status": SessionStatus.IN_PROGRESS}, 1)


def test_unknown_fields_are_rejected(db_session):
    repo = SessionRepository(db_session)
    session = _create_session(repo)
    with pytest.raises(ValueError):
        repo.update_session("acme", session.id, {"employee_id": "someone-else"}, 1)


def test_active_session_lookup_ignores_terminal_and_failed(db_session):
    repo = SessionRepository(db_session)
    session = _create_session(repo)
    assert repo.find_active_session("acme", "emp-1").id == session.id

    repo.update_session("acme", session.id, {"status": SessionStatus.FAILED}, 1)
    db_session.commit()

    assert repo.find_active_session("acme", "emp-1") is None
    assert repo.find_current_session("acme", "emp-1").id == session.id


def test_modules_are_indexed_from_zero_per_attempt(db_session):
    repo = SessionRepository(db_session)
    session = _create_session(repo)

    with repo.transaction():
        first = repo.create_modules("acme", session.id, OUTLINES, attempt_number=1)
    with repo.transaction():
        second = repo.create_modules("acme", session.id, OUTLINES[:1], attempt_number=2)

    assert [module.module_index for module in first] == [0, 1]
    assert [module.module_index for module in second] == [0]
    assert all(module.status == ModuleStatus.LOCKED for module in first + second)
    assert len(repo.find_modules_by_session("acme", session.id)) == 3
    assert len(repo.find_modules_by_session("acme", session.id, attempt_number=1)) == 2
    found = repo.find_module_by_index("acme", session.id, 0, attempt_number=2)
    assert found.id == second[0].id


def test_duplicate_modules_raise_conflict_and_roll_back(db_session):
    repo = SessionRepository(db_session)
    session = _create_session(repo)
    with repo.transaction():
        repo.create_modules("acme", session.id, OUTLINES)

    with pytest.raises(Conflict):
        with repo.transaction():
            repo.create_modules("acme", session.id, OUTLINES)

    assert len(repo.find_modules_by_session("acme", session.id)) == 2


def test_module_score_requires_scored_status(db_session):
    repo = SessionRepository(db_session)
    session = _create_session(repo)
    with repo.transaction():
        (module, _) = repo.create_modules("acme", session.id, OUTLINES)

    with pytest.raises(ValueError):
        repo.update_module("acme", module.id, {"module_score": 0.5}, module.version)
    with pytest.raises(ValueError):
        repo.update_module("acme", module.id, {"status": ModuleStatus.SCORED}, module.version)

    scored = repo.update_module(
        "acme",
        module.id,
        {"status": ModuleStatus.SCORED, "module_score": 0.5},
        module.version,
    )
    db_session.commit()
    assert scored.version == module.version + 1
    assert scored.module_score == pytest.approx(0.5)


def test_transaction_rolls_back_everything_on_error(db_session):
    repo = SessionRepository(db_session)
    session = _create_session(repo)

    with pytest.raises(VersionConflictError):
        with repo.transaction():
            repo.update_session("acme", session.id, {"status": SessionStatus.IN_PROGRESS}, 1)
            repo.create_modules("acme", session.id, OUTLINES)
            repo.update_session("acme", session.id, {"status": SessionStatus.EVALUATING}, 1)

    current = repo.get_session("acme", session.id)
    assert current.version == 1
    assert current.status == SessionStatus.CURRICULUM_GENERATING
    assert repo.find_modules_by_session("acme", session.id) == []
