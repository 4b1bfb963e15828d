from __future__ import annotations

import json

import pytest

from attestdb.apps.evidence import generator
from attestdb.apps.evidence.generator import SessionNotTerminalError, generate_evidence_for_session
from attestdb.apps.evidence.hashing import verify_content_hash
from attestdb.apps.evidence.models import EvidenceImmutableError
from attestdb.apps.evidence.repository import EvidenceRepository
from attestdb.errors import NotFound

TENANT = "acme"


def _passed_session(training_flow):
    training_flow.start()
    training_flow.complete_module(0, mc_key="a", free_text_score=1.0)
    training_flow.complete_module(1, mc_key="a", free_text_score=0.6)
    return training_flow.evaluate()


def test_evidence_body_is_hashed_and_verifiable(training_flow, db_session):
    result = _passed_session(training_flow)
    evidence = EvidenceRepository(db_session).find_by_session_id(TENANT, result.session_id)

    assert evidence.schema_version == 1
    assert verify_content_hash(evidence.evidence, evidence.content_hash)
    body = evidence.evidence
    assert body["session"]["session_id"] == result.session_id
    assert body["session"]["status"] == "passed"
    assert body["session"]["total_attempts"] == 3
    assert body["policy_attestation"]["pass_threshold"] == 0.7
    assert body["policy_attestation"]["role_profile_id"] == "role-analyst"
    assert body["outcome"]["passed"] is True
    assert body["outcome"]["aggregate_score"] == pytest.approx(0.9)
    assert [item["module_index"] for item in body["outcome"]["module_scores"]] == [0, 1]


def test_evidence_never_reveals_correct_answers(training_flow, db_session):
    result = _passed_session(training_flow)
    evidence = EvidenceRepository(db_session).find_by_session_id(TENANT, result.session_id)

    serialized = json.dumps(evidence.evidence)
    assert '"correct"' not in serialized
    assert "rubric" not in serialized
    scenario = evidence.evidence["modules"][0]["scenarios"][0]
    assert scenario["options"] == [{"key": "a", "text": "Report it"}, {"key": "b", "text": "Ignore it"}]
    assert scenario["employee_answer"]["selected_option"] == "a"


def test_generation_is_idempotent(training_flow, db_session, config_provider, dispatched):
    result = _passed_session(training_flow)
    first = EvidenceRepository(db_session).find_by_session_id(TENANT, result.session_id)

    again = generate_evidence_for_session(
        db_session, TENANT, result.session_id, config_provider=config_provider, dispatch=dispatched
    )

    assert again.id == first.id
    assert again.content_hash == first.content_hash
    assert dispatched.calls == [(TENANT, first.id)]


def test_session_must_be_terminal(training_flow, db_session, config_provider, dispatched):
    state = training_flow.start()
    with pytest.raises(SessionNotTerminalError) as excinfo:
        generate_evidence_for_session(
            db_session, TENANT, state.session.id, config_provider=config_provider, dispatch=dispatched
        )
    assert excinfo.value.status_code == 409
    assert dispatched.calls == []


def test_unknown_session_is_not_found(db_session, config_provider):
    with pytest.raises(NotFound):
        generate_evidence_for_session(db_session, TENANT, "missing", config_provider=config_provider)


def test_dispatch_failure_does_not_lose_evidence(training_flow, db_session, monkeypatch):
    def failing_dispatch(tenant_id, evidence_id):
        raise RuntimeError("queue unavailable")

    training_flow.dispatch = failing_dispatch
    result = _passed_session(training_flow)

    assert EvidenceRepository(db_session).find_by_session_id(TENANT, result.session_id) is not None


def test_default_dispatch_uses_upload_entry_point(training_flow, db_session, monkeypatch):
    calls = []
    monkeypatch.setattr(generator, "get_upload_dispatch", lambda: lambda *args: calls.append(args))
    training_flow.dispatch = None
    result = _passed_session(training_flow)

    evidence = EvidenceRepository(db_session).find_by_session_id(TENANT, result.session_id)
    assert calls == [(TENANT, evidence.id)]


def test_evidence_rows_are_immutable(training_flow, db_session):
    result = _passed_session(training_flow)
    evidence = EvidenceRepository(db_session).find_by_session_id(TENANT, result.session_id)

    evidence.outcome = "exhausted"
    with pytest.raises(EvidenceImmutableError):
        db_session.flush()
    db_session.rollback()

    db_session.delete(evidence)
    with pytest.raises(EvidenceImmutableError):
        db_session.flush()
    db_session.rollback()


def test_list_by_tenant_filters_and_paginates(training_flow, db_session):
    for employee in ("emp-001", "emp-002", "emp-003"):
        training_flow.start(employee)
        training_flow.abandon(employee)

    repo = EvidenceRepository(db_session)
    items, total = repo.list_by_tenant(TENANT, limit=2)
    assert total == 3
    assert len(items) == 2

    items, total = repo.list_by_tenant(TENANT, employee_id="emp-002")
    assert total == 1
    assert items[0].employee_id == "emp-002"

    assert repo.list_by_tenant("globex") == ([], 0)
    assert repo.list_by_tenant(TENANT, outcome="passed")[1] == 0


def test_concurrent_insert_returns_existing_record_without_dispatch(
    training_flow, db_session, session_factory, config_provider, monkeypatch
):
    result = _passed_session(training_flow)
    winner = EvidenceRepository(db_session).find_by_session_id(TENANT, result.session_id)

    # The racing generator checks before the winner's insert is visible and
    # only learns about it from the unique constraint.
    real_find = EvidenceRepository.find_by_session_id
    lookups = []

    def find_after_first_miss(self, tenant_id, session_id):
        lookups.append(session_id)
        if len(lookups) == 1:
            return None
        return real_find(self, tenant_id, session_id)

    monkeypatch.setattr(EvidenceRepository, "find_by_session_id", find_after_first_miss)
    racing_dispatch = []
    racing_db = session_factory()
    try:
        record = generate_evidence_for_session(
            racing_db,
            TENANT,
            result.session_id,
            config_provider=config_provider,
            dispatch=lambda tenant_id, evidence_id: racing_dispatch.append(evidence_id),
        )
        assert record.id == winner.id
        assert record.content_hash == winner.content_hash
    finally:
        racing_db.close()

    assert len(lookups) == 2
    assert racing_dispatch == []
    monkeypatch.undo()
    assert EvidenceRepository(db_session).list_by_tenant(TENANT)[1] == 1
