from __future__ import annotations

import pytest

from attestdb.apps.compliance.models import UploadStatus
from attestdb.apps.compliance.repository import ComplianceUploadRepository, UploadAlreadyTerminalError

TENANT = "acme"


def _create(repo, evidence_id="ev-1", provider="sprinto"):
    return repo.create(TENANT, evidence_id=evidence_id, session_id="sess-1", provider=provider, max_attempts=5)


def test_one_record_per_evidence_and_provider(db_session):
    repo = ComplianceUploadRepository(db_session)
    first, created = _create(repo)
    second, created_again = _create(repo)

    assert created is True
    assert created_again is False
    assert second.id == first.id
    assert first.status == UploadStatus.PENDING
    assert first.completed_at is None

    other, created_other = _create(repo, provider="vanta")
    assert created_other is True
    assert other.id != first.id


def test_attempts_update_pending_record(db_session):
    repo = ComplianceUploadRepository(db_session)
    record, _ = _create(repo)

    record = repo.record_attempt(
        record, attempt_count=1, last_error="503", last_error_code="SERVER_ERROR", retryable=True
    )
    assert record.status == UploadStatus.PENDING
    assert record.attempt_count == 1

    record = repo.mark_succeeded(record, attempt_count=2, provider_reference_id="REVIEW_PENDING")
    assert record.status == UploadStatus.SUCCEEDED
    assert record.attempt_count == 2
    assert record.last_error_code is None
    assert record.completed_at is not None


def test_terminal_records_are_never_rewritten(db_session):
    repo = ComplianceUploadRepository(db_session)
    record, _ = _create(repo)
    record = repo.mark_failed(record, attempt_count=1, last_error="bad key", last_error_code="AUTH_FAILED", retryable=False)

    with pytest.raises(UploadAlreadyTerminalError):
        repo.mark_succeeded(record, attempt_count=2, provider_reference_id="x")

    stored = repo.find(TENANT, "ev-1", "sprinto")
    assert stored.status == UploadStatus.FAILED
    assert stored.last_error_code == "AUTH_FAILED"


def test_list_by_tenant_filters(db_session):
    repo = ComplianceUploadRepository(db_session)
    first, _ = _create(repo, evidence_id="ev-1")
    _create(repo, evidence_id="ev-2")
    repo.mark_failed(first, last_error_code="AUTH_FAILED")

    items, total = repo.list_by_tenant(TENANT)
    assert total == 2
    failed, failed_total = repo.list_by_tenant(TENANT, status=UploadStatus.FAILED)
    assert failed_total == 1
    assert failed[0].evidence_id == "ev-1"
    assert repo.list_by_tenant("globex") == ([], 0)
