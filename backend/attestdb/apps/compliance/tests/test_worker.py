from __future__ import annotations

import threading

import pytest

from attestdb.apps.compliance import orchestrator, worker as worker_module
from attestdb.apps.compliance.worker import ComplianceDispatchWorker
from attestdb.config import StaticConfigProvider


@pytest.fixture()
def recorded(monkeypatch):
    calls = []

    def fake_dispatch(db, tenant_id, evidence_id, *, config_provider):
        calls.append((tenant_id, evidence_id, config_provider))
        if evidence_id == "explode":
            raise RuntimeError("boom")

    monkeypatch.setattr(orchestrator, "dispatch_upload", fake_dispatch)
    return calls


def _worker(session_factory, provider, **kwargs):
    return ComplianceDispatchWorker(
        session_factory=session_factory,
        config_provider_factory=lambda: provider,
        **kwargs,
    )


def test_jobs_run_inline_until_started(session_factory, recorded):
    provider = StaticConfigProvider()
    worker = _worker(session_factory, provider, enabled=True)

    worker.submit("acme", "ev-1")

    assert not worker.running
    assert recorded == [("acme", "ev-1", provider)]


def test_started_worker_processes_queue(session_factory, recorded):
    provider = StaticConfigProvider()
    worker = _worker(session_factory, provider, enabled=True)
    worker.start()
    try:
        assert worker.running
        worker.submit("acme", "ev-1")
        worker.submit("acme", "ev-2")
        worker.join()
    finally:
        worker.stop()

    assert [call[1] for call in recorded] == ["ev-1", "ev-2"]
    assert not worker.running


def test_disabled_worker_never_starts(session_factory, recorded):
    worker = _worker(session_factory, StaticConfigProvider(), enabled=False)
    worker.start()

    assert not worker.running
    worker.submit("acme", "ev-1")
    assert len(recorded) == 1


def test_job_failures_are_swallowed(session_factory, recorded):
    worker = _worker(session_factory, StaticConfigProvider(), enabled=True)
    worker.start()
    try:
        worker.submit("acme", "explode")
        worker.submit("acme", "ev-2")
        worker.join()
    finally:
        worker.stop()

    assert [call[1] for call in recorded] == ["explode", "ev-2"]


def test_upload_dispatch_dependency_submits_to_module_worker(monkeypatch):
    seen = []
    monkeypatch.setattr(worker_module.worker, "submit", lambda tenant_id, evidence_id: seen.append((tenant_id, evidence_id)))

    worker_module.get_upload_dispatch()("acme", "ev-9")

    assert seen == [("acme", "ev-9")]


def test_full_queue_runs_upload_inline(session_factory, monkeypatch):
    calls = []
    picked_up = threading.Event()
    release = threading.Event()

    def slow_dispatch(db, tenant_id, evidence_id, *, config_provider):
        calls.append(evidence_id)
        if evidence_id == "ev-1":
            picked_up.set()
            release.wait(5)

    monkeypatch.setattr(orchestrator, "dispatch_upload", slow_dispatch)
    worker = _worker(session_factory, StaticConfigProvider(), enabled=True, queue_size=1, put_timeout=0.01)
    worker.start()
    try:
        worker.submit("acme", "ev-1")
        assert picked_up.wait(5)
        worker.submit("acme", "ev-2")
        worker.submit("acme", "ev-3")
        assert calls == ["ev-1", "ev-3"]
        release.set()
        worker.join()
    finally:
        release.set()
        worker.stop()

    assert calls == ["ev-1", "ev-3", "ev-2"]
