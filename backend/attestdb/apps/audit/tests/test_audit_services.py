from __future__ import annotations

import pytest

from attestdb.apps.audit import services as audit_services
from attestdb.apps.audit.models import AuditEventType


def test_log_event_writes_record(db_session):
    event = audit_services.log_event(
        db_session,
        tenant_id="acme",
        event_type=AuditEventType.SESSION_STARTED,
        employee_id="emp-1",
        metadata={"session_id": "s-1", "attempt_number": 1},
    )
    db_session.commit()

    assert event is not None
    assert event.event_type == "training-session-started"
    assert event.metadata_json == {"session_id": "s-1", "attempt_number": 1}
    assert event.occurred_at is not None


def test_list_filters_by_tenant_type_and_employee(db_session):
    for tenant, event_type, employee in [
        ("acme", AuditEventType.SESSION_STARTED, "emp-1"),
        ("acme", AuditEventType.SESSION_ABANDONED, "emp-1"),
        ("acme", AuditEventType.SESSION_STARTED, "emp-2"),
        ("globex", AuditEventType.SESSION_STARTED, "emp-1"),
    ]:
        audit_services.log_event(db_session, tenant_id=tenant, event_type=event_type, employee_id=employee)
    db_session.commit()

    assert len(audit_services.list_audit_events(db_session, tenant_id="acme")) == 3
    started = audit_services.list_audit_events(
        db_session, tenant_id="acme", event_type="training-session-started"
    )
    assert {event.employee_id for event in started} == {"emp-1", "emp-2"}
    assert len(audit_services.list_audit_events(db_session, tenant_id="acme", employee_id="emp-1")) == 2


def test_non_critical_failure_is_swallowed(db_session, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("storage down")

    monkeypatch.setattr(audit_services, "create_audit_event", boom)
    assert (
        audit_services.log_event(
            db_session, tenant_id="acme", event_type=AuditEventType.SESSION_STARTED, employee_id="emp-1"
        )
        is None
    )


def test_critical_failure_raises(db_session, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("storage down")

    monkeypatch.setattr(audit_services, "create_audit_event", boom)
    with pytest.raises(RuntimeError):
        audit_services.log_event(
            db_session,
            tenant_id="acme",
            event_type=AuditEventType.EVIDENCE_EXPORTED,
            employee_id="emp-1",
            critical=True,
        )
