from __future__ import annotations

import inspect

import pytest
from fastapi import HTTPException

from attestdb.apps.training import router as training_router
from attestdb.security import EmployeeIdentity

TENANT = "acme"


def _identity(tenant: str = TENANT) -> EmployeeIdentity:
    return EmployeeIdentity(tenant_id=tenant, employee_id="emp-001")


def test_start_then_conflict_maps_to_409(db_session, config_provider, capabilities):
    kwargs = dict(db=db_session, identity=_identity(), config_provider=config_provider, capabilities=capabilities)
    state = training_router.start_session(TENANT, **kwargs)
    assert state.session.status == "in-progress"

    with pytest.raises(HTTPException) as excinfo:
        training_router.start_session(TENANT, **kwargs)
    assert excinfo.value.status_code == 409
    assert excinfo.value.detail["error"] == "conflict"


def test_no_session_returns_empty_state(db_session, config_provider):
    state = training_router.get_session(
        TENANT, history=False, db=db_session, identity=_identity(), config_provider=config_provider
    )
    assert state.session is None
    assert state.modules == []


def test_abandon_without_session_maps_to_404(db_session, config_provider, dispatched):
    with pytest.raises(HTTPException) as excinfo:
        training_router.abandon(
            TENANT, db=db_session, identity=_identity(), config_provider=config_provider, dispatch=dispatched
        )
    assert excinfo.value.status_code == 404


def test_other_tenant_path_is_rejected(db_session, config_provider, capabilities):
    with pytest.raises(HTTPException) as excinfo:
        training_router.start_session(
            TENANT,
            db=db_session,
            identity=_identity("globex"),
            config_provider=config_provider,
            capabilities=capabilities,
        )
    assert excinfo.value.status_code == 401


def test_generation_failure_maps_to_503(db_session, config_provider, capabilities, fake_generator):
    kwargs = dict(db=db_session, identity=_identity(), config_provider=config_provider, capabilities=capabilities)
    training_router.start_session(TENANT, **kwargs)
    fake_generator.fail_content = True

    with pytest.raises(HTTPException) as excinfo:
        training_router.generate_module_content(TENANT, module_index=0, **kwargs)
    assert excinfo.value.status_code == 503


def test_every_endpoint_scopes_to_path_tenant():
    for endpoint in (
        training_router.start_session,
        training_router.get_session,
        training_router.generate_module_content,
        training_router.submit_scenario,
        training_router.submit_quiz,
        training_router.evaluate,
        training_router.abandon,
    ):
        assert "require_tenant(identity, tenant)" in inspect.getsource(endpoint)
