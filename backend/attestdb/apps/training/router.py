from __future__ import annotations

from typing import Union

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session

from ...config import TenantConfigProvider, get_config_provider
from ...database import get_read_db, get_write_db
from ...errors import TrainingError, to_http_exception
from ...security import EmployeeIdentity, get_current_employee, require_tenant
from ..compliance.worker import UploadDispatch, get_upload_dispatch
from . import schemas, services
from .generators import TrainingCapabilities, get_training_capabilities

router = APIRouter(prefix="/training", tags=["training"])


def _run(action, *args, **kwargs):
    try:
        return action(*args, **kwargs)
    except TrainingError as exc:
        raise to_http_exception(exc) from exc


@router.post(
    "/{tenant}/session",
    response_model=schemas.SessionStateResponse,
    status_code=status.HTTP_201_CREATED,
)
def start_session(
    tenant: str,
    db: Session = Depends(get_write_db),
    identity: EmployeeIdentity = Depends(get_current_employee),
    config_provider: TenantConfigProvider = Depends(get_config_provider),
    capabilities: TrainingCapabilities = Depends(get_training_capabilities),
):
    require_tenant(identity, tenant)
    return _run(
        services.start_session,
        db,
        tenant_id=tenant,
        employee_id=identity.employee_id,
        config_provider=config_provider,
        capabilities=capabilities,
    )


@router.get(
    "/{tenant}/session",
    response_model=Union[schemas.SessionStateResponse, schemas.SessionHistoryResponse],
)
def get_session(
    tenant: str,
    history: bool = Query(False),
    db: Session = Depends(get_read_db),
    identity: EmployeeIdentity = Depends(get_current_employee),
    config_provider: TenantConfigProvider = Depends(get_config_provider),
):
    require_tenant(identity, tenant)
    action = services.get_session_history if history else services.get_session_state
    return _run(
        action,
        db,
        tenant_id=tenant,
        employee_id=identity.employee_id,
        config_provider=config_provider,
    )


@router.post("/{tenant}/module/{module_index}/content", response_model=schemas.TrainingModuleRead)
def generate_module_content(
    tenant: str,
    module_index: int = Path(..., ge=0, le=schemas.MAX_MODULE_INDEX),
    db: Session = Depends(get_write_db),
    identity: EmployeeIdentity = Depends(get_current_employee),
    config_provider: TenantConfigProvider = Depends(get_config_provider),
    capabilities: TrainingCapabilities = Depends(get_training_capabilities),
):
    require_tenant(identity, tenant)
    return _run(
        services.generate_module_content,
        db,
        tenant_id=tenant,
        employee_id=identity.employee_id,
        module_index=module_index,
        config_provider=config_provider,
        capabilities=capabilities,
    )


@router.post("/{tenant}/module/{module_index}/scenario", response_model=schemas.ScenarioResult)
def submit_scenario(
    tenant: str,
    payload: schemas.ScenarioSubmission,
    module_index: int = Path(..., ge=0, le=schemas.MAX_MODULE_INDEX),
    db: Session = Depends(get_write_db),
    identity: EmployeeIdentity = Depends(get_current_employee),
    config_provider: TenantConfigProvider = Depends(get_config_provider),
    capabilities: TrainingCapabilities = Depends(get_training_capabilities),
):
    require_tenant(identity, tenant)
    return _run(
        services.submit_scenario_response,
        db,
        tenant_id=tenant,
        employee_id=identity.employee_id,
        module_index=module_index,
        submission=payload,
        config_provider=config_provider,
        capabilities=capabilities,
    )


@router.post("/{tenant}/module/{module_index}/quiz", response_model=schemas.QuizResult)
def submit_quiz(
    tenant: str,
    payload: schemas.QuizSubmission,
    module_index: int = Path(..., ge=0, le=schemas.MAX_MODULE_INDEX),
    db: Session = Depends(get_write_db),
    identity: EmployeeIdentity = Depends(get_current_employee),
    config_provider: TenantConfigProvider = Depends(get_config_provider),
    capabilities: TrainingCapabilities = Depends(get_training_capabilities),
):
    require_tenant(identity, tenant)
    return _run(
        services.submit_quiz,
        db,
        tenant_id=tenant,
        employee_id=identity.employee_id,
        module_index=module_index,
        submission=payload,
        config_provider=config_provider,
        capabilities=capabilities,
    )


@router.post("/{tenant}/evaluate", response_model=schemas.EvaluationResult)
def evaluate(
    tenant: str,
    db: Session = Depends(get_write_db),
    identity: EmployeeIdentity = Depends(get_current_employee),
    config_provider: TenantConfigProvider = Depends(get_config_provider),
    dispatch: UploadDispatch = Depends(get_upload_dispatch),
):
    require_tenant(identity, tenant)
    return _run(
        services.evaluate_session,
        db,
        tenant_id=tenant,
        employee_id=identity.employee_id,
        config_provider=config_provider,
        dispatch=dispatch,
    )


@router.post("/{tenant}/abandon", response_model=schemas.TrainingSessionRead)
def abandon(
    tenant: str,
    db: Session = Depends(get_write_db),
    identity: EmployeeIdentity = Depends(get_current_employee),
    config_provider: TenantConfigProvider = Depends(get_config_provider),
    dispatch: UploadDispatch = Depends(get_upload_dispatch),
):
    require_tenant(identity, tenant)
    return _run(
        services.abandon_session,
        db,
        tenant_id=tenant,
        employee_id=identity.employee_id,
        config_provider=config_provider,
        dispatch=dispatch,
    )
