from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from ...config import TenantConfigProvider, get_config_provider
from ...database import get_read_db, get_write_db
from ...errors import NotFound, TrainingError, to_http_exception
from ...security import EmployeeIdentity, get_current_employee, require_tenant
from ..audit import services as audit_services
from ..audit.models import AuditEventType
from ..compliance.repository import ComplianceUploadRepository
from ..compliance.schemas import ComplianceUploadRead
from ..compliance.worker import UploadDispatch, get_upload_dispatch
from ..training.repository import SessionRepository
from . import schemas
from .generator import generate_evidence_for_session
from .hashing import verify_content_hash
from .models import TrainingEvidence
from .pdf_renderer import render_evidence_pdf
from .repository import DEFAULT_LIST_LIMIT, MAX_LIST_LIMIT, EvidenceRepository

router = APIRouter(prefix="/evidence", tags=["evidence"])


def _not_found(message: str) -> HTTPException:
    return to_http_exception(NotFound(message))


def _visible(identity: EmployeeIdentity, employee_id: str) -> bool:
    return identity.is_reviewer or identity.employee_id == employee_id


def _summary(record: TrainingEvidence) -> schemas.EvidenceSummary:
    outcome = (record.evidence or {}).get("outcome") or {}
    return schemas.EvidenceSummary(
        id=record.id,
        session_id=record.session_id,
        employee_id=record.employee_id,
        schema_version=record.schema_version,
        outcome=record.outcome,
        content_hash=record.content_hash,
        generated_at=record.generated_at,
        aggregate_score=outcome.get("aggregate_score"),
        passed=outcome.get("passed"),
    )


@router.get("/{tenant}", response_model=schemas.EvidenceListResponse)
def list_evidence(
    tenant: str,
    employee_id: Optional[str] = Query(None),
    outcome: Optional[str] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    limit: int = Query(DEFAULT_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_read_db),
    identity: EmployeeIdentity = Depends(get_current_employee),
):
    require_tenant(identity, tenant)
    if not identity.is_reviewer:
        employee_id = identity.employee_id
    items, total = EvidenceRepository(db).list_by_tenant(
        tenant,
        employee_id=employee_id,
        start=start,
        end=end,
        outcome=outcome,
        limit=limit,
        offset=offset,
    )
    return schemas.EvidenceListResponse(
        items=[_summary(item) for item in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{tenant}/session/{session_id}", response_model=schemas.EvidenceDetailResponse)
def get_evidence_for_session(
    tenant: str,
    session_id: str,
    db: Session = Depends(get_read_db),
    identity: EmployeeIdentity = Depends(get_current_employee),
):
    require_tenant(identity, tenant)
    record = EvidenceRepository(db).find_by_session_id(tenant, session_id)
    if record is None or not _visible(identity, record.employee_id):
        raise _not_found(f"Evidence for session '{session_id}' not found")
    uploads = ComplianceUploadRepository(db).list_for_evidence(tenant, record.id)
    return schemas.EvidenceDetailResponse(
        evidence=schemas.TrainingEvidenceRead.model_validate(record),
        hash_valid=verify_content_hash(record.evidence, record.content_hash),
        uploads=[ComplianceUploadRead.model_validate(item).model_dump(mode="json") for item in uploads],
    )


@router.post(
    "/{tenant}/session/{session_id}/generate",
    response_model=schemas.TrainingEvidenceRead,
)
def generate_evidence(
    tenant: str,
    session_id: str,
    db: Session = Depends(get_write_db),
    identity: EmployeeIdentity = Depends(get_current_employee),
    config_provider: TenantConfigProvider = Depends(get_config_provider),
    dispatch: UploadDispatch = Depends(get_upload_dispatch),
):
    require_tenant(identity, tenant)
    session = SessionRepository(db).find_session(tenant, session_id)
    if session is None or not _visible(identity, session.employee_id):
        raise _not_found(f"Session '{session_id}' not found")
    try:
        return generate_evidence_for_session(
            db,
            tenant,
            session_id,
            config_provider=config_provider,
            dispatch=dispatch,
        )
    except TrainingError as exc:
        raise to_http_exception(exc) from exc


@router.get("/{tenant}/{evidence_id}/pdf")
def download_evidence_pdf(
    tenant: str,
    evidence_id: str,
    db: Session = Depends(get_write_db),
    identity: EmployeeIdentity = Depends(get_current_employee),
    config_provider: TenantConfigProvider = Depends(get_config_provider),
):
    require_tenant(identity, tenant)
    record = EvidenceRepository(db).find_by_id(tenant, evidence_id)
    if record is None or not _visible(identity, record.employee_id):
        raise _not_found(f"Evidence '{evidence_id}' not found")

    tenant_config = config_provider.get_tenant(tenant)
    display_name = tenant_config.name if tenant_config is not None else tenant
    try:
        document = render_evidence_pdf(record, display_name)
    except TrainingError as exc:
        raise to_http_exception(exc) from exc

    audit_services.log_event(
        db,
        tenant_id=tenant,
        event_type=AuditEventType.EVIDENCE_EXPORTED,
        employee_id=identity.employee_id,
        metadata={
            "evidence_id": record.id,
            "session_id": record.session_id,
            "subject_employee_id": record.employee_id,
            "format": "pdf",
        },
        critical=True,
    )
    db.commit()

    return Response(
        content=document,
        media_type="application/pdf",
        status_code=status.HTTP_200_OK,
        headers={"Content-Disposition": f'attachment; filename="evidence-{record.session_id}.pdf"'},
    )
