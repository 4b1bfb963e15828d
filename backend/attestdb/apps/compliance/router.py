from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_read_db
from ...security import EmployeeIdentity, require_roles, require_tenant
from . import schemas
from .models import UploadStatus
from .repository import ComplianceUploadRepository

router = APIRouter(prefix="/compliance", tags=["compliance"])


@router.get("/{tenant}/uploads", response_model=schemas.ComplianceUploadListResponse)
def list_uploads(
    tenant: str,
    status: Optional[UploadStatus] = Query(None),
    provider: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_read_db),
    identity: EmployeeIdentity = Depends(require_roles("admin", "compliance")),
):
    require_tenant(identity, tenant)
    items, total = ComplianceUploadRepository(db).list_by_tenant(
        tenant,
        status=status,
        provider=provider,
        limit=limit,
        offset=offset,
    )
    return schemas.ComplianceUploadListResponse(
        items=[schemas.ComplianceUploadRead.model_validate(item) for item in items],
        total=total,
    )
