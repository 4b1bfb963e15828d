from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_read_db
from ...security import EmployeeIdentity, require_roles, require_tenant
from . import schemas, services

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get("/{tenant}/events", response_model=List[schemas.AuditEventRead])
def list_audit_events(
    tenant: str,
    event_type: Optional[str] = None,
    employee_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    db: Session = Depends(get_read_db),
    identity: EmployeeIdentity = Depends(require_roles("admin", "compliance")),
):
    require_tenant(identity, tenant)
    return services.list_audit_events(
        db,
        tenant_id=tenant,
        event_type=event_type,
        employee_id=employee_id,
        start=start,
        end=end,
    )
