from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class AuditEventCreate(BaseModel):
    event_type: str = Field(..., min_length=1, max_length=64)
    employee_id: Optional[str] = None
    occurred_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AuditEventRead(BaseModel):
    id: str
    tenant_id: str
    event_type: str
    employee_id: Optional[str] = None
    occurred_at: datetime
    metadata_json: Optional[Dict[str, Any]] = None
    created_at: datetime

    class Config:
        from_attributes = True
