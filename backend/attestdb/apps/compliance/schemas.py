from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from .models import UploadStatus


class ComplianceUploadRead(BaseModel):
    id: str
    tenant_id: str
    evidence_id: str
    session_id: str
    provider: str
    status: UploadStatus
    attempt_count: int
    max_attempts: int
    provider_reference_id: Optional[str] = None
    last_error: Optional[str] = None
    last_error_code: Optional[str] = None
    retryable: bool
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ComplianceUploadListResponse(BaseModel):
    items: List[ComplianceUploadRead]
    total: int
