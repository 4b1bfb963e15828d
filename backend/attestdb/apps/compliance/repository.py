# backend/attestdb/apps/compliance/repository.py
"""
Upload ledger persistence.

Each (tenant, evidence, provider) has at most one record. Updates are
guarded on `status = 'pending'` so a terminal record is never rewritten.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .models import ComplianceUploadRecord, UploadStatus

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UploadAlreadyTerminalError(RuntimeError):
    pass


class ComplianceUploadRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def find(self, tenant_id: str, evidence_id: str, provider: str) -> Optional[ComplianceUploadRecord]:
        return (
            self.db.query(ComplianceUploadRecord)
            .populate_existing()
            .filter(
                ComplianceUploadRecord.tenant_id == tenant_id,
                ComplianceUploadRecord.evidence_id == evidence_id,
                ComplianceUploadRecord.provider == provider,
            )
            .first()
        )

    def list_for_evidence(self, tenant_id: str, evidence_id: str) -> List[ComplianceUploadRecord]:
        return (
            self.db.query(ComplianceUploadRecord)
            .filter(
                ComplianceUploadRecord.tenant_id == tenant_id,
                ComplianceUploadRecord.evidence_id == evidence_id,
            )
            .order_by(ComplianceUploadRecord.created_at.asc())
            .all()
        )

    def list_by_tenant(
        self,
        tenant_id: str,
        *,
        status: Optional[UploadStatus] = None,
        provider: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[List[ComplianceUploadRecord], int]:
        query = self.db.query(ComplianceUploadRecord).filter(ComplianceUploadRecord.tenant_id == tenant_id)
        if status is not None:
            query = query.filter(ComplianceUploadRecord.status == status)
        if provider:
            query = query.filter(ComplianceUploadRecord.provider == provider)
        total = query.count()
        items = (
            query.order_by(ComplianceUploadRecord.created_at.desc())
            .offset(max(0, offset))
            .limit(max(1, min(limit, 200)))
            .all()
        )
        return items, total

    def create(
        self,
        tenant_id: str,
        *,
        evidence_id: str,
        session_id: str,
        provider: str,
        max_attempts: int,
        status: UploadStatus = UploadStatus.PENDING,
        last_error: Optional[str] = None,
        last_error_code: Optional[str] = None,
        retryable: bool = True,
    ) -> Tuple[ComplianceUploadRecord, bool]:
        """Returns (record, created); an existing record wins a duplicate insert."""
        now = _utcnow()
        record = ComplianceUploadRecord(
            tenant_id=tenant_id,
            evidence_id=evidence_id,
            session_id=session_id,
            provider=provider,
            status=status,
            attempt_count=0,
            max_attempts=max_attempts,
            last_error=last_error,
            last_error_code=last_error_code,
            retryable=retryable,
            created_at=now,
            updated_at=now,
            completed_at=None if status == UploadStatus.PENDING else now,
        )
        self.db.add(record)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.find(tenant_id, evidence_id, provider)
            if existing is None:
                raise
            logger.info(
                "Upload record already exists",
                extra={"tenant_id": tenant_id, "evidence_id": evidence_id, "provider": provider, "upload_id": existing.id},
            )
            return existing, False
        return record, True

    def record_attempt(
        self,
        record: ComplianceUploadRecord,
        *,
        attempt_count: int,
        last_error: Optional[str],
        last_error_code: Optional[str],
        retryable: bool,
    ) -> ComplianceUploadRecord:
        return self._update_pending(
            record,
            {
                "attempt_count": attempt_count,
                "last_error": last_error,
                "last_error_code": last_error_code,
                "retryable": retryable,
            },
        )

    def mark_succeeded(
        self,
        record: ComplianceUploadRecord,
        *,
        attempt_count: int,
        provider_reference_id: Optional[str],
    ) -> ComplianceUploadRecord:
        return self._update_pending(
            record,
            {
                "status": UploadStatus.SUCCEEDED,
                "attempt_count": attempt_count,
                "provider_reference_id": provider_reference_id,
                "last_error": None,
                "last_error_code": None,
                "retryable": False,
                "completed_at": _utcnow(),
            },
        )

    def mark_failed(self, record: ComplianceUploadRecord, **changes: Any) -> ComplianceUploadRecord:
        changes.update(status=UploadStatus.FAILED, completed_at=_utcnow())
        return self._update_pending(record, changes)

    def _update_pending(self, record: ComplianceUploadRecord, changes: Dict[str, Any]) -> ComplianceUploadRecord:
        stmt = (
            sa.update(ComplianceUploadRecord)
            .where(
                ComplianceUploadRecord.tenant_id == record.tenant_id,
                ComplianceUploadRecord.id == record.id,
                ComplianceUploadRecord.status == UploadStatus.PENDING,
            )
            .values(**changes, updated_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount != 1:
            self.db.rollback()
            logger.warning("Upload record is no longer pending", extra={"upload_id": record.id})
            raise UploadAlreadyTerminalError(f"Upload {record.id} is no longer pending")
        self.db.commit()
        return (
            self.db.query(ComplianceUploadRecord)
            .populate_existing()
            .filter(ComplianceUploadRecord.id == record.id)
            .one()
        )
