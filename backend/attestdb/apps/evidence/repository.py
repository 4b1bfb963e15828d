# backend/attestdb/apps/evidence/repository.py
"""
Append-only storage for evidence records. There is deliberately no update or
delete here; the model's mapper events reject both as well.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 20
MAX_LIST_LIMIT = 100


class EvidenceRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def create(
        self,
        tenant_id: str,
        *,
        session_id: str,
        employee_id: str,
        schema_version: int,
        outcome: str,
        evidence: dict,
        content_hash: str,
        generated_at: datetime,
    ) -> Tuple[models.TrainingEvidence, bool]:
        """
        Insert a record. Returns (record, created). When a concurrent
        generator already inserted evidence for the session, the unique
        constraint fires and the existing record is returned instead.
        """
        record = models.TrainingEvidence(
            tenant_id=tenant_id,
            session_id=session_id,
            employee_id=employee_id,
            schema_version=schema_version,
            outcome=outcome,
            evidence=evidence,
            content_hash=content_hash,
            generated_at=generated_at,
        )
        self.db.add(record)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            existing = self.find_by_session_id(tenant_id, session_id)
            if existing is None:
                raise
            logger.info(
                "Evidence already generated concurrently",
                extra={"tenant_id": tenant_id, "session_id": session_id, "evidence_id": existing.id},
            )
            return existing, False
        return record, True

    def find_by_session_id(self, tenant_id: str, session_id: str) -> Optional[models.TrainingEvidence]:
        return (
            self.db.query(models.TrainingEvidence)
            .filter(
                models.TrainingEvidence.tenant_id == tenant_id,
                models.TrainingEvidence.session_id == session_id,
            )
            .first()
        )

    def find_by_id(self, tenant_id: str, evidence_id: str) -> Optional[models.TrainingEvidence]:
        return (
            self.db.query(models.TrainingEvidence)
            .filter(
                models.TrainingEvidence.tenant_id == tenant_id,
                models.TrainingEvidence.id == evidence_id,
            )
            .first()
        )

    def list_by_tenant(
        self,
        tenant_id: str,
        *,
        employee_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        outcome: Optional[str] = None,
        limit: int = DEFAULT_LIST_LIMIT,
        offset: int = 0,
    ) -> Tuple[List[models.TrainingEvidence], int]:
        query = self.db.query(models.TrainingEvidence).filter(models.TrainingEvidence.tenant_id == tenant_id)
        if employee_id:
            query = query.filter(models.TrainingEvidence.employee_id == employee_id)
        if start:
            query = query.filter(models.TrainingEvidence.generated_at >= start)
        if end:
            query = query.filter(models.TrainingEvidence.generated_at <= end)
        if outcome:
            query = query.filter(models.TrainingEvidence.outcome == outcome)

        total = query.count()
        limit = max(1, min(limit, MAX_LIST_LIMIT))
        offset = max(0, offset)
        items = (
            query.order_by(models.TrainingEvidence.generated_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return items, total
