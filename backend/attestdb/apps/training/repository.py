# backend/attestdb/apps/training/repository.py
"""
Tenant-scoped persistence for training sessions and modules.

Writes use compare-and-swap on the `version` column:

    UPDATE ... SET ..., version = version + 1
    WHERE tenant_id = :tenant AND id = :id AND version = :expected

A rowcount other than one means another writer got there first (or the row
does not exist for this tenant) and VersionConflictError is raised. Writes
are never merged; callers re-fetch and decide again.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Session

from ...errors import Conflict, NotFound
from . import models
from .state_machine import SESSION_ACTIVE_STATES, ModuleStatus, SessionStatus

# Columns callers may change through update_*; identity and bookkeeping
# columns are managed here.
SESSION_MUTABLE_FIELDS = frozenset(
    {"status", "attempt_number", "curriculum", "aggregate_score", "weak_areas", "completed_at"}
)
MODULE_MUTABLE_FIELDS = frozenset(
    {"status", "content", "scenario_responses", "quiz_answers", "module_score"}
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VersionConflictError(Conflict):
    code = "version_conflict"

    def __init__(self, entity: str, entity_id: str, expected_version: int) -> None:
        super().__init__(f"{entity} '{entity_id}' was modified by another request (expected version {expected_version})")
        self.entity = entity
        self.entity_id = entity_id
        self.expected_version = expected_version


class SessionRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    @contextmanager
    def transaction(self) -> Iterator["SessionRepository"]:
        """Commit everything issued inside the block atomically, or nothing."""
        try:
            yield self
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(
        self,
        tenant_id: str,
        *,
        employee_id: str,
        role_profile_id: str,
        role_profile_version: int,
        config_hash: str,
        app_version: str,
        status: SessionStatus = SessionStatus.CURRICULUM_GENERATING,
        attempt_number: int = 1,
        curriculum: Optional[dict] = None,
    ) -> models.TrainingSession:
        now = _utcnow()
        session = models.TrainingSession(
            tenant_id=tenant_id,
            employee_id=employee_id,
            role_profile_id=role_profile_id,
            role_profile_version=role_profile_version,
            config_hash=config_hash,
            app_version=app_version,
            status=status,
            attempt_number=attempt_number,
            curriculum=curriculum,
            version=1,
            created_at=now,
            updated_at=now,
        )
        self.db.add(session)
        self.db.flush()
        return session

    def find_session(self, tenant_id: str, session_id: str) -> Optional[models.TrainingSession]:
        return (
            self._query(models.TrainingSession)
            .filter(
                models.TrainingSession.tenant_id == tenant_id,
                models.TrainingSession.id == session_id,
            )
            .first()
        )

    def get_session(self, tenant_id: str, session_id: str) -> models.TrainingSession:
        session = self.find_session(tenant_id, session_id)
        if session is None:
            raise NotFound(f"Session '{session_id}' not found")
        return session

    def find_active_session(self, tenant_id: str, employee_id: str) -> Optional[models.TrainingSession]:
        return (
            self._query(models.TrainingSession)
            .filter(
                models.TrainingSession.tenant_id == tenant_id,
                models.TrainingSession.employee_id == employee_id,
                models.TrainingSession.status.in_(list(SESSION_ACTIVE_STATES)),
            )
            .order_by(models.TrainingSession.created_at.desc())
            .first()
        )

    def find_session_history(
        self,
        tenant_id: str,
        employee_id: str,
        *,
        limit: Optional[int] = None,
    ) -> List[models.TrainingSession]:
        query = (
            self._query(models.TrainingSession)
            .filter(
                models.TrainingSession.tenant_id == tenant_id,
                models.TrainingSession.employee_id == employee_id,
            )
            .order_by(models.TrainingSession.created_at.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def find_current_session(self, tenant_id: str, employee_id: str) -> Optional[models.TrainingSession]:
        """The active session if there is one, otherwise the most recent."""
        active = self.find_active_session(tenant_id, employee_id)
        if active is not None:
            return active
        history = self.find_session_history(tenant_id, employee_id, limit=1)
        return history[0] if history else None

    def update_session(
        self,
        tenant_id: str,
        session_id: str,
        changes: Dict[str, Any],
        expected_version: int,
    ) -> models.TrainingSession:
        _reject_unknown_fields("session", changes, SESSION_MUTABLE_FIELDS)
        table = models.TrainingSession
        self._compare_and_swap(
            table,
            entity="Session",
            tenant_id=tenant_id,
            entity_id=session_id,
            changes=changes,
            expected_version=expected_version,
        )
        return self._reload(table, tenant_id, session_id)

    # ------------------------------------------------------------------
    # Modules
    # ------------------------------------------------------------------

    def create_modules(
        self,
        tenant_id: str,
        session_id: str,
        outlines: Iterable[Dict[str, Any]],
        *,
        attempt_number: int = 1,
    ) -> List[models.TrainingModule]:
        """
        Outlines are curriculum entries ({title, topic_area,
        job_expectation_indices}). Flushes but does not commit so the caller
        can group this with the session update.
        """
        now = _utcnow()
        created: List[models.TrainingModule] = []
        for index, outline in enumerate(outlines):
            module = models.TrainingModule(
                tenant_id=tenant_id,
                session_id=session_id,
                module_index=index,
                attempt_number=attempt_number,
                title=outline["title"],
                topic_area=outline["topic_area"],
                job_expectation_indices=list(outline.get("job_expectation_indices") or []),
                status=ModuleStatus.LOCKED,
                content=None,
                scenario_responses=[],
                quiz_answers=[],
                module_score=None,
                version=1,
                created_at=now,
                updated_at=now,
            )
            self.db.add(module)
            created.append(module)
        try:
            self.db.flush()
        except sa.exc.IntegrityError as exc:
            raise Conflict(f"Modules for session '{session_id}' already exist") from exc
        return created

    def find_modules_by_session(
        self,
        tenant_id: str,
        session_id: str,
        *,
        attempt_number: Optional[int] = None,
    ) -> List[models.TrainingModule]:
        query = self._query(models.TrainingModule).filter(
            models.TrainingModule.tenant_id == tenant_id,
            models.TrainingModule.session_id == session_id,
        )
        if attempt_number is not None:
            query = query.filter(models.TrainingModule.attempt_number == attempt_number)
        return query.order_by(models.TrainingModule.module_index.asc()).all()

    def find_module_by_index(
        self,
        tenant_id: str,
        session_id: str,
        module_index: int,
        *,
        attempt_number: int,
    ) -> Optional[models.TrainingModule]:
        return (
            self._query(models.TrainingModule)
            .filter(
                models.TrainingModule.tenant_id == tenant_id,
                models.TrainingModule.session_id == session_id,
                models.TrainingModule.attempt_number == attempt_number,
                models.TrainingModule.module_index == module_index,
            )
            .first()
        )

    def update_module(
        self,
        tenant_id: str,
        module_id: str,
        changes: Dict[str, Any],
        expected_version: int,
    ) -> models.TrainingModule:
        _reject_unknown_fields("module", changes, MODULE_MUTABLE_FIELDS)
        if "status" in changes or "module_score" in changes:
            current = (
                self._query(models.TrainingModule)
                .filter(models.TrainingModule.tenant_id == tenant_id, models.TrainingModule.id == module_id)
                .first()
            )
            if current is None:
                raise VersionConflictError("Module", module_id, expected_version)
            status = changes.get("status", current.status)
            score = changes.get("module_score", current.module_score)
            if (ModuleStatus(status) == ModuleStatus.SCORED) != (score is not None):
                raise ValueError("module_score must be set exactly when the module is scored")
        table = models.TrainingModule
        self._compare_and_swap(
            table,
            entity="Module",
            tenant_id=tenant_id,
            entity_id=module_id,
            changes=changes,
            expected_version=expected_version,
        )
        return self._reload(table, tenant_id, module_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _query(self, table):
        # Always refresh from the row; another writer may have bumped the
        # version since this unit of work last looked.
        return self.db.query(table).populate_existing()

    def _compare_and_swap(
        self,
        table,
        *,
        entity: str,
        tenant_id: str,
        entity_id: str,
        changes: Dict[str, Any],
        expected_version: int,
    ) -> None:
        stmt = (
            sa.update(table)
            .where(
                table.tenant_id == tenant_id,
                table.id == entity_id,
                table.version == expected_version,
            )
            .values(**changes, version=table.version + 1, updated_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount != 1:
            raise VersionConflictError(entity, entity_id, expected_version)

    def _reload(self, table, tenant_id: str, entity_id: str):
        return self._query(table).filter(table.tenant_id == tenant_id, table.id == entity_id).one()


def _reject_unknown_fields(entity: str, changes: Dict[str, Any], allowed: frozenset) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Cannot update {entity} fields: {', '.join(sorted(unknown))}")
