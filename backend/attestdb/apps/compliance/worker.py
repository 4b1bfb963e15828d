# backend/attestdb/apps/compliance/worker.py
"""
Background execution for compliance uploads.

Requests hand `(tenant_id, evidence_id)` to `submit_upload`; the daemon
thread picks jobs off the queue and runs `dispatch_upload` with its own
database session. Retry sleeps therefore never hold a request open.

COMPLIANCE_WORKER_ENABLED=0 (or a worker that has not been started) runs
jobs inline in the caller's thread, as does a submit that finds the queue
still full after COMPLIANCE_QUEUE_PUT_TIMEOUT_SEC. Inline or queued, job
failures are logged and swallowed.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
from typing import Callable, Optional, Tuple

from sqlalchemy.orm import Session

from ...config import TenantConfigProvider, get_config_provider
from ...database import WriteSessionLocal

logger = logging.getLogger(__name__)

UploadDispatch = Callable[[str, str], None]
Job = Tuple[str, str]

WORKER_ENABLED = os.getenv("COMPLIANCE_WORKER_ENABLED", "1").lower() not in {"0", "false", "no"}
QUEUE_SIZE = int(os.getenv("COMPLIANCE_QUEUE_SIZE", "1000"))
QUEUE_PUT_TIMEOUT = float(os.getenv("COMPLIANCE_QUEUE_PUT_TIMEOUT_SEC", "1.0"))

_STOP = object()


class ComplianceDispatchWorker:
    def __init__(
        self,
        *,
        session_factory: Callable[[], Session] = WriteSessionLocal,
        config_provider_factory: Callable[[], TenantConfigProvider] = get_config_provider,
        enabled: bool = WORKER_ENABLED,
        queue_size: int = QUEUE_SIZE,
        put_timeout: float = QUEUE_PUT_TIMEOUT,
    ) -> None:
        self._session_factory = session_factory
        self._config_provider_factory = config_provider_factory
        self.enabled = enabled
        self._put_timeout = put_timeout
        self._queue: "queue.Queue[object]" = queue.Queue(maxsize=queue_size)
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if not self.enabled:
            logger.info("Compliance worker disabled; uploads run inline")
            return
        with self._lock:
            if self.running:
                return
            self._thread = threading.Thread(target=self._run, name="compliance-dispatch", daemon=True)
            self._thread.start()
        logger.info("Compliance worker started")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        with self._lock:
            thread = self._thread
            self._thread = None
        if thread is None:
            return
        self._queue.put(_STOP)
        thread.join(timeout)
        logger.info("Compliance worker stopped", extra={"pending_jobs": self._queue.qsize()})

    def submit(self, tenant_id: str, evidence_id: str) -> None:
        if not self.running:
            self.run_job(tenant_id, evidence_id)
            return
        try:
            self._queue.put((tenant_id, evidence_id), timeout=self._put_timeout)
        except queue.Full:
            # Never drop a job: the caller pays for the upload instead.
            logger.warning(
                "Compliance queue full; running upload inline",
                extra={"tenant_id": tenant_id, "evidence_id": evidence_id},
            )
            self.run_job(tenant_id, evidence_id)

    def join(self) -> None:
        """Block until every queued job has been processed."""
        self._queue.join()

    def run_job(self, tenant_id: str, evidence_id: str) -> None:
        from .orchestrator import dispatch_upload

        db = self._session_factory()
        try:
            dispatch_upload(
                db,
                tenant_id,
                evidence_id,
                config_provider=self._config_provider_factory(),
            )
            db.commit()
        except Exception:
            db.rollback()
            logger.exception(
                "Compliance upload job failed",
                extra={"tenant_id": tenant_id, "evidence_id": evidence_id},
            )
        finally:
            db.close()

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is _STOP:
                    return
                tenant_id, evidence_id = job  # type: ignore[misc]
                self.run_job(tenant_id, evidence_id)
            finally:
                self._queue.task_done()


worker = ComplianceDispatchWorker()


def submit_upload(tenant_id: str, evidence_id: str) -> None:
    worker.submit(tenant_id, evidence_id)


def get_upload_dispatch() -> UploadDispatch:
    """FastAPI dependency returning the fire-and-forget upload entry point."""
    return submit_upload


def start_worker() -> None:
    worker.start()


def stop_worker() -> None:
    worker.stop()
