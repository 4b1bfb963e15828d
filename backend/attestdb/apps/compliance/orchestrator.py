# backend/attestdb/apps/compliance/orchestrator.py
"""
Compliance upload orchestration.

`dispatch_upload` delivers one evidence record to the tenant's configured
compliance provider:

1. no integration configured             -> no-op
2. a ledger record already exists        -> no-op (failed uploads are not
                                            re-attempted by re-dispatch)
3. unknown provider                      -> log, no-op
4. evidence missing                      -> terminal failed record
5. pending record, render PDF, then up to `retry.max_attempts` sequential
   provider attempts with exponential backoff and jitter between them.

It never raises. Every outcome lands in the upload ledger, the audit log,
or the application log. Sleeps block the calling thread, so callers run it
from the background worker (see worker.py), never inside a request.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Callable, Dict, Mapping, Optional

from sqlalchemy.orm import Session

from ...config import ComplianceIntegration, ConfigError, RetryPolicy, TenantConfigProvider
from ..audit import services as audit_services
from ..audit.models import AuditEventType
from ..evidence.models import TrainingEvidence
from ..evidence.pdf_renderer import render_evidence_pdf
from ..evidence.repository import EvidenceRepository
from .models import ComplianceUploadRecord, UploadStatus
from .providers import PROVIDERS, ComplianceProvider, ProviderSettings, get_provider
from .repository import ComplianceUploadRepository

logger = logging.getLogger(__name__)

EVIDENCE_NOT_FOUND = "EVIDENCE_NOT_FOUND"
PDF_RENDER_FAILED = "PDF_RENDER_FAILED"
CONFIG_ERROR = "CONFIG_ERROR"

Renderer = Callable[[TrainingEvidence, str], bytes]


def compute_backoff_delay_ms(
    attempt: int,
    retry: RetryPolicy,
    rand: Callable[[], float] = random.random,
) -> float:
    """
    Delay before retry number `attempt` (1-based): the exponential base
    `initial * 2**(attempt-1)` capped at `max_delay_ms`, plus up to 50%
    jitter on top of the base.
    """
    base = min(retry.initial_delay_ms * 2 ** (attempt - 1), retry.max_delay_ms)
    return base + rand() * 0.5 * base


def dispatch_upload(
    db: Session,
    tenant_id: str,
    evidence_id: str,
    *,
    config_provider: TenantConfigProvider,
    providers: Optional[Dict[str, ComplianceProvider]] = None,
    renderer: Renderer = render_evidence_pdf,
    sleep: Callable[[float], None] = time.sleep,
    rand: Callable[[], float] = random.random,
    env: Optional[Mapping[str, str]] = None,
) -> Optional[ComplianceUploadRecord]:
    try:
        return _dispatch(
            db,
            tenant_id,
            evidence_id,
            config_provider=config_provider,
            providers=PROVIDERS if providers is None else providers,
            renderer=renderer,
            sleep=sleep,
            rand=rand,
            env=env,
        )
    except Exception:
        db.rollback()
        logger.exception(
            "Compliance dispatch crashed",
            extra={"tenant_id": tenant_id, "evidence_id": evidence_id},
        )
        return None


def _dispatch(
    db: Session,
    tenant_id: str,
    evidence_id: str,
    *,
    config_provider: TenantConfigProvider,
    providers: Dict[str, ComplianceProvider],
    renderer: Renderer,
    sleep: Callable[[float], None],
    rand: Callable[[], float],
    env: Optional[Mapping[str, str]],
) -> Optional[ComplianceUploadRecord]:
    tenant = config_provider.get_tenant(tenant_id)
    integration: Optional[ComplianceIntegration] = tenant.compliance if tenant is not None else None
    if integration is None:
        return None

    uploads = ComplianceUploadRepository(db)
    log_extra = {"tenant_id": tenant_id, "evidence_id": evidence_id, "provider": integration.provider}

    existing = uploads.find(tenant_id, evidence_id, integration.provider)
    if existing is not None:
        logger.info(
            "Compliance upload already recorded",
            extra={**log_extra, "upload_id": existing.id, "status": existing.status.value},
        )
        return existing

    provider = get_provider(integration.provider, providers)
    if provider is None:
        logger.error("Unknown compliance provider", extra=log_extra)
        return None

    retry = integration.retry
    evidence = EvidenceRepository(db).find_by_id(tenant_id, evidence_id)
    if evidence is None:
        logger.error("Evidence not found for compliance upload", extra=log_extra)
        record, _ = uploads.create(
            tenant_id,
            evidence_id=evidence_id,
            session_id="",
            provider=provider.name,
            max_attempts=retry.max_attempts,
            status=UploadStatus.FAILED,
            last_error="Evidence record not found",
            last_error_code=EVIDENCE_NOT_FOUND,
            retryable=False,
        )
        return record

    record, created = uploads.create(
        tenant_id,
        evidence_id=evidence_id,
        session_id=evidence.session_id,
        provider=provider.name,
        max_attempts=retry.max_attempts,
    )
    if not created:
        # Another dispatcher inserted the ledger row between find and create.
        return record

    try:
        settings = ProviderSettings(
            api_key=integration.resolve_api_key(env),
            workflow_check_id=integration.workflow_check_id,
            region=integration.region,
        )
    except ConfigError as exc:
        logger.error("Compliance credentials unresolved", extra={**log_extra, "error": str(exc)})
        return uploads.mark_failed(record, last_error=str(exc), last_error_code=CONFIG_ERROR, retryable=False)

    display_name = tenant.name if tenant is not None else tenant_id
    try:
        document = renderer(evidence, display_name)
    except Exception as exc:
        logger.error("Evidence PDF rendering failed", extra={**log_extra, "error": str(exc)})
        return uploads.mark_failed(
            record,
            last_error=f"PDF rendering failed: {exc}",
            last_error_code=PDF_RENDER_FAILED,
            retryable=False,
        )

    for attempt in range(retry.max_attempts):
        if attempt > 0:
            delay_ms = compute_backoff_delay_ms(attempt, retry, rand)
            logger.info(
                "Retrying compliance upload",
                extra={**log_extra, "attempt": attempt + 1, "delay_ms": round(delay_ms)},
            )
            sleep(delay_ms / 1000.0)

        result = provider.upload_evidence(document, evidence, settings)
        attempt_count = attempt + 1

        if result.ok:
            record = uploads.mark_succeeded(
                record,
                attempt_count=attempt_count,
                provider_reference_id=result.provider_reference_id,
            )
            logger.info("Compliance upload succeeded", extra={**log_extra, "attempts": attempt_count})
            _audit(
                db,
                tenant_id,
                AuditEventType.INTEGRATION_PUSH_SUCCESS,
                {
                    "session_id": evidence.session_id,
                    "evidence_id": evidence_id,
                    "provider": provider.name,
                    "upload_id": record.id,
                    "attempts": attempt_count,
                },
            )
            return record

        logger.warning(
            "Compliance upload attempt failed",
            extra={
                **log_extra,
                "attempt": attempt_count,
                "max_attempts": retry.max_attempts,
                "error_code": result.error_code,
                "retryable": result.retryable,
            },
        )
        if not result.retryable:
            record = uploads.mark_failed(
                record,
                attempt_count=attempt_count,
                last_error=result.error_message,
                last_error_code=result.error_code,
                retryable=False,
            )
            _audit_failure(db, tenant_id, evidence, provider.name, record)
            return record

        record = uploads.record_attempt(
            record,
            attempt_count=attempt_count,
            last_error=result.error_message,
            last_error_code=result.error_code,
            retryable=True,
        )

    logger.error(
        "Compliance upload attempts exhausted",
        extra={**log_extra, "attempts": retry.max_attempts},
    )
    record = uploads.mark_failed(record)
    _audit_failure(db, tenant_id, evidence, provider.name, record)
    return record


def _audit_failure(
    db: Session,
    tenant_id: str,
    evidence: TrainingEvidence,
    provider_name: str,
    record: ComplianceUploadRecord,
) -> None:
    _audit(
        db,
        tenant_id,
        AuditEventType.INTEGRATION_PUSH_FAILURE,
        {
            "session_id": evidence.session_id,
            "evidence_id": evidence.id,
            "provider": provider_name,
            "upload_id": record.id,
            "attempts": record.attempt_count,
            "error_code": record.last_error_code,
        },
    )


def _audit(db: Session, tenant_id: str, event_type: AuditEventType, metadata: dict) -> None:
    audit_services.log_event(
        db,
        tenant_id=tenant_id,
        event_type=event_type,
        employee_id=None,
        metadata=metadata,
    )
    db.commit()
