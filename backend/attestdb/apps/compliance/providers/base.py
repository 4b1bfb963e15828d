# backend/attestdb/apps/compliance/providers/base.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from ...evidence.models import TrainingEvidence


@dataclass(frozen=True)
class ProviderSettings:
    """Resolved per-tenant settings handed to a provider for one attempt."""

    api_key: str
    workflow_check_id: str
    region: str


@dataclass(frozen=True)
class UploadSuccess:
    provider_reference_id: Optional[str]
    message: str
    ok: bool = True


@dataclass(frozen=True)
class UploadFailure:
    retryable: bool
    error_code: str
    error_message: str
    ok: bool = False


UploadResult = Union[UploadSuccess, UploadFailure]


class ComplianceProvider:
    """
    One upload attempt per call. Providers never retry internally and never
    raise for remote failures; they classify them into UploadFailure.
    """

    name: str = ""

    def upload_evidence(
        self,
        document: bytes,
        evidence: TrainingEvidence,
        settings: ProviderSettings,
    ) -> UploadResult:
        raise NotImplementedError
