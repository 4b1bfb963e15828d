"""Sprinto provider: uploads evidence PDFs through the GraphQL multipart API."""
from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Optional

import httpx

from ...evidence.models import TrainingEvidence
from .base import ComplianceProvider, ProviderSettings, UploadFailure, UploadResult, UploadSuccess

logger = logging.getLogger(__name__)

SPRINTO_ENDPOINTS: Dict[str, str] = {
    "us": "https://app.sprinto.com/dev-api/graphql",
    "eu": "https://eu.sprinto.com/dev-api/graphql",
    "india": "https://in.sprinto.com/dev-api/graphql",
}

UPLOAD_MUTATION = """mutation UploadWorkflowCheckEvidence(
  $workflowCheckPk: UUID!,
  $evidenceRecordDate: DateTime!,
  $evidenceFile: Upload!
) {
  uploadWorkflowCheckEvidence(
    workflowCheckPk: $workflowCheckPk,
    evidenceRecordDate: $evidenceRecordDate,
    evidenceFile: $evidenceFile
  ) {
    message
    workflowCheck {
      evidenceStatus
    }
  }
}"""

GRAPHQL_ERROR_CODES: Dict[str, str] = {
    "Incorrect check ID": "INVALID_CHECK_ID",
    "Check in review": "CHECK_LOCKED",
    "Unsupported file format": "UNSUPPORTED_FORMAT",
}

DEFAULT_TIMEOUT_SECONDS = float(os.getenv("COMPLIANCE_HTTP_TIMEOUT_SEC", "60"))


def get_sprinto_endpoint(region: str) -> str:
    try:
        return SPRINTO_ENDPOINTS[region]
    except KeyError:
        raise ValueError(
            f"Unknown Sprinto region: {region}. Expected one of: {', '.join(SPRINTO_ENDPOINTS)}"
        ) from None


def classify_http_error(status_code: int, reason: str) -> UploadFailure:
    if status_code == 401:
        return UploadFailure(False, "AUTH_FAILED", f"Sprinto returned 401 Unauthorized: {reason}")
    if status_code == 429:
        return UploadFailure(True, "RATE_LIMITED", f"Sprinto returned 429 Too Many Requests: {reason}")
    if status_code >= 500:
        return UploadFailure(True, "SERVER_ERROR", f"Sprinto returned {status_code}: {reason}")
    return UploadFailure(False, "CLIENT_ERROR", f"Sprinto returned {status_code}: {reason}")


def classify_graphql_error(errors: list) -> UploadFailure:
    first = errors[0] if errors else {}
    message = first.get("message") if isinstance(first, dict) else None
    message = message or "Unknown GraphQL error"
    code = GRAPHQL_ERROR_CODES.get(message)
    if code is None:
        return UploadFailure(True, "GRAPHQL_ERROR", message)
    return UploadFailure(False, code, message)


class SprintoProvider(ComplianceProvider):
    name = "sprinto"

    def __init__(
        self,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._transport = transport
        self._timeout = timeout

    def upload_evidence(
        self,
        document: bytes,
        evidence: TrainingEvidence,
        settings: ProviderSettings,
    ) -> UploadResult:
        try:
            endpoint = get_sprinto_endpoint(settings.region)
        except ValueError as exc:
            return UploadFailure(False, "INVALID_REGION", str(exc))

        operations = {
            "query": UPLOAD_MUTATION,
            "variables": {
                "workflowCheckPk": settings.workflow_check_id,
                "evidenceRecordDate": evidence.generated_at.date().isoformat(),
                "evidenceFile": None,
            },
        }
        data = {
            "operations": json.dumps(operations),
            "map": json.dumps({"0": ["variables.evidenceFile"]}),
        }
        files = {"0": (f"evidence-{evidence.session_id}.pdf", document, "application/pdf")}

        try:
            with httpx.Client(transport=self._transport, timeout=self._timeout) as client:
                response = client.post(endpoint, headers={"api-key": settings.api_key}, data=data, files=files)
        except httpx.HTTPError as exc:
            logger.warning(
                "Sprinto request failed",
                extra={"evidence_id": evidence.id, "region": settings.region, "error": str(exc)},
            )
            return UploadFailure(True, "NETWORK_ERROR", f"Network error uploading to Sprinto: {exc}")

        if not response.is_success:
            return classify_http_error(response.status_code, response.reason_phrase)

        try:
            body: Any = response.json()
        except ValueError:
            return UploadFailure(True, "PARSE_ERROR", "Failed to parse Sprinto response as JSON")
        if not isinstance(body, dict):
            return UploadFailure(True, "PARSE_ERROR", "Unexpected Sprinto response shape")

        errors = body.get("errors")
        if errors:
            return classify_graphql_error(errors)

        upload = (body.get("data") or {}).get("uploadWorkflowCheckEvidence") or {}
        reference = (upload.get("workflowCheck") or {}).get("evidenceStatus")
        return UploadSuccess(
            provider_reference_id=reference,
            message=upload.get("message") or "Evidence uploaded",
        )
