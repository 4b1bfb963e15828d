# backend/attestdb/apps/compliance/providers/__init__.py

from __future__ import annotations

from typing import Dict, Optional

from .base import ComplianceProvider, ProviderSettings, UploadFailure, UploadResult, UploadSuccess
from .sprinto import SprintoProvider

PROVIDERS: Dict[str, ComplianceProvider] = {
    SprintoProvider.name: SprintoProvider(),
}


def get_provider(name: str, registry: Optional[Dict[str, ComplianceProvider]] = None) -> Optional[ComplianceProvider]:
    return (PROVIDERS if registry is None else registry).get(name)


__all__ = [
    "PROVIDERS",
    "ComplianceProvider",
    "ProviderSettings",
    "SprintoProvider",
    "UploadFailure",
    "UploadResult",
    "UploadSuccess",
    "get_provider",
]
