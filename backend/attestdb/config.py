# backend/attestdb/config.py
"""
Tenant configuration provider.

Configuration is loaded once into an immutable `ConfigSnapshot` and handed to
the services that need it (training policy, compliance integration). A
snapshot carries a `config_hash` over its canonical JSON form; sessions stamp
that hash so evidence records can prove which policy was in force.

Sources:
- `FileConfigProvider` reads the JSON file named by TENANT_CONFIG_PATH.
- `StaticConfigProvider` wraps in-memory configs (tests, embedding).

Credentials are never stored in the file directly: `api_key_ref` holds either
a literal key or a `${ENV_VAR}` / `${ENV_VAR:-default}` reference which is
resolved at dispatch time, so the secret does not enter the config hash.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

TENANT_CONFIG_PATH = os.getenv("TENANT_CONFIG_PATH", "")
APP_VERSION = os.getenv("APP_VERSION", "unknown")

_ENV_REF_PATTERN = re.compile(r"\$\{([^}]+)\}")


class ConfigError(RuntimeError):
    pass


# ---------------------------------------------------------------------------
# SCHEMA
# ---------------------------------------------------------------------------


class TrainingPolicy(BaseModel):
    pass_threshold: float = Field(0.7, ge=0.0, le=1.0)
    max_attempts: int = Field(3, ge=1, le=10)
    max_modules: int = Field(8, ge=1, le=8)
    enable_remediation: bool = True


class RetryPolicy(BaseModel):
    max_attempts: int = Field(5, ge=1, le=10)
    initial_delay_ms: int = Field(5000, ge=1000, le=60000)
    max_delay_ms: int = Field(300000, ge=5000, le=600000)


class ComplianceIntegration(BaseModel):
    provider: str = Field(..., min_length=1)
    api_key_ref: str = Field(..., min_length=1)
    workflow_check_id: str = Field(..., min_length=1)
    region: str = "us"
    retry: RetryPolicy = Field(default_factory=RetryPolicy)

    def resolve_api_key(self, env: Optional[Mapping[str, str]] = None) -> str:
        return substitute_env_vars(self.api_key_ref, env=env)


class RetentionPolicy(BaseModel):
    transcripts_enabled: bool = True


class TenantConfig(BaseModel):
    tenant_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    training: TrainingPolicy = Field(default_factory=TrainingPolicy)
    compliance: Optional[ComplianceIntegration] = None
    retention: RetentionPolicy = Field(default_factory=RetentionPolicy)


def substitute_env_vars(text: str, env: Optional[Mapping[str, str]] = None) -> str:
    """
    Expand ${VAR} and ${VAR:-default}. A missing variable without a default
    raises ConfigError naming the variable (never its value).
    """
    source = os.environ if env is None else env

    def _replace(match: re.Match) -> str:
        expr = match.group(1)
        name, sep, default = expr.partition(":-")
        value = source.get(name)
        if value is not None:
            return value
        if sep:
            return default
        raise ConfigError(f"Unresolved environment variable: ${{{name}}}")

    return _ENV_REF_PATTERN.sub(_replace, text)


def compute_config_hash(tenants: Iterable[TenantConfig]) -> str:
    payload = sorted(
        (tenant.model_dump(mode="json") for tenant in tenants),
        key=lambda item: item["tenant_id"],
    )
    serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# SNAPSHOT + PROVIDERS
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ConfigSnapshot:
    tenants: Mapping[str, TenantConfig]
    config_hash: str
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def build(cls, tenants: Iterable[TenantConfig]) -> "ConfigSnapshot":
        items = list(tenants)
        mapping: Dict[str, TenantConfig] = {}
        for tenant in items:
            if tenant.tenant_id in mapping:
                raise ConfigError(f"Duplicate tenant id: {tenant.tenant_id}")
            mapping[tenant.tenant_id] = tenant
        return cls(tenants=mapping, config_hash=compute_config_hash(items))

    def get_tenant(self, tenant_id: str) -> Optional[TenantConfig]:
        return self.tenants.get(tenant_id)


class TenantConfigProvider:
    """
    Base contract. Implementations build snapshots in `_load()`; `reload()`
    swaps the current snapshot atomically and returns it.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot: Optional[ConfigSnapshot] = None

    def _load(self) -> ConfigSnapshot:
        raise NotImplementedError

    def snapshot(self) -> ConfigSnapshot:
        with self._lock:
            if self._snapshot is None:
                self._snapshot = self._load()
            return self._snapshot

    def reload(self) -> ConfigSnapshot:
        fresh = self._load()
        with self._lock:
            previous = self._snapshot
            self._snapshot = fresh
        if previous is not None and previous.config_hash != fresh.config_hash:
            logger.info(
                "Tenant configuration changed",
                extra={"previous_hash": previous.config_hash, "config_hash": fresh.config_hash},
            )
        return fresh

    def get_tenant(self, tenant_id: str) -> Optional[TenantConfig]:
        return self.snapshot().get_tenant(tenant_id)


class StaticConfigProvider(TenantConfigProvider):
    def __init__(self, tenants: Iterable[TenantConfig] = ()) -> None:
        super().__init__()
        self._tenants = list(tenants)

    def _load(self) -> ConfigSnapshot:
        return ConfigSnapshot.build(self._tenants)


class FileConfigProvider(TenantConfigProvider):
    """
    JSON file of the form {"tenants": [{"tenant_id": ..., "name": ..., ...}]}.
    """

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self.path = Path(path)

    def _load(self) -> ConfigSnapshot:
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise ConfigError(f"Tenant config file not found: {self.path}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Tenant config file is not valid JSON: {self.path}: {exc}") from exc

        entries = raw.get("tenants") if isinstance(raw, dict) else None
        if not isinstance(entries, list):
            raise ConfigError(f"Tenant config file must contain a 'tenants' list: {self.path}")
        try:
            tenants = [TenantConfig.model_validate(entry) for entry in entries]
        except PydanticValidationError as exc:
            raise ConfigError(f"Invalid tenant config in {self.path}: {exc}") from exc
        snapshot = ConfigSnapshot.build(tenants)
        logger.info(
            "Loaded tenant configuration",
            extra={"path": str(self.path), "tenants": len(tenants), "config_hash": snapshot.config_hash},
        )
        return snapshot


_default_provider: Optional[TenantConfigProvider] = None
_default_lock = threading.Lock()


def get_config_provider() -> TenantConfigProvider:
    """
    FastAPI dependency. Uses TENANT_CONFIG_PATH when set, otherwise an empty
    static provider (every tenant lookup fails with not_found).
    """
    global _default_provider
    with _default_lock:
        if _default_provider is None:
            if TENANT_CONFIG_PATH:
                _default_provider = FileConfigProvider(TENANT_CONFIG_PATH)
            else:
                logger.warning("TENANT_CONFIG_PATH is not set; no tenants are configured")
                _default_provider = StaticConfigProvider()
        return _default_provider


def set_config_provider(provider: Optional[TenantConfigProvider]) -> None:
    global _default_provider
    with _default_lock:
        _default_provider = provider
