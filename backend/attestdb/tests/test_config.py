from __future__ import annotations

import json

import pytest
from pydantic import ValidationError as PydanticValidationError

from attestdb.config import (
    ComplianceIntegration,
    ConfigError,
    FileConfigProvider,
    RetryPolicy,
    StaticConfigProvider,
    TenantConfig,
    TrainingPolicy,
    compute_config_hash,
    substitute_env_vars,
)


def _tenant(tenant_id: str = "acme", **training) -> TenantConfig:
    return TenantConfig(tenant_id=tenant_id, name=f"{tenant_id} corp", training=TrainingPolicy(**training))


def test_policy_defaults():
    policy = TrainingPolicy()
    assert policy.pass_threshold == 0.7
    assert policy.max_attempts == 3
    assert policy.enable_remediation is True
    retry = RetryPolicy()
    assert (retry.max_attempts, retry.initial_delay_ms, retry.max_delay_ms) == (5, 5000, 300000)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_attempts": 0},
        {"max_attempts": 11},
        {"initial_delay_ms": 999},
        {"max_delay_ms": 600001},
    ],
)
def test_retry_policy_bounds(kwargs):
    with pytest.raises(PydanticValidationError):
        RetryPolicy(**kwargs)


def test_env_substitution():
    env = {"SPRINTO_KEY": "k-123"}
    assert substitute_env_vars("${SPRINTO_KEY}", env) == "k-123"
    assert substitute_env_vars("${MISSING:-fallback}", env) == "fallback"
    assert substitute_env_vars("literal", env) == "literal"
    with pytest.raises(ConfigError) as excinfo:
        substitute_env_vars("${MISSING}", env)
    assert "MISSING" in str(excinfo.value)


def test_api_key_is_resolved_at_use_time():
    integration = ComplianceIntegration(provider="sprinto", api_key_ref="${KEY}", workflow_check_id="wf")
    assert integration.resolve_api_key({"KEY": "secret"}) == "secret"
    assert integration.region == "us"


def test_config_hash_is_order_independent_and_changes_with_policy():
    first = compute_config_hash([_tenant("a"), _tenant("b")])
    assert first == compute_config_hash([_tenant("b"), _tenant("a")])
    assert len(first) == 64
    assert first != compute_config_hash([_tenant("a", pass_threshold=0.8), _tenant("b")])


def test_static_provider_snapshot():
    provider = StaticConfigProvider([_tenant("acme")])
    snapshot = provider.snapshot()
    assert snapshot is provider.snapshot()
    assert provider.get_tenant("acme").name == "acme corp"
    assert provider.get_tenant("other") is None


def test_duplicate_tenants_rejected():
    with pytest.raises(ConfigError):
        StaticConfigProvider([_tenant("acme"), _tenant("acme")]).snapshot()


def test_file_provider_loads_and_reloads(tmp_path):
    path = tmp_path / "tenants.json"
    path.write_text(json.dumps({"tenants": [{"tenant_id": "acme", "name": "Acme"}]}), encoding="utf-8")
    provider = FileConfigProvider(path)
    first = provider.snapshot()
    assert first.get_tenant("acme").training.max_attempts == 3

    path.write_text(
        json.dumps({"tenants": [{"tenant_id": "acme", "name": "Acme", "training": {"max_attempts": 5}}]}),
        encoding="utf-8",
    )
    second = provider.reload()
    assert second.get_tenant("acme").training.max_attempts == 5
    assert second.config_hash != first.config_hash


@pytest.mark.parametrize(
    "content",
    [
        "not json",
        json.dumps({"tenants": {}}),
        json.dumps({"tenants": [{"tenant_id": "acme"}]}),
    ],
)
def test_file_provider_rejects_bad_files(tmp_path, content):
    path = tmp_path / "tenants.json"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError):
        FileConfigProvider(path).snapshot()


def test_file_provider_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        FileConfigProvider(tmp_path / "absent.json").snapshot()
