# backend/attestdb/apps/evidence/hashing.py
"""
Canonical hashing for evidence bodies.

The canonical form is compact JSON with keys sorted at every level and
non-ASCII characters kept as-is. The digest is SHA-256 rendered as 64
lowercase hex characters. This is tamper evidence, not encryption.
"""

from __future__ import annotations

import enum
import hashlib
import json
from datetime import date, datetime
from typing import Any, Mapping
from uuid import UUID


def _serialize_value(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def canonical_json(body: Any) -> str:
    return json.dumps(
        body,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_serialize_value,
    )


def normalize_body(body: Mapping[str, Any]) -> dict:
    """
    Reduce a body to plain JSON types (datetimes become ISO strings, enums
    their values) so the stored copy hashes exactly like the original.
    """
    return json.loads(canonical_json(body))


def compute_content_hash(body: Mapping[str, Any]) -> str:
    return hashlib.sha256(canonical_json(body).encode("utf-8")).hexdigest()


def verify_content_hash(body: Mapping[str, Any], expected_hash: str) -> bool:
    return compute_content_hash(body) == expected_hash
