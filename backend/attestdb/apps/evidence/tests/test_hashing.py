from __future__ import annotations

import hashlib
from datetime import datetime, timezone

from attestdb.apps.evidence.hashing import (
    canonical_json,
    compute_content_hash,
    normalize_body,
    verify_content_hash,
)


def test_canonical_form_sorts_keys_at_every_level():
    body = {"b": 1, "a": {"z": [3, {"y": 1, "x": 2}], "c": None}}
    assert canonical_json(body) == '{"a":{"c":null,"z":[3,{"x":2,"y":1}]},"b":1}'


def test_key_order_does_not_change_hash():
    first = {"session": {"id": "s-1", "status": "passed"}, "modules": []}
    second = {"modules": [], "session": {"status": "passed", "id": "s-1"}}
    assert compute_content_hash(first) == compute_content_hash(second)


def test_non_ascii_is_hashed_as_utf8():
    body = {"narrative": "Café phishing – «urgent»"}
    expected = hashlib.sha256('{"narrative":"Café phishing – «urgent»"}'.encode("utf-8")).hexdigest()
    assert compute_content_hash(body) == expected


def test_hash_is_lowercase_hex():
    digest = compute_content_hash({"a": 1})
    assert len(digest) == 64
    assert digest == digest.lower()
    int(digest, 16)


def test_normalized_body_hashes_like_the_original():
    original = {"generated": datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc), "score": 0.5}
    normalized = normalize_body(original)
    assert normalized["generated"] == "2026-01-02T03:04:05+00:00"
    assert compute_content_hash(normalized) == compute_content_hash(original)


def test_any_change_fails_verification():
    body = {"outcome": {"aggregate_score": 0.725, "passed": True}}
    digest = compute_content_hash(body)
    assert verify_content_hash(body, digest)
    tampered = {"outcome": {"aggregate_score": 0.726, "passed": True}}
    assert not verify_content_hash(tampered, digest)
