"""
Secret redaction for stored training transcripts.

Applied to employee free text and generator rationales before they are
persisted. Each match is replaced by a typed marker such as
`[REDACTED:API_KEY]`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class SecretPattern:
    name: str
    pattern: re.Pattern
    marker: str


SECRET_PATTERNS: Tuple[SecretPattern, ...] = (
    SecretPattern("API_KEY", re.compile(r"AKIA[A-Z0-9]{16}"), "[REDACTED:API_KEY]"),
    SecretPattern("API_KEY", re.compile(r"(?:sk|pk)-[a-zA-Z0-9]{20,}"), "[REDACTED:API_KEY]"),
    SecretPattern("BEARER", re.compile(r"Bearer\s+[A-Za-z0-9\-._~+/]+=*"), "[REDACTED:BEARER]"),
    SecretPattern(
        "CONNECTION_STRING",
        re.compile(r"(?:mongodb|postgres|postgresql|mysql|redis)://\S+"),
        "[REDACTED:CONNECTION_STRING]",
    ),
    SecretPattern("PASSWORD", re.compile(r"password\s*[=:]\s*[^\s;,&\"']+", re.IGNORECASE), "[REDACTED:PASSWORD]"),
    SecretPattern("PASSWORD", re.compile(r"secret\s*[=:]\s*[^\s;,&\"']+", re.IGNORECASE), "[REDACTED:PASSWORD]"),
    SecretPattern("TOKEN", re.compile(r"token\s*[=:]\s*[^\s;,&\"']+", re.IGNORECASE), "[REDACTED:TOKEN]"),
)


@dataclass
class RedactionResult:
    text: str
    redaction_count: int = 0
    redaction_types: List[str] = field(default_factory=list)


def redact(text: str) -> RedactionResult:
    if not text:
        return RedactionResult(text=text)

    count = 0
    types: List[str] = []
    for secret in SECRET_PATTERNS:
        text, replaced = secret.pattern.subn(secret.marker, text)
        if replaced:
            count += replaced
            if secret.name not in types:
                types.append(secret.name)
    return RedactionResult(text=text, redaction_count=count, redaction_types=types)


def redact_optional(value: Optional[str]) -> Optional[str]:
    if not value:
        return value
    return redact(value).text
