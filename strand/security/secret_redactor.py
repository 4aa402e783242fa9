"""
Secret redaction

Scrubs credential-shaped substrings from error messages, logs and mappings
before they reach a step, a dead-letter entry or a user-visible result.
"""

from __future__ import annotations

import re
from typing import Any

REDACTED = "[REDACTED]"

SECRET_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"sk-proj-[a-zA-Z0-9_-]{20,}"),  # OpenAI project keys
    re.compile(r"sk-ant-[a-zA-Z0-9_-]{20,}"),  # Anthropic keys
    re.compile(r"sk-[a-zA-Z0-9]{20,}"),  # OpenAI keys
    re.compile(r"\b[a-f0-9]{64}\b"),  # 64-char hex tokens
    re.compile(r"Bearer\s+[a-zA-Z0-9._-]+", re.IGNORECASE),
    re.compile(r"api[_-]?key[\"\s:=]+[\"']?[a-zA-Z0-9_-]{16,}", re.IGNORECASE),
    re.compile(r"token[\"\s:=]+[\"']?[a-zA-Z0-9._-]{16,}", re.IGNORECASE),
    re.compile(r"secret[\"\s:=]+[\"']?[a-zA-Z0-9._-]{16,}", re.IGNORECASE),
    re.compile(r"password[\"\s:=]+[\"']?[^\s\"']{8,}", re.IGNORECASE),
)

SENSITIVE_KEY_FRAGMENTS = (
    "api_key", "apikey", "key", "token", "secret", "password", "auth", "credential",
)


def is_sensitive_key(key: Any) -> bool:
    if key is None:
        return False
    lowered = str(key).lower()
    return any(fragment in lowered for fragment in SENSITIVE_KEY_FRAGMENTS)


def looks_like_secret(value: Any) -> bool:
    if not isinstance(value, str) or len(value) < 16:
        return False
    return any(p.search(value) for p in SECRET_PATTERNS)


def redact_string(text: str) -> str:
    for pattern in SECRET_PATTERNS:
        text = pattern.sub(REDACTED, text)
    return text


def redact(value: Any) -> Any:
    """Redact strings, mappings and sequences recursively."""
    if isinstance(value, str):
        return redact_string(value)
    if isinstance(value, dict):
        return redact_mapping(value)
    if isinstance(value, (list, tuple)):
        return type(value)(redact(v) for v in value)
    return value


def redact_mapping(mapping: dict[Any, Any]) -> dict[str, Any]:
    return {
        str(k): REDACTED if is_sensitive_key(k) else redact(v)
        for k, v in mapping.items()
    }


class SecretRedactor:
    """Object form, for components that take a redactor as a collaborator."""

    replacement = REDACTED

    def redact(self, value: Any) -> Any:
        return redact(value)

    def redact_mapping(self, mapping: dict[Any, Any]) -> dict[str, Any]:
        return redact_mapping(mapping)

    def looks_like_secret(self, value: Any) -> bool:
        return looks_like_secret(value)
