"""Security helpers: static code validation and secret redaction."""

from strand.security.code_validator import CodeValidator
from strand.security.secret_redactor import (
    REDACTED,
    SecretRedactor,
    is_sensitive_key,
    looks_like_secret,
    redact,
    redact_mapping,
    redact_string,
)

__all__ = [
    "CodeValidator",
    "REDACTED",
    "SecretRedactor",
    "is_sensitive_key",
    "looks_like_secret",
    "redact",
    "redact_mapping",
    "redact_string",
]
