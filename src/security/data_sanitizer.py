"""
Data Sanitization Module.

Provides TIN redaction for logging and audit payloads.
CRITICAL: Prevents taxpayer identifiers from reaching logs or audit details.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional, Set

# Patterns for identifier-shaped data
PATTERNS = {
    "ssn": re.compile(r"\b\d{3}[-\s]?\d{2}[-\s]?\d{4}\b"),
    "ein": re.compile(r"\b\d{2}[-\s]\d{7}\b"),
}

# Field names whose values are always redacted (exact match after normalizing)
SENSITIVE_FIELDS: Set[str] = {
    "tin", "raw_tin", "ssn", "ein", "tax_id", "itin",
    "encrypted_tin", "tin_encrypted", "ciphertext", "plaintext",
    "encryption_key", "password", "secret", "token",
}

REDACTED = "[REDACTED]"


class DataSanitizer:
    """
    Sanitizes data to remove taxpayer identifiers.

    Use Cases:
    - Logging: Remove identifiers before writing to logs
    - Audit details: Structured payloads never carry a raw TIN
    - Error messages: Prevent identifier exposure in error responses
    """

    def __init__(self, additional_fields: Optional[Set[str]] = None):
        self.sensitive_fields = SENSITIVE_FIELDS.copy()
        if additional_fields:
            self.sensitive_fields.update(additional_fields)
        self.patterns = PATTERNS.copy()

    def sanitize_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Sanitize a dictionary by redacting sensitive fields.

        Keys are kept; values of sensitive keys are replaced, everything else
        is sanitized recursively.
        """
        result = {}
        for key, value in data.items():
            key_lower = str(key).lower().replace("-", "_").replace(" ", "_")
            if key_lower in self.sensitive_fields:
                result[key] = REDACTED
            else:
                result[key] = self.sanitize_value(value)
        return result

    def sanitize_value(self, value: Any) -> Any:
        """Sanitize a single value."""
        if value is None or isinstance(value, (bool, int, float)):
            return value
        if isinstance(value, str):
            return self.sanitize_string(value)
        if isinstance(value, dict):
            return self.sanitize_dict(value)
        if isinstance(value, (list, tuple)):
            return [self.sanitize_value(item) for item in value]
        return self.sanitize_string(str(value))

    def sanitize_string(self, text: str) -> str:
        """Replace identifier-shaped substrings with placeholders."""
        result = self.patterns["ssn"].sub("[TIN-REDACTED]", text)
        return self.patterns["ein"].sub("[TIN-REDACTED]", result)


_sanitizer = DataSanitizer()


def get_sanitizer() -> DataSanitizer:
    """Get the shared stateless sanitizer."""
    return _sanitizer


def redact_details(details: Dict[str, Any]) -> Dict[str, Any]:
    """Convenience function used by the audit trail."""
    return _sanitizer.sanitize_dict(details)
