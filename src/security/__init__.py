"""
Security module for the settlement engine.

Provides taxpayer identifier validation, PII redaction for logs and audit
payloads, and (in security.tin_vault) encrypted TIN storage with audited
decryption.
"""

from .tin_validation import (
    TinType,
    clean_tin,
    mask_tin,
    validate_ein,
    validate_ssn,
    validate_tin,
)
from .data_sanitizer import DataSanitizer, get_sanitizer, redact_details

__all__ = [
    "TinType",
    "clean_tin",
    "mask_tin",
    "validate_ein",
    "validate_ssn",
    "validate_tin",
    "DataSanitizer",
    "get_sanitizer",
    "redact_details",
]
