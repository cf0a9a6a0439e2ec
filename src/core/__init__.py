"""
Core Module - Shared primitives for cross-cutting concerns.

This module provides:
- The settlement error hierarchy (core.exceptions)
- Decimal money math and UTC timestamps (core.money)
"""

from .exceptions import (
    SettlementError,
    ValidationError,
    NotFoundError,
    InvalidStateTransition,
    AuditWriteError,
    SecurityAuditFailure,
    DecryptionError,
    ComplianceBlocked,
    TransferFailure,
    ConfigurationError,
)
from .money import money, rate, sum_money, format_money, to_decimal, utcnow, ZERO

__all__ = [
    "SettlementError",
    "ValidationError",
    "NotFoundError",
    "InvalidStateTransition",
    "AuditWriteError",
    "SecurityAuditFailure",
    "DecryptionError",
    "ComplianceBlocked",
    "TransferFailure",
    "ConfigurationError",
    "money",
    "rate",
    "sum_money",
    "format_money",
    "to_decimal",
    "utcnow",
    "ZERO",
]
