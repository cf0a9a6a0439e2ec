"""
Settlement Engine Exceptions.

Every error raised across a component boundary derives from SettlementError so
callers (HTTP layer, Celery tasks) can map them without catching bare Exception.

SECURITY: Messages must never contain a raw or partially-masked TIN.
"""

from decimal import Decimal
from typing import Optional


class SettlementError(Exception):
    """Base class for all settlement engine errors."""

    code = "SETTLEMENT_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SettlementError):
    """Malformed TIN or missing/invalid submission fields."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NotFoundError(SettlementError):
    """A referenced tax record or payout does not exist."""

    code = "RESOURCE_NOT_FOUND"

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource} not found: {resource_id}")
        self.resource = resource
        self.resource_id = resource_id


class InvalidStateTransition(SettlementError):
    """A lifecycle transition was requested from a state that does not allow it."""

    code = "INVALID_STATE_TRANSITION"

    def __init__(self, message: str, current_status: str, target_status: str):
        super().__init__(message)
        self.current_status = current_status
        self.target_status = target_status


class AuditWriteError(SettlementError):
    """The audit trail could not durably record an event."""

    code = "AUDIT_WRITE_FAILED"


class SecurityAuditFailure(SettlementError):
    """Audit write failed while decrypting a TIN. Always fatal, never retried."""

    code = "SECURITY_AUDIT_FAILURE"


class DecryptionError(SettlementError):
    """Ciphertext could not be decrypted (wrong key or tampering)."""

    code = "DECRYPTION_FAILED"


class ComplianceBlocked(SettlementError):
    """Payout requested while the payee lacks a verified tax form above the threshold."""

    code = "COMPLIANCE_BLOCKED"

    def __init__(self, reason: str, current_earnings: Decimal, threshold: Decimal):
        super().__init__(reason)
        self.reason = reason
        self.current_earnings = current_earnings
        self.threshold = threshold


class TransferFailure(SettlementError):
    """The external funds-transfer executor reported an error."""

    code = "TRANSFER_FAILED"

    def __init__(self, message: str, retryable: bool = True):
        super().__init__(message)
        self.retryable = retryable


class ConfigurationError(SettlementError):
    """Missing or invalid encryption key or rate configuration."""

    code = "CONFIGURATION_ERROR"
