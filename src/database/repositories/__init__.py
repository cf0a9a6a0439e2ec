"""Repository implementations for the settlement engine."""

from .tax_record_repository import TaxRecordRepository
from .pointer_repository import CompliancePointerRepository
from .payout_repository import PayoutRepository
from .fee_entry_repository import FeeEntryRepository
from .audit_repository import AuditEventRepository

__all__ = [
    "TaxRecordRepository",
    "CompliancePointerRepository",
    "PayoutRepository",
    "FeeEntryRepository",
    "AuditEventRepository",
]
