"""
Compliance Ledger.

Tracks each payee's tax form history and current compliance status.
The ledger itself lives in compliance.ledger.
"""

from compliance.models import (
    Address,
    ComplianceStatus,
    ReviewDecision,
    TaxClassification,
    TaxFormSubmission,
    TaxFormType,
    TaxInfoStatus,
    TaxRecord,
)

__all__ = [
    "Address",
    "ComplianceStatus",
    "ReviewDecision",
    "TaxClassification",
    "TaxFormSubmission",
    "TaxFormType",
    "TaxInfoStatus",
    "TaxRecord",
]
