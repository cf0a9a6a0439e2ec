"""
Audit event vocabulary for the compliance gate and payout engine.
"""

from enum import Enum
from typing import FrozenSet


class AuditEventType(str, Enum):
    """Types of auditable actions."""
    # TIN vault
    TIN_DECRYPTED = "tin_decrypted"

    # Tax form lifecycle
    TAX_INFO_SUBMITTED = "tax_info_submitted"
    TAX_INFO_VERIFIED = "tax_info_verified"
    TAX_INFO_REJECTED = "tax_info_rejected"
    TAX_INFO_EXPIRED = "tax_info_expired"

    # Settlement gate
    PAYOUT_BLOCKED_W9_REQUIRED = "payout_blocked_w9_required"
    THRESHOLD_MET = "threshold_met"

    # Payout lifecycle
    PAYOUT_INITIATED = "payout_initiated"
    PAYOUT_COMPLETED = "payout_completed"
    PAYOUT_HELD = "payout_held"
    PAYOUT_CANCELLED = "payout_cancelled"
    RESERVE_RELEASED = "reserve_released"


# Events that are rejected unless they state why the access happened
PURPOSE_REQUIRED: FrozenSet[AuditEventType] = frozenset({
    AuditEventType.TIN_DECRYPTED,
})
