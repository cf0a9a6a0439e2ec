"""
Settlement: earnings aggregation, the compliance gate and payout staging.

    settlement.earnings        year-to-date finalized earnings
    settlement.gate            whether a payout needs a verified tax form
    settlement.calculator      fee / reserve / net split
    settlement.payout_service  payout lifecycle and reserve release
"""

from settlement.models import (
    EarningsSnapshot,
    FeeEntryStatus,
    GateDecision,
    PayoutRecord,
    PayoutSplit,
    PayoutStatus,
    SweepResult,
)

__all__ = [
    "EarningsSnapshot",
    "FeeEntryStatus",
    "GateDecision",
    "PayoutRecord",
    "PayoutSplit",
    "PayoutStatus",
    "SweepResult",
]
