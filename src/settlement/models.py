"""
Settlement Domain Models

Payout lifecycle:

- PROCESSING: Created, transfer of the net amount not yet confirmed
- COMPLETED: Net amount transferred; reserve held until reserve_release_due
- HELD: Needs manual review (risk flags, exhausted transfer retries, reserve
  release failure)
- RESERVE_RELEASED: Reserve transferred to the payee; terminal
- CANCELLED: Reviewer cancelled a held payout; terminal
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class PayoutStatus(str, Enum):
    """Payout record status."""
    PROCESSING = "processing"
    COMPLETED = "completed"
    HELD = "held"
    RESERVE_RELEASED = "reserve_released"
    CANCELLED = "cancelled"


class FeeEntryStatus(str, Enum):
    """Status of a settlement fee entry written by the settlement pipeline."""
    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"


VALID_TRANSITIONS: Dict[PayoutStatus, List[PayoutStatus]] = {
    PayoutStatus.PROCESSING: [PayoutStatus.COMPLETED, PayoutStatus.HELD],
    PayoutStatus.COMPLETED: [PayoutStatus.RESERVE_RELEASED, PayoutStatus.HELD],
    PayoutStatus.HELD: [PayoutStatus.COMPLETED, PayoutStatus.RESERVE_RELEASED, PayoutStatus.CANCELLED],
    PayoutStatus.RESERVE_RELEASED: [],
    PayoutStatus.CANCELLED: [],
}


def can_transition(current: PayoutStatus, target: PayoutStatus) -> bool:
    """Check whether a payout may move from current to target."""
    return target in VALID_TRANSITIONS.get(current, [])


@dataclass(frozen=True)
class PayoutSplit:
    """Fee, reserve and net amounts for a gross payout."""
    gross: Decimal
    fee: Decimal
    reserve: Decimal
    net: Decimal


@dataclass(frozen=True)
class EarningsSnapshot:
    """Year-to-date finalized earnings for a payee."""
    payee_ref: str
    year: int
    total_earnings: Decimal


@dataclass(frozen=True)
class GateDecision:
    """Whether a payout must wait for a verified tax form."""
    required: bool
    current_earnings: Decimal
    threshold: Decimal
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "required": self.required,
            "reason": self.reason,
            "current_earnings": str(self.current_earnings),
            "threshold": str(self.threshold),
        }


@dataclass
class SweepResult:
    """Outcome of one reserve-release sweep."""
    released: List[str] = field(default_factory=list)
    held: List[str] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def processed(self) -> int:
        return len(self.released) + len(self.held) + len(self.errors)

    def to_dict(self) -> dict:
        return {
            "released": list(self.released),
            "held": list(self.held),
            "errors": dict(self.errors),
        }


class PayoutRecord(BaseModel):
    """Read-only view of a stored payout."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    payout_id: str
    payee_ref: str
    event_ref: str
    gross_amount: Decimal
    fee_rate: Decimal
    fee_amount: Decimal
    reserve_rate: Decimal
    reserve_amount: Decimal
    net_amount: Decimal
    status: PayoutStatus
    initiated_at: datetime
    completed_at: Optional[datetime] = None
    reserve_release_due: Optional[datetime] = None
    reserve_released_at: Optional[datetime] = None
    hold_reason: Optional[str] = None
    retry_count: int = 0
    chargeback_flag: bool = False
    transfer_ref: Optional[str] = None
    reserve_transfer_ref: Optional[str] = None
    reviewed_by: Optional[str] = None
    review_notes: Optional[str] = None
