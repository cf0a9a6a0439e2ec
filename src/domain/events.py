"""
Domain Events for the Compliance Gate and Payout Engine.

Domain events are immutable notices of something that already happened
(a tax form was reviewed, a payout was held). They are published after the
owning transaction commits and drive side effects such as payee
notifications. Delivery is best effort: a failing subscriber never changes
the outcome of the operation that raised the event.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from core.money import utcnow


class EventType(str, Enum):
    """Types of domain events."""
    # Tax form events
    TAX_FORM_SUBMITTED = "tax_form.submitted"
    TAX_FORM_REVIEWED = "tax_form.reviewed"
    TAX_FORM_EXPIRED = "tax_form.expired"

    # Payout events
    PAYOUT_BLOCKED = "payout.blocked"
    PAYOUT_STATUS_CHANGED = "payout.status_changed"
    RESERVE_RELEASED = "payout.reserve_released"


class DomainEvent(BaseModel):
    """
    Base class for all domain events.

    All events are immutable and carry a unique id, when they occurred and
    free-form context metadata.
    """

    model_config = ConfigDict(frozen=True)

    event_id: UUID = Field(default_factory=uuid4)
    event_type: EventType
    occurred_at: datetime = Field(default_factory=utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# TAX FORM EVENTS
# =============================================================================

class TaxFormSubmitted(DomainEvent):
    """A payee submitted a new tax form; it is now their current record."""
    event_type: EventType = EventType.TAX_FORM_SUBMITTED
    payee_ref: str
    record_id: str


class TaxFormReviewed(DomainEvent):
    """A reviewer verified or rejected a pending tax form."""
    event_type: EventType = EventType.TAX_FORM_REVIEWED
    payee_ref: str
    record_id: str
    decision: str
    reviewer_ref: str


class TaxFormExpired(DomainEvent):
    """A verified tax form passed its validity window."""
    event_type: EventType = EventType.TAX_FORM_EXPIRED
    payee_ref: str
    record_id: str


# =============================================================================
# PAYOUT EVENTS
# =============================================================================

class PayoutBlocked(DomainEvent):
    """A payout was refused because the payee needs a verified tax form."""
    event_type: EventType = EventType.PAYOUT_BLOCKED
    payee_ref: str
    event_ref: str
    reason: str
    current_earnings: Decimal
    threshold: Decimal


class PayoutStatusChanged(DomainEvent):
    """A payout moved to a new lifecycle state."""
    event_type: EventType = EventType.PAYOUT_STATUS_CHANGED
    payee_ref: str
    payout_id: str
    status: str
    hold_reason: Optional[str] = None


class ReserveReleased(DomainEvent):
    """The withheld reserve of a payout was paid out."""
    event_type: EventType = EventType.RESERVE_RELEASED
    payee_ref: str
    payout_id: str
    amount: Decimal
