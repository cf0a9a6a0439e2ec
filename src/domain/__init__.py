"""Domain events and the in-process event bus."""

from .events import (
    DomainEvent,
    EventType,
    PayoutBlocked,
    PayoutStatusChanged,
    ReserveReleased,
    TaxFormExpired,
    TaxFormReviewed,
    TaxFormSubmitted,
)
from .event_bus import EventBus, LoggingEventHandler

__all__ = [
    "DomainEvent",
    "EventType",
    "PayoutBlocked",
    "PayoutStatusChanged",
    "ReserveReleased",
    "TaxFormExpired",
    "TaxFormReviewed",
    "TaxFormSubmitted",
    "EventBus",
    "LoggingEventHandler",
]
