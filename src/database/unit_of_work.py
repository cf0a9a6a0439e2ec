"""Unit of Work Pattern Implementation.

Coordinates multiple repository operations as a single transaction, e.g. a
tax form insert, the compliance pointer move and its audit event.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from database.repositories import (
    AuditEventRepository,
    CompliancePointerRepository,
    FeeEntryRepository,
    PayoutRepository,
    TaxRecordRepository,
)
from domain.event_bus import EventBus
from domain.events import DomainEvent

logger = logging.getLogger(__name__)


class UnitOfWork:
    """
    Unit of Work over a sync SQLAlchemy session.

    Usage:
        with database.unit_of_work() as uow:
            uow.tax_records.add(row)
            uow.pointers.point_to(payee_ref, row.record_id, row.status)
            # Auto-commits on clean exit

    The context manager automatically handles:
    - Creating a database session
    - Committing on clean exit
    - Rolling back on exception
    - Closing the session
    - Publishing collected domain events after a successful commit
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        event_bus: Optional[EventBus] = None,
    ):
        self._session_factory = session_factory
        self._event_bus = event_bus
        self._session: Optional[Session] = None
        self._committed: bool = False

        self._tax_records: Optional[TaxRecordRepository] = None
        self._pointers: Optional[CompliancePointerRepository] = None
        self._payouts: Optional[PayoutRepository] = None
        self._fee_entries: Optional[FeeEntryRepository] = None
        self._audit_events: Optional[AuditEventRepository] = None

        self._pending_events: List[DomainEvent] = []

    @property
    def session(self) -> Session:
        """Get the underlying session."""
        if self._session is None:
            raise RuntimeError("UnitOfWork not initialized. Use 'with' context.")
        return self._session

    @property
    def tax_records(self) -> TaxRecordRepository:
        if self._tax_records is None:
            self._tax_records = TaxRecordRepository(self.session)
        return self._tax_records

    @property
    def pointers(self) -> CompliancePointerRepository:
        if self._pointers is None:
            self._pointers = CompliancePointerRepository(self.session)
        return self._pointers

    @property
    def payouts(self) -> PayoutRepository:
        if self._payouts is None:
            self._payouts = PayoutRepository(self.session)
        return self._payouts

    @property
    def fee_entries(self) -> FeeEntryRepository:
        if self._fee_entries is None:
            self._fee_entries = FeeEntryRepository(self.session)
        return self._fee_entries

    @property
    def audit_events(self) -> AuditEventRepository:
        if self._audit_events is None:
            self._audit_events = AuditEventRepository(self.session)
        return self._audit_events

    def collect_event(self, event: DomainEvent) -> None:
        """Collect a domain event for publishing after commit."""
        self._pending_events.append(event)

    def commit(self) -> None:
        """
        Commit all changes.

        After commit, publishes collected domain events.
        """
        if self._committed:
            return

        self.session.commit()
        self._committed = True
        logger.debug("UnitOfWork committed")

        self._publish_events()

    def rollback(self) -> None:
        """Discard all pending changes and collected events."""
        if self._session is None:
            return

        self._session.rollback()
        self._pending_events.clear()
        logger.debug("UnitOfWork rolled back")

    def _publish_events(self) -> None:
        events, self._pending_events = self._pending_events, []
        if self._event_bus is None:
            return
        for event in events:
            self._event_bus.publish(event)

    def __enter__(self) -> "UnitOfWork":
        self._session = self._session_factory()
        self._committed = False
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """
        Commits if no exception, rolls back otherwise.
        Always closes the session.
        """
        try:
            if exc_type is not None:
                self.rollback()
                logger.debug(f"UnitOfWork rolled back due to: {exc_type.__name__}")
            elif not self._committed:
                self.commit()
        finally:
            if self._session is not None:
                self._session.close()
                self._session = None
                self._tax_records = None
                self._pointers = None
                self._payouts = None
                self._fee_entries = None
                self._audit_events = None
