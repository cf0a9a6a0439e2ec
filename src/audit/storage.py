"""
Audit Trail Storage Backends

Provides storage implementations for audit log persistence.
Supports both in-memory (for testing and tools) and SQLAlchemy (for
production). Neither backend exposes update or delete.
"""
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from audit.entry import AuditEvent
from audit.event_types import AuditEventType
from core.exceptions import AuditWriteError

if TYPE_CHECKING:
    from database.connection import Database
    from database.unit_of_work import UnitOfWork


class AuditStorage(ABC):
    """Abstract base class for audit storage backends."""

    @abstractmethod
    def save(self, event: AuditEvent, uow: Optional["UnitOfWork"] = None) -> None:
        """
        Durably save an audit event.

        Raises:
            AuditWriteError: If the event could not be stored
        """

    @abstractmethod
    def query(
        self,
        subject_ref: str,
        event_type: Optional[AuditEventType] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[AuditEvent]:
        """Events for a subject ordered by timestamp ascending."""


class InMemoryAuditStorage(AuditStorage):
    """
    In-memory audit storage for testing and development.

    Thread-safe but not persistent - data lost on restart. Events are stored
    immediately, whether or not the caller's unit of work later commits.
    """

    def __init__(self):
        self._events: List[AuditEvent] = []
        self._lock = threading.Lock()

    def save(self, event: AuditEvent, uow: Optional["UnitOfWork"] = None) -> None:
        with self._lock:
            self._events.append(event)

    def query(
        self,
        subject_ref: str,
        event_type: Optional[AuditEventType] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[AuditEvent]:
        with self._lock:
            # Stable sort keeps insertion order for equal timestamps
            events = sorted(
                (e for e in self._events if e.subject_ref == subject_ref),
                key=lambda e: e.timestamp,
            )

        if event_type is not None:
            event_type = AuditEventType(event_type)
            events = [e for e in events if e.event_type == event_type]
        if start:
            events = [e for e in events if e.timestamp >= start]
        if end:
            events = [e for e in events if e.timestamp <= end]

        events = events[offset:]
        if limit is not None:
            events = events[:limit]
        return events

    def count(self) -> int:
        """Get total event count."""
        with self._lock:
            return len(self._events)


class SqlAlchemyAuditStorage(AuditStorage):
    """
    Audit storage in the compliance_audit_log table.

    When the caller passes its unit of work, the event joins that transaction
    and commits or rolls back with the change it describes. Otherwise the
    event is committed in its own transaction before save() returns.
    """

    def __init__(self, database: "Database"):
        self._database = database

    def save(self, event: AuditEvent, uow: Optional["UnitOfWork"] = None) -> None:
        try:
            if uow is not None:
                uow.audit_events.add(event)
                return
            with self._database.unit_of_work() as own_uow:
                own_uow.audit_events.add(event)
        except SQLAlchemyError as e:
            raise AuditWriteError(
                f"Failed to write audit event {event.event_type.value}: {e.__class__.__name__}"
            ) from e

    def query(
        self,
        subject_ref: str,
        event_type: Optional[AuditEventType] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[AuditEvent]:
        with self._database.unit_of_work() as uow:
            return uow.audit_events.query(
                subject_ref,
                event_type=event_type,
                start=start,
                end=end,
                limit=limit,
                offset=offset,
            )
