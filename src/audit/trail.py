"""
Audit Trail.

Entry point for recording and reading audit events. A failed write is
always raised to the caller as AuditWriteError; callers decide whether the
surrounding operation can continue (for TIN decryption it cannot).
"""

import logging
from datetime import datetime
from typing import List, Optional, TYPE_CHECKING

from audit.entry import AuditEvent
from audit.event_types import AuditEventType
from audit.storage import AuditStorage
from core.exceptions import AuditWriteError

if TYPE_CHECKING:
    from database.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class AuditTrail:
    """Append-only audit trail over a storage backend."""

    def __init__(self, storage: AuditStorage):
        self._storage = storage

    @property
    def storage(self) -> AuditStorage:
        return self._storage

    def append(self, event: AuditEvent, uow: Optional["UnitOfWork"] = None) -> AuditEvent:
        """
        Durably append an event.

        Args:
            event: Event to store
            uow: Caller's unit of work; the event commits with it when given

        Raises:
            AuditWriteError: If the backend could not store the event
        """
        try:
            self._storage.save(event, uow=uow)
        except AuditWriteError:
            logger.error(
                f"Audit write failed for {event.event_type.value}",
                extra={"audit_event_id": event.event_id, "subject_ref": event.subject_ref},
            )
            raise
        logger.debug(f"Audit event recorded: {event.event_type.value}")
        return event

    def query(
        self,
        subject_ref: str,
        event_type: Optional[AuditEventType] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[AuditEvent]:
        """
        Events for a subject, ordered by timestamp ascending.

        Args:
            subject_ref: Whose events to return
            event_type: Only events of this type
            start: Only events at or after this time
            end: Only events at or before this time
            limit: Maximum number of events
            offset: Number of events to skip
        """
        return self._storage.query(
            subject_ref,
            event_type=event_type,
            start=start,
            end=end,
            limit=limit,
            offset=offset,
        )
