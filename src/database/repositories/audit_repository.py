"""Audit Event Repository.

Insert and query only. There is no update or delete path, and the ORM
listeners on AuditLogRecord reject both.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from audit.entry import AuditEvent
from audit.event_types import AuditEventType
from database.models import AuditLogRecord


class AuditEventRepository:
    """Sync repository over the compliance_audit_log table."""

    def __init__(self, session: Session):
        self._session = session

    def add(self, event: AuditEvent) -> None:
        """Insert an audit event and flush so write errors surface immediately."""
        self._session.add(AuditLogRecord(
            event_id=event.event_id,
            event_type=event.event_type,
            actor_ref=event.actor_ref,
            subject_ref=event.subject_ref,
            purpose=event.purpose,
            ip_address=event.ip_address,
            timestamp=event.timestamp,
            details=event.details,
        ))
        self._session.flush()

    def query(
        self,
        subject_ref: str,
        event_type: Optional[AuditEventType] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[AuditEvent]:
        """Events for a subject, oldest first."""
        query = select(AuditLogRecord).where(AuditLogRecord.subject_ref == subject_ref)
        if event_type is not None:
            query = query.where(AuditLogRecord.event_type == AuditEventType(event_type))
        if start is not None:
            query = query.where(AuditLogRecord.timestamp >= start)
        if end is not None:
            query = query.where(AuditLogRecord.timestamp <= end)
        query = query.order_by(AuditLogRecord.timestamp.asc(), AuditLogRecord.log_seq.asc())
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        return [self._to_event(row) for row in self._session.execute(query).scalars()]

    @staticmethod
    def _to_event(row: AuditLogRecord) -> AuditEvent:
        return AuditEvent(
            event_type=row.event_type,
            actor_ref=row.actor_ref,
            subject_ref=row.subject_ref,
            purpose=row.purpose,
            ip_address=row.ip_address,
            details=row.details or {},
            event_id=row.event_id,
            timestamp=row.timestamp,
        )
