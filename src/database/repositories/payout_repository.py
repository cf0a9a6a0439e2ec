"""Payout Repository.

Row access for staged payouts and the reserve-release schedule.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.money import money, rate
from database.models import PayoutRecordRow
from settlement.models import PayoutRecord, PayoutStatus


class PayoutRepository:
    """Sync repository over the payouts table."""

    def __init__(self, session: Session):
        self._session = session

    def add(self, row: PayoutRecordRow) -> PayoutRecordRow:
        self._session.add(row)
        self._session.flush()
        return row

    def get(self, payout_id: str, for_update: bool = False) -> Optional[PayoutRecordRow]:
        query = select(PayoutRecordRow).where(PayoutRecordRow.payout_id == payout_id)
        if for_update:
            query = query.with_for_update()
        return self._session.execute(query).scalar_one_or_none()

    def list_for_payee(
        self,
        payee_ref: str,
        status: Optional[PayoutStatus] = None,
    ) -> List[PayoutRecordRow]:
        """Payouts for a payee, newest first, optionally filtered by status."""
        query = select(PayoutRecordRow).where(PayoutRecordRow.payee_ref == payee_ref)
        if status is not None:
            query = query.where(PayoutRecordRow.status == PayoutStatus(status))
        query = query.order_by(PayoutRecordRow.initiated_at.desc())
        return list(self._session.execute(query).scalars())

    def find_live_for_event(self, payee_ref: str, event_ref: str) -> Optional[PayoutRecordRow]:
        """The payee's payout for an event, ignoring cancelled ones."""
        query = (
            select(PayoutRecordRow)
            .where(
                PayoutRecordRow.payee_ref == payee_ref,
                PayoutRecordRow.event_ref == event_ref,
                PayoutRecordRow.status != PayoutStatus.CANCELLED,
            )
            .order_by(PayoutRecordRow.initiated_at.desc())
            .limit(1)
        )
        return self._session.execute(query).scalar_one_or_none()

    def list_due_for_release(self, now: datetime, limit: int = 500) -> List[str]:
        """Ids of completed, unflagged payouts whose reserve hold has elapsed, oldest due first."""
        query = (
            select(PayoutRecordRow.payout_id)
            .where(
                PayoutRecordRow.status == PayoutStatus.COMPLETED,
                PayoutRecordRow.chargeback_flag.is_(False),
                PayoutRecordRow.reserve_release_due.is_not(None),
                PayoutRecordRow.reserve_release_due <= now,
            )
            .order_by(PayoutRecordRow.reserve_release_due.asc())
            .limit(limit)
        )
        return list(self._session.execute(query).scalars())

    @staticmethod
    def to_domain(row: PayoutRecordRow) -> PayoutRecord:
        """Map a row to the public view. Fails loudly on malformed rows."""
        return PayoutRecord.model_validate({
            "payout_id": row.payout_id,
            "payee_ref": row.payee_ref,
            "event_ref": row.event_ref,
            "gross_amount": money(row.gross_amount),
            "fee_rate": rate(row.fee_rate),
            "fee_amount": money(row.fee_amount),
            "reserve_rate": rate(row.reserve_rate),
            "reserve_amount": money(row.reserve_amount),
            "net_amount": money(row.net_amount),
            "status": row.status,
            "initiated_at": row.initiated_at,
            "completed_at": row.completed_at,
            "reserve_release_due": row.reserve_release_due,
            "reserve_released_at": row.reserve_released_at,
            "hold_reason": row.hold_reason,
            "retry_count": row.retry_count or 0,
            "chargeback_flag": bool(row.chargeback_flag),
            "transfer_ref": row.transfer_ref,
            "reserve_transfer_ref": row.reserve_transfer_ref,
            "reviewed_by": row.reviewed_by,
            "review_notes": row.review_notes,
        })
