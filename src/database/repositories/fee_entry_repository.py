"""Settlement Fee Entry Repository.

Fee entries are written by the settlement pipeline; this engine only reads
completed entries to total a payee's earnings.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from core.money import sum_money
from database.models import SettlementFeeEntry
from settlement.models import FeeEntryStatus


class FeeEntryRepository:
    """Sync repository over the settlement_fee_entries table."""

    def __init__(self, session: Session):
        self._session = session

    def add(self, entry: SettlementFeeEntry) -> SettlementFeeEntry:
        self._session.add(entry)
        self._session.flush()
        return entry

    def sum_completed(self, payee_ref: str, start: datetime, end: datetime) -> Decimal:
        """
        Total seller_amount of completed entries finalized in [start, end).

        Amounts are summed as Decimals, not in SQL, so SQLite never rounds
        through floats.

        Returns:
            Sum rounded to cents, 0.00 when there are no entries
        """
        query = select(SettlementFeeEntry.seller_amount).where(
            SettlementFeeEntry.payee_ref == payee_ref,
            SettlementFeeEntry.status == FeeEntryStatus.COMPLETED,
            SettlementFeeEntry.finalized_at >= start,
            SettlementFeeEntry.finalized_at < end,
        )
        return sum_money(self._session.execute(query).scalars())
