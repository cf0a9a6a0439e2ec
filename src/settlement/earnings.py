"""
Earnings Aggregator.

Year-to-date earnings are the sum of completed settlement fee entries
(seller share) finalized within the calendar year. Pending and refunded
entries never count. The total is read from the database on every call so
a gate decision always sees the latest finalized entries.
"""

import logging
from datetime import datetime
from decimal import Decimal

from core.exceptions import ValidationError
from database.connection import Database
from settlement.models import EarningsSnapshot

logger = logging.getLogger(__name__)


def year_bounds(year: int):
    """[Jan 1 of year, Jan 1 of year + 1) as naive UTC datetimes."""
    if isinstance(year, bool) or not isinstance(year, int) or not 1 <= year < 9999:
        raise ValidationError(f"Invalid year: {year!r}", field="year")
    return datetime(year, 1, 1), datetime(year + 1, 1, 1)


class EarningsAggregator:
    """Sums finalized earnings per payee and year."""

    def __init__(self, database: Database):
        self._database = database

    def compute_ytd_earnings(self, payee_ref: str, year: int) -> Decimal:
        """
        Total finalized earnings for the payee in the calendar year.

        Returns:
            Decimal rounded to cents; 0.00 when there are no entries
        """
        start, end = year_bounds(year)
        with self._database.unit_of_work() as uow:
            total = uow.fee_entries.sum_completed(payee_ref, start, end)
        logger.debug(f"YTD earnings for {payee_ref} in {year}: {total}")
        return total

    def snapshot(self, payee_ref: str, year: int) -> EarningsSnapshot:
        return EarningsSnapshot(
            payee_ref=payee_ref,
            year=year,
            total_earnings=self.compute_ytd_earnings(payee_ref, year),
        )
