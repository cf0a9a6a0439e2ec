"""
Settlement Gate.

Decides whether a payout must wait for a verified tax form. A form is
required once year-to-date earnings reach the reporting threshold
(inclusive) and the payee's current compliance status is anything other
than VERIFIED. Nothing is cached: every decision reads current earnings and
current status.
"""

import logging
from datetime import datetime
from typing import Optional

from compliance.ledger import ComplianceLedger
from compliance.models import ComplianceStatus
from config.settings import ComplianceSettings
from core.money import format_money, money, utcnow
from settlement.earnings import EarningsAggregator
from settlement.models import GateDecision

logger = logging.getLogger(__name__)

_STATUS_NOTES = {
    ComplianceStatus.NOT_SUBMITTED: "Please submit a W-9 to continue receiving payouts.",
    ComplianceStatus.PENDING: "Your submitted W-9 is awaiting review.",
    ComplianceStatus.INVALID: "Your W-9 was rejected; please submit a corrected form.",
    ComplianceStatus.EXPIRED: "Your W-9 has expired; please submit an updated form.",
}


class SettlementGate:
    """Compliance check run before every payout."""

    def __init__(
        self,
        ledger: ComplianceLedger,
        aggregator: EarningsAggregator,
        settings: ComplianceSettings,
    ):
        self._ledger = ledger
        self._aggregator = aggregator
        self._settings = settings

    @property
    def threshold(self):
        return money(self._settings.reporting_threshold)

    def evaluate(self, payee_ref: str, now: Optional[datetime] = None) -> GateDecision:
        """
        Evaluate whether payouts for the payee require a verified tax form.

        Args:
            payee_ref: Payee to check
            now: Evaluation time; its year selects the earnings window
        """
        now = now or utcnow()
        threshold = self.threshold
        earnings = self._aggregator.compute_ytd_earnings(payee_ref, now.year)

        if earnings < threshold:
            return GateDecision(required=False, current_earnings=earnings, threshold=threshold)

        status = self._ledger.current_status(payee_ref)
        if status == ComplianceStatus.VERIFIED:
            return GateDecision(required=False, current_earnings=earnings, threshold=threshold)

        reason = (
            f"W-9 required for payouts. Your earnings ({format_money(earnings)}) have reached "
            f"the {format_money(threshold)} IRS reporting threshold. {_STATUS_NOTES[status]}"
        )
        logger.info(
            f"Tax form required for payee {payee_ref}",
            extra={"compliance_status": status.value, "earnings": str(earnings)},
        )
        return GateDecision(
            required=True,
            current_earnings=earnings,
            threshold=threshold,
            reason=reason,
        )
