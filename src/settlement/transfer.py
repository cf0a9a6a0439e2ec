"""
Funds-transfer executor interface.

Moving money across a payment rail is outside this engine. The payout
service calls a TransferExecutor with an idempotency key per payout leg
(net, reserve), so a retried call never pays twice.
"""

from decimal import Decimal
from typing import Protocol

from core.exceptions import TransferFailure


class TransferExecutor(Protocol):
    """Sends an amount to a payee and returns the rail's transfer reference."""

    def transfer(self, payee_ref: str, amount: Decimal, idempotency_key: str) -> str:
        """
        Raises:
            TransferFailure: retryable=True for transient errors
        """
        ...


class UnconfiguredTransferExecutor:
    """Default executor when no rail is wired in; every transfer fails permanently."""

    def transfer(self, payee_ref: str, amount: Decimal, idempotency_key: str) -> str:
        raise TransferFailure("No transfer executor configured", retryable=False)


def net_key(payout_id: str) -> str:
    return f"{payout_id}:net"


def reserve_key(payout_id: str) -> str:
    return f"{payout_id}:reserve"
