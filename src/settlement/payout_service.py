"""
Payout Service.

Stages payouts behind the settlement gate and drives them through their
lifecycle:

    initiate          gate check, split, PROCESSING (or HELD with risk flags)
    execute_transfer  net amount to the payee -> COMPLETED, or HELD on exhaustion
    release_reserve   reserve to the payee once the hold elapses -> RESERVE_RELEASED
    approve_held      reviewer retries a held payout's pending transfer
    cancel_held       reviewer cancels a held payout

Transfers run outside any database transaction, under the payee lock, with
bounded exponential backoff. Held payouts are never retried automatically.
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple, Union

from audit.entry import AuditEvent
from audit.event_types import AuditEventType
from audit.trail import AuditTrail
from compliance.locks import PayeeLockRegistry
from config.settings import PayoutSettings
from core.exceptions import (
    ComplianceBlocked,
    InvalidStateTransition,
    NotFoundError,
    SettlementError,
    TransferFailure,
    ValidationError,
)
from core.money import Numeric, ZERO, money, rate, utcnow
from database.connection import Database
from database.models import PayoutRecordRow
from database.repositories import PayoutRepository
from domain.events import PayoutBlocked, PayoutStatusChanged, ReserveReleased
from resilience.retry import RetryConfig, RetryExhausted, call_with_retry
from settlement.calculator import compute
from settlement.earnings import year_bounds
from settlement.gate import SettlementGate
from settlement.models import (
    PayoutRecord,
    PayoutStatus,
    SweepResult,
    can_transition,
)
from settlement.transfer import TransferExecutor, net_key, reserve_key

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"

HOLD_MANUAL_REVIEW = "manual_risk_review"
HOLD_TRANSFER_FAILED = "transfer_failed"
HOLD_RESERVE_RELEASE_FAILED = "reserve_release_failed"


class PayoutService:
    """Payout staging, transfer execution and reserve release."""

    def __init__(
        self,
        database: Database,
        gate: SettlementGate,
        audit_trail: AuditTrail,
        transfer_executor: TransferExecutor,
        settings: PayoutSettings,
        locks: PayeeLockRegistry,
        retry_config: Optional[RetryConfig] = None,
    ):
        self._database = database
        self._gate = gate
        self._audit = audit_trail
        self._executor = transfer_executor
        self._settings = settings
        self._locks = locks
        self._retry_config = retry_config or RetryConfig.for_transfers(settings)

    # =========================================================================
    # INITIATION
    # =========================================================================

    def initiate(
        self,
        payee_ref: str,
        event_ref: str,
        gross: Numeric,
        risk_flags: Optional[Iterable[str]] = None,
        actor_ref: Optional[str] = None,
    ) -> PayoutRecord:
        """
        Create a payout record if the settlement gate allows it.

        Rates are taken from settings now and stored on the record. A payee
        gets at most one live payout per event: repeating the call returns
        the existing record unless it was cancelled.

        Raises:
            ComplianceBlocked: Payee needs a verified tax form; no record is created
            ValidationError: Bad amount or references
        """
        if not payee_ref:
            raise ValidationError("payee_ref is required", field="payee_ref")
        if not event_ref:
            raise ValidationError("event_ref is required", field="event_ref")

        fee_rate = rate(self._settings.fee_rate)
        reserve_rate = rate(self._settings.reserve_rate)
        split = compute(gross, fee_rate, reserve_rate)
        flags = [flag.strip() for flag in (risk_flags or []) if flag and flag.strip()]
        actor_ref = actor_ref or payee_ref

        with self._locks.hold(payee_ref):
            existing = self._live_payout_for_event(payee_ref, event_ref)
            if existing is not None:
                logger.info(f"Payout {existing.payout_id} already staged for {payee_ref} event {event_ref}")
                return existing

            now = utcnow()
            decision = self._gate.evaluate(payee_ref, now=now)

            if decision.required:
                self._record_blocked(payee_ref, event_ref, split.gross, decision, actor_ref)
                raise ComplianceBlocked(decision.reason, decision.current_earnings, decision.threshold)

            threshold_noted = self._threshold_already_noted(payee_ref, now)

            with self._database.unit_of_work() as uow:
                row = uow.payouts.add(PayoutRecordRow(
                    payee_ref=payee_ref,
                    event_ref=event_ref,
                    gross_amount=split.gross,
                    fee_rate=fee_rate,
                    fee_amount=split.fee,
                    reserve_rate=reserve_rate,
                    reserve_amount=split.reserve,
                    net_amount=split.net,
                    status=PayoutStatus.PROCESSING,
                    initiated_at=now,
                    retry_count=0,
                    chargeback_flag=False,
                ))
                self._audit.append(
                    AuditEvent(
                        event_type=AuditEventType.PAYOUT_INITIATED,
                        actor_ref=actor_ref,
                        subject_ref=payee_ref,
                        details={
                            "payout_id": row.payout_id,
                            "event_ref": event_ref,
                            "gross_amount": str(split.gross),
                            "fee_amount": str(split.fee),
                            "reserve_amount": str(split.reserve),
                            "net_amount": str(split.net),
                        },
                    ),
                    uow=uow,
                )

                if decision.current_earnings >= decision.threshold and not threshold_noted:
                    self._audit.append(
                        AuditEvent(
                            event_type=AuditEventType.THRESHOLD_MET,
                            actor_ref=SYSTEM_ACTOR,
                            subject_ref=payee_ref,
                            details={
                                "tax_year": now.year,
                                "current_earnings": str(decision.current_earnings),
                                "threshold": str(decision.threshold),
                            },
                        ),
                        uow=uow,
                    )

                if flags:
                    self._hold(uow, row, f"{HOLD_MANUAL_REVIEW}: {', '.join(flags)}", actor_ref)

                record = PayoutRepository.to_domain(row)

        logger.info(
            f"Payout {record.payout_id} initiated for {payee_ref}: {record.status.value}",
            extra={"payout_id": record.payout_id, "net_amount": str(record.net_amount)},
        )
        return record

    def _record_blocked(self, payee_ref, event_ref, gross, decision, actor_ref) -> None:
        with self._database.unit_of_work() as uow:
            self._audit.append(
                AuditEvent(
                    event_type=AuditEventType.PAYOUT_BLOCKED_W9_REQUIRED,
                    actor_ref=actor_ref,
                    subject_ref=payee_ref,
                    details={
                        "event_ref": event_ref,
                        "gross_amount": str(gross),
                        "current_earnings": str(decision.current_earnings),
                        "threshold": str(decision.threshold),
                    },
                ),
                uow=uow,
            )
            uow.collect_event(PayoutBlocked(
                payee_ref=payee_ref,
                event_ref=event_ref,
                reason=decision.reason,
                current_earnings=decision.current_earnings,
                threshold=decision.threshold,
            ))
        logger.warning(f"Payout blocked for {payee_ref}: tax form required")

    def _live_payout_for_event(self, payee_ref: str, event_ref: str) -> Optional[PayoutRecord]:
        with self._database.unit_of_work() as uow:
            row = uow.payouts.find_live_for_event(payee_ref, event_ref)
            return PayoutRepository.to_domain(row) if row is not None else None

    def _threshold_already_noted(self, payee_ref: str, now: datetime) -> bool:
        start, end = year_bounds(now.year)
        return bool(self._audit.query(
            payee_ref,
            event_type=AuditEventType.THRESHOLD_MET,
            start=start,
            end=end,
            limit=1,
        ))

    # =========================================================================
    # TRANSFERS
    # =========================================================================

    def execute_transfer(self, payout_id: str) -> PayoutRecord:
        """
        Transfer the net amount of a PROCESSING payout.

        Success moves it to COMPLETED and schedules the reserve release;
        exhausting the retries moves it to HELD.

        Raises:
            NotFoundError: Unknown payout
            InvalidStateTransition: Payout is not PROCESSING
        """
        payee_ref = self.get_payout(payout_id).payee_ref
        with self._locks.hold(payee_ref):
            current = self.get_payout(payout_id)
            if current.status != PayoutStatus.PROCESSING:
                raise InvalidStateTransition(
                    f"Payout {payout_id} is not awaiting transfer",
                    current_status=current.status.value,
                    target_status=PayoutStatus.COMPLETED.value,
                )
            return self._send_net(current, actor_ref=SYSTEM_ACTOR)

    def _send_net(self, current: PayoutRecord, actor_ref: str, reviewer_ref: Optional[str] = None,
                  notes: Optional[str] = None) -> PayoutRecord:
        transfer_ref, failures, error = self._transfer(
            current.payee_ref, current.net_amount, net_key(current.payout_id)
        )

        with self._database.unit_of_work() as uow:
            row = self._get_row(uow, current.payout_id)
            row.retry_count = (row.retry_count or 0) + failures
            if reviewer_ref:
                row.reviewed_by = reviewer_ref
                row.review_notes = notes

            if transfer_ref is not None:
                now = utcnow()
                self._move(row, PayoutStatus.COMPLETED)
                row.completed_at = now
                row.reserve_release_due = now + timedelta(days=self._settings.reserve_hold_days)
                row.transfer_ref = transfer_ref
                row.hold_reason = None
                uow.session.flush()
                self._audit.append(
                    AuditEvent(
                        event_type=AuditEventType.PAYOUT_COMPLETED,
                        actor_ref=actor_ref,
                        subject_ref=row.payee_ref,
                        details={
                            "payout_id": row.payout_id,
                            "net_amount": str(money(row.net_amount)),
                            "transfer_ref": transfer_ref,
                            "reserve_release_due": row.reserve_release_due.isoformat(),
                        },
                    ),
                    uow=uow,
                )
                uow.collect_event(PayoutStatusChanged(
                    payee_ref=row.payee_ref,
                    payout_id=row.payout_id,
                    status=PayoutStatus.COMPLETED.value,
                ))
            elif PayoutStatus(row.status) == PayoutStatus.HELD:
                row.hold_reason = f"{HOLD_TRANSFER_FAILED}: {error}"
                uow.session.flush()
            else:
                self._hold(uow, row, f"{HOLD_TRANSFER_FAILED}: {error}", actor_ref)

            return PayoutRepository.to_domain(row)

    def _transfer(self, payee_ref: str, amount: Decimal, idempotency_key: str) -> Tuple[Optional[str], int, Optional[str]]:
        """
        Call the executor under the retry policy.

        Returns:
            (transfer_ref or None, failed attempts, last error message)
        """
        failures = 0

        def count_failure(attempt: int, exc: Exception) -> None:
            nonlocal failures
            failures += 1

        config = replace(
            self._retry_config,
            retryable_exceptions=(TransferFailure,),
            retry_if=lambda exc: getattr(exc, "retryable", True),
            on_failure=count_failure,
        )

        try:
            return call_with_retry(
                self._call_executor, config, payee_ref, amount, idempotency_key
            ), failures, None
        except RetryExhausted as e:
            message = getattr(e.last_exception, "message", None) or str(e.last_exception)
            logger.warning(f"Transfer {idempotency_key} failed after {e.attempts} attempts")
            return None, failures, message
        except TransferFailure as e:
            logger.warning(f"Transfer {idempotency_key} failed permanently: {e.message}")
            return None, failures + 1, e.message

    def _call_executor(self, payee_ref: str, amount: Decimal, idempotency_key: str) -> str:
        # Anything the rail raises besides TransferFailure is treated as transient
        try:
            return self._executor.transfer(payee_ref, amount, idempotency_key)
        except TransferFailure:
            raise
        except Exception as e:
            logger.warning(f"Transfer {idempotency_key} raised {type(e).__name__}: {e}")
            raise TransferFailure(f"{type(e).__name__}: {e}") from e

    # =========================================================================
    # MANUAL REVIEW
    # =========================================================================

    def flag_for_review(self, payout_id: str, reason: str, actor_ref: str = SYSTEM_ACTOR) -> PayoutRecord:
        """
        Move a PROCESSING payout to HELD for manual review.

        Raises:
            InvalidStateTransition: Payout is not PROCESSING
        """
        if not reason:
            raise ValidationError("A hold reason is required", field="reason")
        payee_ref = self.get_payout(payout_id).payee_ref
        with self._locks.hold(payee_ref):
            with self._database.unit_of_work() as uow:
                row = self._get_row(uow, payout_id)
                if PayoutStatus(row.status) != PayoutStatus.PROCESSING:
                    raise InvalidStateTransition(
                        f"Payout {payout_id} cannot be flagged for review",
                        current_status=PayoutStatus(row.status).value,
                        target_status=PayoutStatus.HELD.value,
                    )
                self._hold(uow, row, f"{HOLD_MANUAL_REVIEW}: {reason}", actor_ref)
                return PayoutRepository.to_domain(row)

    def approve_held(self, payout_id: str, reviewer_ref: str, notes: Optional[str] = None) -> PayoutRecord:
        """
        Reviewer approves a HELD payout and its pending transfer is retried.

        A payout held before its net transfer goes to COMPLETED on success; one
        held after a failed reserve release goes to RESERVE_RELEASED. On failure
        it stays HELD with the new error as hold reason.

        Raises:
            InvalidStateTransition: Payout is not HELD, or its reserve is
                frozen by a chargeback
        """
        if not reviewer_ref:
            raise ValidationError("Reviewer is required", field="reviewer_ref")
        payee_ref = self.get_payout(payout_id).payee_ref
        with self._locks.hold(payee_ref):
            current = self.get_payout(payout_id)
            if current.status != PayoutStatus.HELD:
                raise InvalidStateTransition(
                    f"Payout {payout_id} is not held",
                    current_status=current.status.value,
                    target_status=PayoutStatus.COMPLETED.value,
                )

            if current.transfer_ref is None:
                result = self._send_net(current, actor_ref=reviewer_ref, reviewer_ref=reviewer_ref, notes=notes)
            else:
                if current.chargeback_flag:
                    raise InvalidStateTransition(
                        f"Payout {payout_id} has a chargeback; reserve cannot be released",
                        current_status=current.status.value,
                        target_status=PayoutStatus.RESERVE_RELEASED.value,
                    )
                result = self._send_reserve(current, actor_ref=reviewer_ref, reviewer_ref=reviewer_ref, notes=notes)

        logger.info(f"Held payout {payout_id} approved by {reviewer_ref}: {result.status.value}")
        return result

    def cancel_held(self, payout_id: str, reviewer_ref: str, reason: str) -> PayoutRecord:
        """
        Reviewer cancels a HELD payout.

        Raises:
            InvalidStateTransition: Payout is not HELD
        """
        if not reviewer_ref:
            raise ValidationError("Reviewer is required", field="reviewer_ref")
        if not reason:
            raise ValidationError("A cancellation reason is required", field="reason")

        payee_ref = self.get_payout(payout_id).payee_ref
        with self._locks.hold(payee_ref):
            with self._database.unit_of_work() as uow:
                row = self._get_row(uow, payout_id)
                if PayoutStatus(row.status) != PayoutStatus.HELD:
                    raise InvalidStateTransition(
                        f"Payout {payout_id} is not held",
                        current_status=PayoutStatus(row.status).value,
                        target_status=PayoutStatus.CANCELLED.value,
                    )
                self._move(row, PayoutStatus.CANCELLED)
                row.reviewed_by = reviewer_ref
                row.review_notes = reason
                uow.session.flush()
                self._audit.append(
                    AuditEvent(
                        event_type=AuditEventType.PAYOUT_CANCELLED,
                        actor_ref=reviewer_ref,
                        subject_ref=row.payee_ref,
                        details={"payout_id": payout_id, "reason": reason},
                    ),
                    uow=uow,
                )
                uow.collect_event(PayoutStatusChanged(
                    payee_ref=row.payee_ref,
                    payout_id=payout_id,
                    status=PayoutStatus.CANCELLED.value,
                ))
                return PayoutRepository.to_domain(row)

    def flag_chargeback(self, payout_id: str, reason: Optional[str] = None) -> PayoutRecord:
        """
        Mark a payout as charged back. Its reserve is never released automatically.
        """
        payee_ref = self.get_payout(payout_id).payee_ref
        with self._locks.hold(payee_ref):
            with self._database.unit_of_work() as uow:
                row = self._get_row(uow, payout_id)
                row.chargeback_flag = True
                if reason:
                    row.review_notes = reason
                uow.session.flush()
                record = PayoutRepository.to_domain(row)

        logger.warning(f"Chargeback flagged on payout {payout_id}")
        return record

    # =========================================================================
    # RESERVE RELEASE
    # =========================================================================

    def release_reserve(self, payout_id: str, now: Optional[datetime] = None) -> PayoutRecord:
        """
        Release the withheld reserve once the hold period has elapsed.

        A zero reserve is marked released without calling the executor.

        Raises:
            NotFoundError: Unknown payout
            InvalidStateTransition: Not COMPLETED, not yet due, or chargeback flagged
        """
        now = now or utcnow()
        payee_ref = self.get_payout(payout_id).payee_ref
        with self._locks.hold(payee_ref):
            current = self.get_payout(payout_id)
            target = PayoutStatus.RESERVE_RELEASED.value

            if current.status != PayoutStatus.COMPLETED:
                raise InvalidStateTransition(
                    f"Payout {payout_id} is not completed",
                    current_status=current.status.value,
                    target_status=target,
                )
            if current.chargeback_flag:
                raise InvalidStateTransition(
                    f"Payout {payout_id} has a chargeback; reserve cannot be released",
                    current_status=current.status.value,
                    target_status=target,
                )
            if current.reserve_release_due is None or now < current.reserve_release_due:
                raise InvalidStateTransition(
                    f"Reserve for payout {payout_id} is not yet due",
                    current_status=current.status.value,
                    target_status=target,
                )

            return self._send_reserve(current, actor_ref=SYSTEM_ACTOR, released_at=now)

    def _send_reserve(self, current: PayoutRecord, actor_ref: str, reviewer_ref: Optional[str] = None,
                      notes: Optional[str] = None, released_at: Optional[datetime] = None) -> PayoutRecord:
        if current.reserve_amount > ZERO:
            transfer_ref, failures, error = self._transfer(
                current.payee_ref, current.reserve_amount, reserve_key(current.payout_id)
            )
        else:
            transfer_ref, failures, error = None, 0, None

        with self._database.unit_of_work() as uow:
            row = self._get_row(uow, current.payout_id)
            row.retry_count = (row.retry_count or 0) + failures
            if reviewer_ref:
                row.reviewed_by = reviewer_ref
                row.review_notes = notes

            if error is None:
                self._move(row, PayoutStatus.RESERVE_RELEASED)
                row.reserve_released_at = released_at or utcnow()
                row.reserve_transfer_ref = transfer_ref
                row.hold_reason = None
                uow.session.flush()
                self._audit.append(
                    AuditEvent(
                        event_type=AuditEventType.RESERVE_RELEASED,
                        actor_ref=actor_ref,
                        subject_ref=row.payee_ref,
                        details={
                            "payout_id": row.payout_id,
                            "reserve_amount": str(money(row.reserve_amount)),
                            "transfer_ref": transfer_ref,
                        },
                    ),
                    uow=uow,
                )
                uow.collect_event(ReserveReleased(
                    payee_ref=row.payee_ref,
                    payout_id=row.payout_id,
                    amount=money(row.reserve_amount),
                ))
            elif PayoutStatus(row.status) == PayoutStatus.HELD:
                row.hold_reason = f"{HOLD_RESERVE_RELEASE_FAILED}: {error}"
                uow.session.flush()
            else:
                self._hold(uow, row, f"{HOLD_RESERVE_RELEASE_FAILED}: {error}", actor_ref)

            return PayoutRepository.to_domain(row)

    def sweep_reserve_releases(self, now: Optional[datetime] = None, limit: int = 500) -> SweepResult:
        """
        Release every reserve that has come due.

        One payout failing never stops the sweep; failures are reported per id.
        """
        now = now or utcnow()
        with self._database.unit_of_work() as uow:
            due = uow.payouts.list_due_for_release(now, limit=limit)

        result = SweepResult()
        for payout_id in due:
            try:
                record = self.release_reserve(payout_id, now=now)
            except SettlementError as e:
                result.errors[payout_id] = e.message
                continue
            except Exception as e:
                logger.exception(f"Reserve release for payout {payout_id} failed unexpectedly")
                result.errors[payout_id] = f"{type(e).__name__}: {e}"
                continue
            if record.status == PayoutStatus.RESERVE_RELEASED:
                result.released.append(payout_id)
            else:
                result.held.append(payout_id)

        logger.info(
            f"Reserve sweep: {len(result.released)} released, "
            f"{len(result.held)} held, {len(result.errors)} errors"
        )
        return result

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_payout(self, payout_id: str) -> PayoutRecord:
        """
        Raises:
            NotFoundError: Unknown payout
        """
        with self._database.unit_of_work() as uow:
            return PayoutRepository.to_domain(self._get_row(uow, payout_id))

    def list_payouts(self, payee_ref: str, status: Optional[Union[PayoutStatus, str]] = None) -> List[PayoutRecord]:
        """Payouts for a payee, newest first."""
        if status is not None:
            try:
                status = PayoutStatus(status)
            except ValueError as e:
                raise ValidationError(f"Unknown payout status: {status}", field="status") from e
        with self._database.unit_of_work() as uow:
            return [PayoutRepository.to_domain(row) for row in uow.payouts.list_for_payee(payee_ref, status)]

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _get_row(uow, payout_id: str) -> PayoutRecordRow:
        row = uow.payouts.get(payout_id, for_update=True)
        if row is None:
            raise NotFoundError("Payout", payout_id)
        return row

    @staticmethod
    def _move(row: PayoutRecordRow, target: PayoutStatus) -> None:
        current = PayoutStatus(row.status)
        if not can_transition(current, target):
            raise InvalidStateTransition(
                f"Payout {row.payout_id} cannot move from {current.value} to {target.value}",
                current_status=current.value,
                target_status=target.value,
            )
        row.status = target

    def _hold(self, uow, row: PayoutRecordRow, reason: str, actor_ref: str) -> None:
        self._move(row, PayoutStatus.HELD)
        row.hold_reason = reason
        uow.session.flush()
        self._audit.append(
            AuditEvent(
                event_type=AuditEventType.PAYOUT_HELD,
                actor_ref=actor_ref,
                subject_ref=row.payee_ref,
                details={"payout_id": row.payout_id, "hold_reason": reason},
            ),
            uow=uow,
        )
        uow.collect_event(PayoutStatusChanged(
            payee_ref=row.payee_ref,
            payout_id=row.payout_id,
            status=PayoutStatus.HELD.value,
            hold_reason=reason,
        ))
        logger.warning(f"Payout {row.payout_id} held: {reason}")
