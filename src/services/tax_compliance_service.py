"""
Tax Compliance Service - Application facade for the compliance gate and payouts.

Wires the TIN vault, compliance ledger, audit trail, earnings aggregator,
settlement gate and payout service together and exposes the operations the
HTTP layer and background tasks call.

Usage:
    service = build_compliance_service(get_settings(), transfer_executor=rail)
    record_id = service.submit_tax_form(payload)
    service.verify_tax_form(record_id, "reviewer-1", "verified")
    payout = service.initiate_payout("seller-42", "order-9001", "250.00")
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from audit.entry import AuditEvent
from audit.event_types import AuditEventType
from audit.storage import AuditStorage, SqlAlchemyAuditStorage
from audit.trail import AuditTrail
from compliance.ledger import ComplianceLedger
from compliance.locks import PayeeLockRegistry
from compliance.models import ComplianceStatus, TaxFormSubmission, TaxInfoStatus, TaxRecord
from config.settings import Settings
from core.exceptions import ConfigurationError, InvalidStateTransition, ValidationError
from core.money import Numeric, utcnow
from database.connection import Database
from domain.event_bus import EventBus, LoggingEventHandler
from resilience.retry import RetryConfig
from security.tin_vault import AccessContext, KeyProvider, TinVault, key_provider_from_settings
from settlement.calculator import validate_rates
from settlement.earnings import EarningsAggregator
from settlement.gate import SettlementGate
from settlement.models import PayoutRecord, PayoutStatus, SweepResult
from settlement.payout_service import PayoutService
from settlement.transfer import TransferExecutor, UnconfiguredTransferExecutor

logger = logging.getLogger(__name__)

PURPOSE_1099 = "1099 generation"


class TaxComplianceService:
    """Facade over the compliance ledger, settlement gate and payout service."""

    def __init__(
        self,
        ledger: ComplianceLedger,
        vault: TinVault,
        audit_trail: AuditTrail,
        aggregator: EarningsAggregator,
        gate: SettlementGate,
        payouts: PayoutService,
    ):
        self.ledger = ledger
        self.vault = vault
        self.audit_trail = audit_trail
        self.aggregator = aggregator
        self.gate = gate
        self.payouts = payouts

    # =========================================================================
    # TAX FORMS
    # =========================================================================

    def submit_tax_form(self, payload: Union[TaxFormSubmission, Dict[str, Any]]) -> str:
        """Store a tax form; returns the new record id."""
        return self.ledger.submit(payload)

    def verify_tax_form(
        self,
        record_id: str,
        reviewer_ref: str,
        decision: str,
        notes: Optional[str] = None,
    ) -> TaxRecord:
        return self.ledger.verify(record_id, reviewer_ref, decision, notes)

    def get_compliance_status(self, payee_ref: str) -> Dict[str, Any]:
        """
        Current compliance status of a payee.

        Returns:
            Dict with status, tin_last_four, tin_type and requires_update
            (whether the settlement gate would currently block payouts)
        """
        record = self.ledger.current_record(payee_ref)
        decision = self.gate.evaluate(payee_ref)

        if record is None:
            return {
                "status": ComplianceStatus.NOT_SUBMITTED.value,
                "tin_last_four": None,
                "tin_type": None,
                "requires_update": decision.required,
            }

        return {
            "status": record.status.value,
            "tin_last_four": record.tin_last_four,
            "tin_type": record.tin_type.value,
            "requires_update": decision.required,
        }

    def get_tax_requirements(self, payee_ref: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """What the payee must do before the next payout, with YTD earnings."""
        now = now or utcnow()
        decision = self.gate.evaluate(payee_ref, now=now)
        status = self.ledger.current_status(payee_ref)
        return {
            "payee_ref": payee_ref,
            "tax_year": now.year,
            "requires_tax_form": decision.required,
            "reason": decision.reason,
            "current_earnings": str(decision.current_earnings),
            "threshold": str(decision.threshold),
            "compliance_status": status.value,
            "has_verified_form": status == ComplianceStatus.VERIFIED,
        }

    def get_tax_info(self, payee_ref: str) -> Optional[Dict[str, Any]]:
        """The payee's current tax form, TIN masked, or None if never submitted."""
        record = self.ledger.current_record(payee_ref)
        if record is None:
            return None
        return _record_summary(record)

    def list_pending_submissions(self, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        """Reviewer queue of pending tax forms, oldest first."""
        if limit < 1 or limit > 500:
            raise ValidationError("limit must be between 1 and 500", field="limit")
        if offset < 0:
            raise ValidationError("offset must not be negative", field="offset")

        records, total = self.ledger.list_pending(limit=limit, offset=offset)
        return {
            "submissions": [_record_summary(record) for record in records],
            "total": total,
            "limit": limit,
            "offset": offset,
        }

    def get_decrypted_tin_for_1099(
        self,
        record_id: str,
        reviewer_ref: str,
        ip_address: Optional[str] = None,
    ) -> Dict[str, str]:
        """
        Decrypt the TIN of a verified record for 1099 preparation.

        The access is recorded as a tin_decrypted audit event before the
        plaintext is returned.

        Raises:
            NotFoundError: Unknown record
            InvalidStateTransition: Record is not verified
            SecurityAuditFailure: Access could not be audited
        """
        if not reviewer_ref:
            raise ValidationError("Reviewer is required", field="reviewer_ref")

        record, ciphertext = self.ledger.sealed_tin(record_id)
        if record.status != TaxInfoStatus.VERIFIED:
            raise InvalidStateTransition(
                f"TIN for record {record_id} is only available once verified",
                current_status=record.status.value,
                target_status=TaxInfoStatus.VERIFIED.value,
            )

        tin = self.vault.decrypt(
            ciphertext,
            AccessContext(
                actor_ref=reviewer_ref,
                subject_ref=record.owner_ref,
                purpose=PURPOSE_1099,
                ip_address=ip_address,
            ),
        )
        return {
            "tin": tin,
            "tin_type": record.tin_type.value,
            "masked_display": record.masked_tin,
        }

    def expire_tax_forms(self, now: Optional[datetime] = None) -> int:
        return self.ledger.expire_verified(now)

    def get_audit_log(
        self,
        subject_ref: str,
        event_type: Optional[Union[AuditEventType, str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: Optional[int] = 100,
        offset: int = 0,
    ) -> List[AuditEvent]:
        if event_type is not None:
            try:
                event_type = AuditEventType(event_type)
            except ValueError as e:
                raise ValidationError(f"Unknown audit event type: {event_type}", field="event_type") from e
        return self.audit_trail.query(
            subject_ref,
            event_type=event_type,
            start=start,
            end=end,
            limit=limit,
            offset=offset,
        )

    # =========================================================================
    # PAYOUTS
    # =========================================================================

    def initiate_payout(
        self,
        payee_ref: str,
        event_ref: str,
        gross: Numeric,
        risk_flags: Optional[List[str]] = None,
        actor_ref: Optional[str] = None,
    ) -> PayoutRecord:
        """
        Raises:
            ComplianceBlocked: The payee needs a verified tax form first
        """
        return self.payouts.initiate(payee_ref, event_ref, gross, risk_flags=risk_flags, actor_ref=actor_ref)

    def process_payout(self, payout_id: str) -> PayoutRecord:
        return self.payouts.execute_transfer(payout_id)

    def approve_payout(self, payout_id: str, reviewer_ref: str, notes: Optional[str] = None) -> PayoutRecord:
        return self.payouts.approve_held(payout_id, reviewer_ref, notes)

    def cancel_payout(self, payout_id: str, reviewer_ref: str, reason: str) -> PayoutRecord:
        return self.payouts.cancel_held(payout_id, reviewer_ref, reason)

    def flag_for_review(self, payout_id: str, reason: str) -> PayoutRecord:
        return self.payouts.flag_for_review(payout_id, reason)

    def flag_chargeback(self, payout_id: str, reason: Optional[str] = None) -> PayoutRecord:
        return self.payouts.flag_chargeback(payout_id, reason)

    def release_reserve(self, payout_id: str, now: Optional[datetime] = None) -> PayoutRecord:
        return self.payouts.release_reserve(payout_id, now=now)

    def sweep_reserve_releases(self, now: Optional[datetime] = None, limit: int = 500) -> SweepResult:
        return self.payouts.sweep_reserve_releases(now=now, limit=limit)

    def get_payout(self, payout_id: str) -> PayoutRecord:
        return self.payouts.get_payout(payout_id)

    def list_payouts(self, payee_ref: str, status: Optional[Union[PayoutStatus, str]] = None) -> List[PayoutRecord]:
        return self.payouts.list_payouts(payee_ref, status)


def _record_summary(record: TaxRecord) -> Dict[str, Any]:
    return {
        "record_id": record.record_id,
        "owner_ref": record.owner_ref,
        "form_type": record.form_type.value,
        "legal_name": record.legal_name,
        "business_name": record.business_name,
        "tax_classification": record.tax_classification.value,
        "tin_type": record.tin_type.value,
        "tin_masked": record.masked_tin,
        "status": record.status.value,
        "created_at": record.created_at.isoformat(),
        "verified_at": record.verified_at.isoformat() if record.verified_at else None,
        "expires_at": record.expires_at.isoformat() if record.expires_at else None,
    }


def build_compliance_service(
    settings: Settings,
    database: Optional[Database] = None,
    transfer_executor: Optional[TransferExecutor] = None,
    event_bus: Optional[EventBus] = None,
    key_provider: Optional[KeyProvider] = None,
    audit_storage: Optional[AuditStorage] = None,
    retry_config: Optional[RetryConfig] = None,
) -> TaxComplianceService:
    """
    Assemble the service graph from settings.

    Every collaborator can be passed in; anything omitted is built from
    settings. The database schema is created if missing.

    Raises:
        ConfigurationError: Missing TIN key in production, or invalid rates
    """
    try:
        validate_rates(settings.payout.fee_rate, settings.payout.reserve_rate)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid payout rates: {e.message}") from e

    if event_bus is None:
        event_bus = EventBus()
        event_bus.subscribe_all(LoggingEventHandler())

    if database is None:
        database = Database(settings.database, event_bus=event_bus)
        database.create_all()

    audit_trail = AuditTrail(audit_storage or SqlAlchemyAuditStorage(database))
    vault = TinVault(key_provider or key_provider_from_settings(settings), audit_trail)
    locks = PayeeLockRegistry()

    ledger = ComplianceLedger(database, vault, audit_trail, settings.compliance, locks)
    aggregator = EarningsAggregator(database)
    gate = SettlementGate(ledger, aggregator, settings.compliance)
    payouts = PayoutService(
        database,
        gate,
        audit_trail,
        transfer_executor or UnconfiguredTransferExecutor(),
        settings.payout,
        locks,
        retry_config=retry_config,
    )

    logger.info(
        "Tax compliance service ready",
        extra={"environment": settings.environment, "database": settings.database.driver},
    )
    return TaxComplianceService(ledger, vault, audit_trail, aggregator, gate, payouts)
