"""
Compliance Ledger.

Owns the tax form lifecycle for each payee:

    NOT_SUBMITTED -> PENDING -> {VERIFIED, INVALID}
    VERIFIED -> EXPIRED

Every submission creates a new record and becomes the payee's current record;
earlier records are kept untouched. Reviewer decisions are final: a second
verify on the same record fails and the first decision stands.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from audit.entry import AuditEvent
from audit.event_types import AuditEventType
from audit.trail import AuditTrail
from compliance.locks import PayeeLockRegistry
from compliance.models import (
    ComplianceStatus,
    ReviewDecision,
    TaxFormSubmission,
    TaxInfoStatus,
    TaxRecord,
    can_transition,
)
from config.settings import ComplianceSettings
from core.exceptions import InvalidStateTransition, NotFoundError, ValidationError
from core.money import utcnow
from database.connection import Database
from database.models import TaxInformationRecord
from database.repositories import TaxRecordRepository
from domain.events import TaxFormExpired, TaxFormReviewed, TaxFormSubmitted
from security.secure_logger import get_logger
from security.tin_validation import TinType, clean_tin, validate_tin
from security.tin_vault import TinVault

logger = get_logger(__name__)

SYSTEM_ACTOR = "system"


def parse_submission(payload: Union[TaxFormSubmission, Dict[str, Any]]) -> TaxFormSubmission:
    """
    Validate an inbound tax form payload.

    Raises:
        ValidationError: Naming the first offending field
    """
    if isinstance(payload, TaxFormSubmission):
        return payload
    try:
        return TaxFormSubmission.model_validate(payload)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ValidationError(f"Invalid tax form: {first.get('msg', 'invalid value')}", field=field) from e


class ComplianceLedger:
    """Tax form history and current compliance status per payee."""

    def __init__(
        self,
        database: Database,
        vault: TinVault,
        audit_trail: AuditTrail,
        settings: ComplianceSettings,
        locks: PayeeLockRegistry,
    ):
        self._database = database
        self._vault = vault
        self._audit = audit_trail
        self._settings = settings
        self._locks = locks

    # =========================================================================
    # SUBMISSION AND REVIEW
    # =========================================================================

    def submit(self, form: Union[TaxFormSubmission, Dict[str, Any]]) -> str:
        """
        Store a new tax form as the payee's current record.

        The record insert, pointer move and tax_info_submitted audit event
        commit together.

        Returns:
            The new record id

        Raises:
            ValidationError: Missing/invalid fields or malformed TIN
        """
        form = parse_submission(form)
        raw_tin = form.tin.get_secret_value()

        tin_type = TinType(form.tin_type)
        clean = clean_tin(raw_tin)
        if clean is None or not validate_tin(clean, tin_type):
            raise ValidationError(f"Invalid {tin_type.value.upper()} format", field="tin")

        encrypted_tin, last_four = self._vault.encrypt(clean, tin_type)

        with self._locks.hold(form.owner_ref):
            with self._database.unit_of_work() as uow:
                row = uow.tax_records.add(TaxInformationRecord(
                    owner_ref=form.owner_ref,
                    form_type=form.form_type,
                    legal_name=form.legal_name,
                    business_name=form.business_name,
                    tax_classification=form.tax_classification,
                    tin_type=tin_type,
                    encrypted_tin=encrypted_tin,
                    tin_last_four=last_four,
                    address_line1=form.address.line1,
                    address_line2=form.address.line2,
                    address_city=form.address.city,
                    address_state=form.address.state,
                    address_postal_code=form.address.postal_code,
                    address_country=form.address.country,
                    is_us_person=form.is_us_person,
                    is_exempt_payee=form.is_exempt_payee,
                    exempt_payee_code=form.exempt_payee_code,
                    signature_name=form.signature_name,
                    signature_date=form.signature_date,
                    signature_ip=form.signature_ip,
                    status=TaxInfoStatus.PENDING,
                    created_at=utcnow(),
                ))
                record_id = row.record_id

                uow.pointers.point_to(form.owner_ref, record_id, TaxInfoStatus.PENDING)
                self._audit.append(
                    AuditEvent(
                        event_type=AuditEventType.TAX_INFO_SUBMITTED,
                        actor_ref=form.owner_ref,
                        subject_ref=form.owner_ref,
                        ip_address=form.signature_ip,
                        details={
                            "record_id": record_id,
                            "form_type": form.form_type.value,
                            "tin_type": tin_type.value,
                        },
                    ),
                    uow=uow,
                )
                uow.collect_event(TaxFormSubmitted(payee_ref=form.owner_ref, record_id=record_id))

        logger.info(
            f"Tax form submitted for payee {form.owner_ref}",
            extra={"record_id": record_id, "form_type": form.form_type.value},
        )
        return record_id

    def verify(
        self,
        record_id: str,
        reviewer_ref: str,
        decision: Union[ReviewDecision, str],
        notes: Optional[str] = None,
    ) -> TaxRecord:
        """
        Record a reviewer decision on a pending tax form.

        Raises:
            NotFoundError: Unknown record id
            InvalidStateTransition: Record is not pending
            ValidationError: Unknown decision or missing reviewer
        """
        try:
            decision = ReviewDecision(decision)
        except ValueError as e:
            raise ValidationError(f"Unknown review decision: {decision}", field="decision") from e
        if not reviewer_ref:
            raise ValidationError("Reviewer is required", field="reviewer_ref")

        owner_ref = self.get_record(record_id).owner_ref
        target = decision.target_status

        with self._locks.hold(owner_ref):
            with self._database.unit_of_work() as uow:
                row = uow.tax_records.get(record_id, for_update=True)
                if row is None:
                    raise NotFoundError("Tax record", record_id)

                current = TaxInfoStatus(row.status)
                if current != TaxInfoStatus.PENDING or not can_transition(current, target):
                    raise InvalidStateTransition(
                        f"Tax record {record_id} has already been reviewed",
                        current_status=current.value,
                        target_status=target.value,
                    )

                now = utcnow()
                row.status = target
                row.verified_at = now
                row.verified_by = reviewer_ref
                row.review_notes = notes
                if target == TaxInfoStatus.VERIFIED:
                    row.expires_at = now + timedelta(days=self._settings.tin_validity_days)
                uow.session.flush()

                uow.pointers.sync_status(owner_ref, record_id, target)

                event_type = (
                    AuditEventType.TAX_INFO_VERIFIED
                    if target == TaxInfoStatus.VERIFIED
                    else AuditEventType.TAX_INFO_REJECTED
                )
                self._audit.append(
                    AuditEvent(
                        event_type=event_type,
                        actor_ref=reviewer_ref,
                        subject_ref=owner_ref,
                        details={"record_id": record_id, "notes": notes},
                    ),
                    uow=uow,
                )
                uow.collect_event(TaxFormReviewed(
                    payee_ref=owner_ref,
                    record_id=record_id,
                    decision=decision.value,
                    reviewer_ref=reviewer_ref,
                ))
                result = TaxRecordRepository.to_domain(row)

        logger.info(f"Tax record {record_id} marked {target.value} by {reviewer_ref}")
        return result

    def expire_verified(self, now: Optional[datetime] = None) -> int:
        """
        Move verified records past their validity window to EXPIRED.

        Returns:
            Number of records expired
        """
        now = now or utcnow()
        with self._database.unit_of_work() as uow:
            candidates = [(row.record_id, row.owner_ref) for row in uow.tax_records.list_expirable(now)]

        expired = 0
        for record_id, owner_ref in candidates:
            with self._locks.hold(owner_ref):
                with self._database.unit_of_work() as uow:
                    row = uow.tax_records.get(record_id, for_update=True)
                    if row is None or TaxInfoStatus(row.status) != TaxInfoStatus.VERIFIED:
                        continue
                    row.status = TaxInfoStatus.EXPIRED
                    uow.session.flush()
                    uow.pointers.sync_status(owner_ref, record_id, TaxInfoStatus.EXPIRED)
                    self._audit.append(
                        AuditEvent(
                            event_type=AuditEventType.TAX_INFO_EXPIRED,
                            actor_ref=SYSTEM_ACTOR,
                            subject_ref=owner_ref,
                            details={"record_id": record_id},
                        ),
                        uow=uow,
                    )
                    uow.collect_event(TaxFormExpired(payee_ref=owner_ref, record_id=record_id))
                    expired += 1

        if expired:
            logger.info(f"Expired {expired} verified tax records")
        return expired

    # =========================================================================
    # QUERIES
    # =========================================================================

    def current_status(self, payee_ref: str) -> ComplianceStatus:
        """Status of the payee's current record, or NOT_SUBMITTED."""
        with self._database.unit_of_work() as uow:
            pointer = uow.pointers.get(payee_ref)
            if pointer is None:
                return ComplianceStatus.NOT_SUBMITTED
            return ComplianceStatus.from_record_status(pointer.status)

    def current_record(self, payee_ref: str) -> Optional[TaxRecord]:
        """The payee's current record, or None if they never submitted."""
        with self._database.unit_of_work() as uow:
            pointer = uow.pointers.get(payee_ref)
            if pointer is None:
                return None
            row = uow.tax_records.get(pointer.current_record_id)
            return TaxRecordRepository.to_domain(row)

    def get_record(self, record_id: str) -> TaxRecord:
        """
        Raises:
            NotFoundError: Unknown record id
        """
        with self._database.unit_of_work() as uow:
            row = uow.tax_records.get(record_id)
            if row is None:
                raise NotFoundError("Tax record", record_id)
            return TaxRecordRepository.to_domain(row)

    def history(self, payee_ref: str) -> List[TaxRecord]:
        """All records a payee has submitted, oldest first."""
        with self._database.unit_of_work() as uow:
            return [TaxRecordRepository.to_domain(row) for row in uow.tax_records.list_for_owner(payee_ref)]

    def list_pending(self, limit: int = 50, offset: int = 0) -> Tuple[List[TaxRecord], int]:
        """Reviewer queue: pending records oldest first, with the total count."""
        with self._database.unit_of_work() as uow:
            rows, total = uow.tax_records.list_pending(limit=limit, offset=offset)
            return [TaxRecordRepository.to_domain(row) for row in rows], total

    def sealed_tin(self, record_id: str) -> Tuple[TaxRecord, str]:
        """
        Record and its TIN ciphertext, for handing to TinVault.decrypt.

        Raises:
            NotFoundError: Unknown record id
        """
        with self._database.unit_of_work() as uow:
            row = uow.tax_records.get(record_id)
            if row is None:
                raise NotFoundError("Tax record", record_id)
            return TaxRecordRepository.to_domain(row), row.encrypted_tin
