"""
SQLAlchemy ORM Models for the Compliance Gate and Payout Engine.

Architecture:
- Primary Keys: UUID strings (portable across PostgreSQL and SQLite)
- Money: Numeric(12, 2); rates: Numeric(6, 4)
- Status Flags: Enum-based status tracking
- Tax records are never deleted; the audit log is append-only

Tables:
- tax_information: every tax form a payee has submitted (history kept)
- compliance_pointers: one row per payee pointing at their current record
- compliance_audit_log: immutable audit trail with integrity hash
- settlement_fee_entries: finalized seller amounts feeding the earnings total
- payouts: staged payouts with fee/reserve split and reserve release schedule
"""

from uuid import uuid4
import hashlib
import json

from sqlalchemy import (
    Column, String, Integer, Numeric, Boolean, Date, DateTime,
    Text, Enum, ForeignKey, Index, CheckConstraint, JSON, event
)
from sqlalchemy.orm import declarative_base

from audit.event_types import AuditEventType
from compliance.models import TaxClassification, TaxFormType, TaxInfoStatus
from core.exceptions import AuditWriteError
from core.money import utcnow
from security.tin_validation import TinType
from settlement.models import FeeEntryStatus, PayoutStatus


Base = declarative_base()


def _new_id() -> str:
    return str(uuid4())


# =============================================================================
# TAX INFORMATION
# =============================================================================

class TaxInformationRecord(Base):
    """
    Tax Information Record - one submitted tax form.

    SECURITY: encrypted_tin is AES-256-GCM ciphertext (base64). The plaintext
    TIN is never stored; tin_last_four is kept for masked display.
    """
    __tablename__ = "tax_information"

    record_id = Column(String(36), primary_key=True, default=_new_id)
    owner_ref = Column(String(100), nullable=False)

    form_type = Column(Enum(TaxFormType), nullable=False, default=TaxFormType.W9)
    legal_name = Column(String(255), nullable=False)
    business_name = Column(String(255), nullable=True)
    tax_classification = Column(Enum(TaxClassification), nullable=False)

    # Taxpayer identifier
    tin_type = Column(Enum(TinType), nullable=False)
    encrypted_tin = Column(Text, nullable=False)
    tin_last_four = Column(String(4), nullable=False)

    # Address
    address_line1 = Column(String(255), nullable=False)
    address_line2 = Column(String(255), nullable=True)
    address_city = Column(String(100), nullable=False)
    address_state = Column(String(50), nullable=False)
    address_postal_code = Column(String(20), nullable=False)
    address_country = Column(String(50), nullable=False, default="USA")

    # Certification
    is_us_person = Column(Boolean, nullable=True)
    is_exempt_payee = Column(Boolean, nullable=False, default=False)
    exempt_payee_code = Column(String(10), nullable=True)
    signature_name = Column(String(255), nullable=False)
    signature_date = Column(Date, nullable=False)
    signature_ip = Column(String(45), nullable=True)

    # Review
    status = Column(Enum(TaxInfoStatus), nullable=False, default=TaxInfoStatus.PENDING, index=True)
    verified_at = Column(DateTime, nullable=True)
    verified_by = Column(String(100), nullable=True)
    review_notes = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index('ix_tax_info_owner_created', 'owner_ref', 'created_at'),
        Index('ix_tax_info_status_expires', 'status', 'expires_at'),
        CheckConstraint("length(tin_last_four) = 4", name='ck_tin_last_four'),
    )


class CompliancePointer(Base):
    """
    Compliance Pointer - the payee's current tax record and its status.

    Moved on every submission and kept in step with the record's status in the
    same transaction, so the gate reads one row.
    """
    __tablename__ = "compliance_pointers"

    payee_ref = Column(String(100), primary_key=True)
    current_record_id = Column(
        String(36), ForeignKey("tax_information.record_id"), nullable=False
    )
    status = Column(Enum(TaxInfoStatus), nullable=False)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


# =============================================================================
# AUDIT LOG
# =============================================================================

class AuditLogRecord(Base):
    """
    Audit Log Record - Immutable audit trail for compliance.
    """
    __tablename__ = "compliance_audit_log"

    # Insertion order breaks timestamp ties
    log_seq = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(36), nullable=False, unique=True)

    event_type = Column(Enum(AuditEventType), nullable=False, index=True)
    actor_ref = Column(String(100), nullable=False)
    subject_ref = Column(String(100), nullable=False)
    purpose = Column(String(255), nullable=True)
    ip_address = Column(String(45), nullable=True)

    timestamp = Column(DateTime, nullable=False, default=utcnow)
    details = Column(JSON, nullable=True)

    # Integrity
    hash_value = Column(String(64), nullable=False, comment="SHA256 for integrity verification")

    __table_args__ = (
        Index('ix_audit_subject_time', 'subject_ref', 'timestamp'),
        Index('ix_audit_actor', 'actor_ref', 'timestamp'),
    )


# =============================================================================
# SETTLEMENT
# =============================================================================

class SettlementFeeEntry(Base):
    """
    Settlement Fee Entry - seller share of one settled sale.

    Written by the settlement pipeline. Only COMPLETED entries count toward
    year-to-date earnings, bucketed by finalized_at.
    """
    __tablename__ = "settlement_fee_entries"

    entry_id = Column(String(36), primary_key=True, default=_new_id)
    payee_ref = Column(String(100), nullable=False)
    event_ref = Column(String(100), nullable=False)
    item_ref = Column(String(100), nullable=True)

    seller_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(Enum(FeeEntryStatus), nullable=False, default=FeeEntryStatus.PENDING)
    finalized_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index('ix_fee_entry_payee_status', 'payee_ref', 'status', 'finalized_at'),
        CheckConstraint('seller_amount >= 0', name='ck_fee_entry_amount_positive'),
    )


class PayoutRecordRow(Base):
    """
    Payout - staged transfer of a gross amount split into fee, reserve and net.

    Rates are captured at creation and never change afterwards.
    """
    __tablename__ = "payouts"

    payout_id = Column(String(36), primary_key=True, default=_new_id)
    payee_ref = Column(String(100), nullable=False)
    event_ref = Column(String(100), nullable=False)

    # Split
    gross_amount = Column(Numeric(12, 2), nullable=False)
    fee_rate = Column(Numeric(6, 4), nullable=False)
    fee_amount = Column(Numeric(12, 2), nullable=False)
    reserve_rate = Column(Numeric(6, 4), nullable=False)
    reserve_amount = Column(Numeric(12, 2), nullable=False)
    net_amount = Column(Numeric(12, 2), nullable=False)

    # Lifecycle
    status = Column(Enum(PayoutStatus), nullable=False, default=PayoutStatus.PROCESSING)
    initiated_at = Column(DateTime, nullable=False, default=utcnow)
    completed_at = Column(DateTime, nullable=True)
    reserve_release_due = Column(DateTime, nullable=True)
    reserve_released_at = Column(DateTime, nullable=True)
    hold_reason = Column(Text, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    chargeback_flag = Column(Boolean, nullable=False, default=False)

    # Transfer references from the executor
    transfer_ref = Column(String(100), nullable=True)
    reserve_transfer_ref = Column(String(100), nullable=True)

    # Manual review
    reviewed_by = Column(String(100), nullable=True)
    review_notes = Column(Text, nullable=True)

    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('ix_payouts_payee_status', 'payee_ref', 'status'),
        Index('ix_payouts_payee_event', 'payee_ref', 'event_ref'),
        Index('ix_payouts_release_due', 'status', 'reserve_release_due'),
        CheckConstraint('gross_amount >= 0', name='ck_payout_gross_positive'),
        CheckConstraint('fee_amount >= 0', name='ck_payout_fee_positive'),
        CheckConstraint('reserve_amount >= 0', name='ck_payout_reserve_positive'),
        CheckConstraint('net_amount >= 0', name='ck_payout_net_positive'),
        CheckConstraint('retry_count >= 0', name='ck_payout_retry_count'),
    )


# =============================================================================
# EVENT LISTENERS
# =============================================================================

def compute_audit_hash(event_id, timestamp, event_type, actor_ref, subject_ref, purpose, details) -> str:
    """Integrity hash over the fields that identify an audit event."""
    event_value = getattr(event_type, "value", event_type)
    payload = json.dumps(details or {}, sort_keys=True, default=str)
    hash_content = f"{event_id}{timestamp}{event_value}{actor_ref}{subject_ref}{purpose}{payload}"
    return hashlib.sha256(hash_content.encode()).hexdigest()


@event.listens_for(AuditLogRecord, 'before_insert')
def calculate_audit_hash(mapper, connection, target):
    """Calculate integrity hash for audit record."""
    if target.timestamp is None:
        target.timestamp = utcnow()
    target.hash_value = compute_audit_hash(
        target.event_id, target.timestamp, target.event_type,
        target.actor_ref, target.subject_ref, target.purpose, target.details,
    )


@event.listens_for(AuditLogRecord, 'before_update')
def reject_audit_update(mapper, connection, target):
    """Audit records are append-only."""
    raise AuditWriteError("Audit log is append-only; updates are not permitted")


@event.listens_for(AuditLogRecord, 'before_delete')
def reject_audit_delete(mapper, connection, target):
    """Audit records are append-only."""
    raise AuditWriteError("Audit log is append-only; deletes are not permitted")


@event.listens_for(TaxInformationRecord, 'before_delete')
def reject_tax_record_delete(mapper, connection, target):
    """Tax records are kept for history."""
    raise RuntimeError("Tax information records are never deleted")
