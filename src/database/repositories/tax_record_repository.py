"""Tax Information Repository.

Row access for submitted tax forms. Rows are mapped to the public TaxRecord
view through explicit schema validation so the ciphertext column is never
carried outside the ledger and vault.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from compliance.models import TaxInfoStatus, TaxRecord
from database.models import TaxInformationRecord

logger = logging.getLogger(__name__)


class TaxRecordRepository:
    """Sync repository over the tax_information table."""

    def __init__(self, session: Session):
        self._session = session

    def add(self, row: TaxInformationRecord) -> TaxInformationRecord:
        """Insert a new tax record and flush so its id and defaults are populated."""
        self._session.add(row)
        self._session.flush()
        return row

    def get(self, record_id: str, for_update: bool = False) -> Optional[TaxInformationRecord]:
        """Get a tax record row by id."""
        query = select(TaxInformationRecord).where(TaxInformationRecord.record_id == record_id)
        if for_update:
            query = query.with_for_update()
        return self._session.execute(query).scalar_one_or_none()

    def list_for_owner(self, owner_ref: str) -> List[TaxInformationRecord]:
        """All records for a payee, oldest first."""
        query = (
            select(TaxInformationRecord)
            .where(TaxInformationRecord.owner_ref == owner_ref)
            .order_by(TaxInformationRecord.created_at.asc())
        )
        return list(self._session.execute(query).scalars())

    def list_pending(self, limit: int = 50, offset: int = 0) -> Tuple[List[TaxInformationRecord], int]:
        """Pending records for the reviewer queue, oldest first, with total count."""
        base = select(TaxInformationRecord).where(
            TaxInformationRecord.status == TaxInfoStatus.PENDING
        )
        total = self._session.execute(
            select(func.count()).select_from(base.subquery())
        ).scalar_one()
        rows = self._session.execute(
            base.order_by(TaxInformationRecord.created_at.asc()).limit(limit).offset(offset)
        ).scalars()
        return list(rows), total

    def list_expirable(self, now: datetime) -> List[TaxInformationRecord]:
        """Verified records whose validity window has passed."""
        query = select(TaxInformationRecord).where(
            TaxInformationRecord.status == TaxInfoStatus.VERIFIED,
            TaxInformationRecord.expires_at.is_not(None),
            TaxInformationRecord.expires_at <= now,
        )
        return list(self._session.execute(query).scalars())

    @staticmethod
    def to_domain(row: TaxInformationRecord) -> TaxRecord:
        """Map a row to the public view. Fails loudly on malformed rows."""
        return TaxRecord.model_validate({
            "record_id": row.record_id,
            "owner_ref": row.owner_ref,
            "form_type": row.form_type,
            "legal_name": row.legal_name,
            "business_name": row.business_name,
            "tax_classification": row.tax_classification,
            "tin_type": row.tin_type,
            "tin_last_four": row.tin_last_four,
            "address": {
                "line1": row.address_line1,
                "line2": row.address_line2,
                "city": row.address_city,
                "state": row.address_state,
                "postal_code": row.address_postal_code,
                "country": row.address_country,
            },
            "is_us_person": row.is_us_person,
            "is_exempt_payee": bool(row.is_exempt_payee),
            "exempt_payee_code": row.exempt_payee_code,
            "signature_name": row.signature_name,
            "signature_date": row.signature_date,
            "signature_ip": row.signature_ip,
            "status": row.status,
            "verified_at": row.verified_at,
            "verified_by": row.verified_by,
            "review_notes": row.review_notes,
            "created_at": row.created_at,
            "expires_at": row.expires_at,
        })
