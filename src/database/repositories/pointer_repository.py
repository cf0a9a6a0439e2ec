"""Compliance Pointer Repository.

One row per payee naming their current tax record. The pointer is the single
place the gate reads compliance status from.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from compliance.models import TaxInfoStatus
from core.money import utcnow
from database.models import CompliancePointer


class CompliancePointerRepository:
    """Sync repository over the compliance_pointers table."""

    def __init__(self, session: Session):
        self._session = session

    def get(self, payee_ref: str, for_update: bool = False) -> Optional[CompliancePointer]:
        query = select(CompliancePointer).where(CompliancePointer.payee_ref == payee_ref)
        if for_update:
            query = query.with_for_update()
        return self._session.execute(query).scalar_one_or_none()

    def point_to(self, payee_ref: str, record_id: str, status: TaxInfoStatus) -> CompliancePointer:
        """Make record_id the payee's current record."""
        pointer = self.get(payee_ref, for_update=True)
        if pointer is None:
            pointer = CompliancePointer(payee_ref=payee_ref)
            self._session.add(pointer)
        pointer.current_record_id = record_id
        pointer.status = status
        pointer.updated_at = utcnow()
        self._session.flush()
        return pointer

    def sync_status(self, payee_ref: str, record_id: str, status: TaxInfoStatus) -> bool:
        """
        Copy a record's new status onto the pointer if that record is current.

        Returns:
            True if the pointer was updated
        """
        pointer = self.get(payee_ref, for_update=True)
        if pointer is None or pointer.current_record_id != record_id:
            return False
        pointer.status = status
        pointer.updated_at = utcnow()
        self._session.flush()
        return True
