"""
Payout API

Provides:
1. POST /api/payouts - Stage a payout behind the settlement gate
2. GET  /api/payouts - Payouts for a payee
3. GET  /api/payouts/{payout_id} - Payout details
4. POST /api/payouts/{payout_id}/process - Transfer the net amount
5. POST /api/payouts/{payout_id}/approve - Reviewer approves a held payout
6. POST /api/payouts/{payout_id}/cancel - Reviewer cancels a held payout
7. POST /api/payouts/{payout_id}/flag - Hold a processing payout for review
8. POST /api/payouts/{payout_id}/chargeback - Freeze the reserve
9. POST /api/payouts/{payout_id}/release-reserve - Release a due reserve

A payout refused by the settlement gate answers 403 with code
COMPLIANCE_BLOCKED and the payee's earnings and threshold in details.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from services.tax_compliance_service import TaxComplianceService
from settlement.models import PayoutStatus
from web.dependencies import get_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payouts", tags=["Payouts"])


class InitiatePayoutRequest(BaseModel):
    payee_ref: str = Field(..., min_length=1, max_length=100)
    event_ref: str = Field(..., min_length=1, max_length=100)
    gross_amount: Decimal
    risk_flags: List[str] = Field(default_factory=list)


class ReviewRequest(BaseModel):
    reviewer_ref: str = Field(..., min_length=1, max_length=100)
    notes: Optional[str] = Field(default=None, max_length=2000)


class CancelRequest(BaseModel):
    reviewer_ref: str = Field(..., min_length=1, max_length=100)
    reason: str = Field(..., min_length=1, max_length=2000)


class ReasonRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=2000)


@router.post("", status_code=201)
def initiate_payout(body: InitiatePayoutRequest, service: TaxComplianceService = Depends(get_service)):
    payout = service.initiate_payout(
        body.payee_ref,
        body.event_ref,
        body.gross_amount,
        risk_flags=body.risk_flags,
    )
    return payout.model_dump(mode="json")


@router.get("")
def list_payouts(
    payee_ref: str,
    status: Optional[PayoutStatus] = None,
    service: TaxComplianceService = Depends(get_service),
):
    payouts = service.list_payouts(payee_ref, status)
    return {"payouts": [p.model_dump(mode="json") for p in payouts], "count": len(payouts)}


@router.get("/{payout_id}")
def get_payout(payout_id: str, service: TaxComplianceService = Depends(get_service)):
    return service.get_payout(payout_id).model_dump(mode="json")


@router.post("/{payout_id}/process")
def process_payout(payout_id: str, service: TaxComplianceService = Depends(get_service)):
    return service.process_payout(payout_id).model_dump(mode="json")


@router.post("/{payout_id}/approve")
def approve_payout(payout_id: str, body: ReviewRequest, service: TaxComplianceService = Depends(get_service)):
    return service.approve_payout(payout_id, body.reviewer_ref, body.notes).model_dump(mode="json")


@router.post("/{payout_id}/cancel")
def cancel_payout(payout_id: str, body: CancelRequest, service: TaxComplianceService = Depends(get_service)):
    return service.cancel_payout(payout_id, body.reviewer_ref, body.reason).model_dump(mode="json")


@router.post("/{payout_id}/flag")
def flag_for_review(payout_id: str, body: ReasonRequest, service: TaxComplianceService = Depends(get_service)):
    return service.flag_for_review(payout_id, body.reason or "").model_dump(mode="json")


@router.post("/{payout_id}/chargeback")
def flag_chargeback(payout_id: str, body: ReasonRequest, service: TaxComplianceService = Depends(get_service)):
    return service.flag_chargeback(payout_id, body.reason).model_dump(mode="json")


@router.post("/{payout_id}/release-reserve")
def release_reserve(payout_id: str, service: TaxComplianceService = Depends(get_service)):
    return service.release_reserve(payout_id).model_dump(mode="json")
