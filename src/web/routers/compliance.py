"""
Tax Compliance API

Provides:
1. POST /api/tax/forms - Submit a W-9 / W-8 tax form
2. POST /api/tax/forms/{record_id}/verify - Reviewer decision on a pending form
3. POST /api/tax/forms/{record_id}/tin - Audited TIN access for 1099 generation
4. GET  /api/tax/status/{payee_ref} - Current compliance status
5. GET  /api/tax/requirements/{payee_ref} - Whether payouts need a tax form
6. GET  /api/tax/info/{payee_ref} - Current tax form, TIN masked
7. GET  /api/tax/pending - Reviewer queue
8. GET  /api/tax/audit/{subject_ref} - Audit events for a payee
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query, Request
from pydantic import BaseModel, Field

from compliance.models import ReviewDecision
from core.exceptions import NotFoundError
from services.tax_compliance_service import TaxComplianceService
from web.dependencies import client_ip, get_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tax", tags=["Tax Compliance"])


class VerifyRequest(BaseModel):
    reviewer_ref: str = Field(..., min_length=1, max_length=100)
    decision: ReviewDecision
    notes: Optional[str] = Field(default=None, max_length=2000)


class TinAccessRequest(BaseModel):
    reviewer_ref: str = Field(..., min_length=1, max_length=100)


@router.post("/forms", status_code=201)
def submit_tax_form(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    service: TaxComplianceService = Depends(get_service),
):
    """
    Submit a tax form. The payload is validated by the compliance ledger so
    a malformed TIN and a missing field both answer 400.
    """
    if "signature_ip" not in payload:
        payload = {**payload, "signature_ip": client_ip(request)}
    record_id = service.submit_tax_form(payload)
    return {"record_id": record_id, "status": "pending"}


@router.post("/forms/{record_id}/verify")
def verify_tax_form(
    record_id: str,
    body: VerifyRequest,
    service: TaxComplianceService = Depends(get_service),
):
    record = service.verify_tax_form(record_id, body.reviewer_ref, body.decision, body.notes)
    return record.model_dump(mode="json")


@router.post("/forms/{record_id}/tin")
def get_tin_for_1099(
    record_id: str,
    body: TinAccessRequest,
    request: Request,
    service: TaxComplianceService = Depends(get_service),
):
    return service.get_decrypted_tin_for_1099(record_id, body.reviewer_ref, ip_address=client_ip(request))


@router.get("/status/{payee_ref}")
def get_compliance_status(payee_ref: str, service: TaxComplianceService = Depends(get_service)):
    return service.get_compliance_status(payee_ref)


@router.get("/requirements/{payee_ref}")
def get_tax_requirements(payee_ref: str, service: TaxComplianceService = Depends(get_service)):
    return service.get_tax_requirements(payee_ref)


@router.get("/info/{payee_ref}")
def get_tax_info(payee_ref: str, service: TaxComplianceService = Depends(get_service)):
    info = service.get_tax_info(payee_ref)
    if info is None:
        raise NotFoundError("Tax form for payee", payee_ref)
    return info


@router.get("/pending")
def list_pending_submissions(
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    service: TaxComplianceService = Depends(get_service),
):
    return service.list_pending_submissions(limit=limit, offset=offset)


@router.get("/audit/{subject_ref}")
def get_audit_log(
    subject_ref: str,
    event_type: Optional[str] = None,
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    service: TaxComplianceService = Depends(get_service),
):
    events = service.get_audit_log(subject_ref, event_type=event_type, limit=limit, offset=offset)
    return {"events": [event.to_dict() for event in events], "count": len(events)}
