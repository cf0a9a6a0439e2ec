"""
FastAPI dependencies.

The TaxComplianceService is built once in create_app and kept on app.state;
routes receive it through get_service.
"""

from fastapi import Request

from services.tax_compliance_service import TaxComplianceService


def get_service(request: Request) -> TaxComplianceService:
    return request.app.state.compliance_service


def client_ip(request: Request):
    """Caller IP for audit events, if known."""
    return request.client.host if request.client else None
