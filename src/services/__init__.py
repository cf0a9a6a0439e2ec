"""
Services Module - Application services for the settlement engine.

Application Services (orchestration):
- TaxComplianceService: Tax forms, compliance status, TIN access for 1099s,
  payouts and reserve releases behind the settlement gate
"""

from functools import lru_cache


@lru_cache
def get_compliance_service():
    """
    Get the process-wide TaxComplianceService built from settings.

    Used by background tasks; the web app builds its own in create_app.
    """
    from config.settings import get_settings
    from .tax_compliance_service import build_compliance_service
    return build_compliance_service(get_settings())


__all__ = ["get_compliance_service"]
