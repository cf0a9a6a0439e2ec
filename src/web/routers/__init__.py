"""
FastAPI Routers - Modular endpoint organization.

Router modules:
- compliance: Tax form submission, review, status and audited TIN access
- payouts: Payout staging, transfers, manual review and reserve release
"""

from .compliance import router as compliance_router
from .payouts import router as payouts_router

__all__ = [
    "compliance_router",
    "payouts_router",
]
