"""
Settlement Celery Tasks.

Periodic background jobs run on the Celery beat schedule:
- Release payout reserves whose hold period has elapsed
- Expire verified tax forms past their validity window

Each run is idempotent: a payout already released or a form already expired
is skipped on the next run.
"""

import logging
from typing import Any, Dict

from celery import shared_task

from services import get_compliance_service

logger = logging.getLogger(__name__)


@shared_task(name="tasks.settlement_tasks.release_due_reserves")
def release_due_reserves(limit: int = 500) -> Dict[str, Any]:
    """
    Release every reserve that has come due.

    Payouts whose reserve transfer fails are moved to held and reported; they
    are not retried by later runs.
    """
    result = get_compliance_service().sweep_reserve_releases(limit=limit)
    summary = result.to_dict()
    summary["processed"] = result.processed

    if result.errors:
        logger.warning(
            f"Reserve sweep finished with {len(result.errors)} errors",
            extra={"payout_ids": sorted(result.errors)},
        )
    return summary


@shared_task(name="tasks.settlement_tasks.expire_tax_forms")
def expire_tax_forms() -> Dict[str, int]:
    """Move verified tax forms past their validity window to expired."""
    expired = get_compliance_service().expire_tax_forms()
    logger.info(f"Tax form expiry run: {expired} expired")
    return {"expired": expired}
