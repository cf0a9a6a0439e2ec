"""
Background Tasks Module - Celery-based periodic settlement jobs.

Provides:
- Celery app configuration with Redis broker and beat schedule
- Reserve-release sweep
- Tax form expiry
"""

from .celery_app import celery_app, get_celery_app
from .settlement_tasks import expire_tax_forms, release_due_reserves

__all__ = [
    # Celery app
    "celery_app",
    "get_celery_app",
    # Periodic tasks
    "release_due_reserves",
    "expire_tax_forms",
]
