"""
Celery App Configuration - Background task processing with Redis broker.

Runs the periodic settlement jobs on the beat schedule:
- Reserve-release sweep
- Tax form expiry

Usage:
    # Run worker
    celery -A tasks.celery_app worker --loglevel=info

    # Run with beat scheduler
    celery -A tasks.celery_app worker --beat --loglevel=info
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from celery import Celery, Task
from celery.signals import setup_logging, worker_ready, worker_shutdown
from sqlalchemy.exc import OperationalError

from config.settings import CelerySettings, RedisSettings, TaskScheduleSettings, get_settings
from security.secure_logger import configure_secure_logging

logger = logging.getLogger(__name__)

# One hour; sweep summaries are only inspected shortly after a run
RESULT_TTL_SECONDS = 3600


def build_beat_schedule(schedule: TaskScheduleSettings) -> Dict[str, Dict[str, Any]]:
    """Periodic tasks and their cadence in seconds."""
    return {
        "release-due-reserves": {
            "task": "tasks.settlement_tasks.release_due_reserves",
            "schedule": schedule.reserve_release_interval_seconds,
        },
        "expire-tax-forms": {
            "task": "tasks.settlement_tasks.expire_tax_forms",
            "schedule": schedule.tax_expiry_interval_seconds,
        },
    }


def _worker_conf(celery_settings: CelerySettings) -> Dict[str, Any]:
    return {
        "task_serializer": celery_settings.task_serializer,
        "result_serializer": celery_settings.result_serializer,
        "accept_content": celery_settings.accept_content,
        "result_accept_content": celery_settings.accept_content,
        # Tasks are idempotent and may be redelivered
        "task_acks_late": celery_settings.task_acks_late,
        "worker_prefetch_multiplier": celery_settings.worker_prefetch_multiplier,
        "task_time_limit": celery_settings.task_time_limit,
        "task_soft_time_limit": celery_settings.task_soft_time_limit,
        "result_expires": RESULT_TTL_SECONDS,
        "timezone": "UTC",
        "enable_utc": True,
    }


def create_celery_app(
    redis_settings: Optional[RedisSettings] = None,
    celery_settings: Optional[CelerySettings] = None,
    schedule_settings: Optional[TaskScheduleSettings] = None,
) -> Celery:
    """
    Create and configure the settlement Celery application.

    Broker and result backend share one Redis server on separate databases.
    Anything not passed in is read from application settings.
    """
    settings = get_settings()
    redis_settings = redis_settings or settings.redis
    celery_settings = celery_settings or settings.celery
    schedule_settings = schedule_settings or settings.tasks

    redis_url = redis_settings.base_url
    app = Celery(
        "settlement_engine",
        broker=f"{redis_url}/{celery_settings.broker_db}",
        backend=f"{redis_url}/{celery_settings.result_db}",
        include=["tasks.settlement_tasks"],
    )
    app.conf.update(
        beat_schedule=build_beat_schedule(schedule_settings),
        **_worker_conf(celery_settings),
    )
    return app


class TaskBase(Task):
    """
    Base class for settlement tasks.

    A dropped database connection is retried with backoff; any other error
    fails the run and is picked up again on the next beat tick.
    """

    abstract = True
    autoretry_for = (OperationalError,)
    retry_backoff = True
    retry_backoff_max = 600
    retry_jitter = True
    max_retries = 3

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(
            f"Task {self.name}[{task_id}] failed: {exc}",
            extra={"task_id": task_id, "task_name": self.name},
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_retry(self, exc, task_id, args, kwargs, einfo):
        logger.warning(
            f"Task {self.name}[{task_id}] retry {self.request.retries + 1}/{self.max_retries}: {exc}",
            extra={"task_id": task_id, "task_name": self.name},
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)


celery_app = create_celery_app()
celery_app.Task = TaskBase


def get_celery_app() -> Celery:
    return celery_app


@setup_logging.connect
def on_setup_logging(loglevel=None, **kwargs):
    """Route worker logs through the TIN-redacting handler instead of Celery's own."""
    configure_secure_logging(level=loglevel or logging.INFO)


@worker_ready.connect
def on_worker_ready(sender, **kwargs):
    logger.info(f"Settlement worker ready: {sender}")


@worker_shutdown.connect
def on_worker_shutdown(sender, **kwargs):
    logger.info(f"Settlement worker shutting down: {sender}")
