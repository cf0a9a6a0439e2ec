"""Tests for Celery background tasks."""

from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest


class TestCeleryApp:
    """Tests for Celery app configuration."""

    def test_create_celery_app(self):
        """Should create a Celery app with broker and backend on separate Redis DBs."""
        from config.settings import CelerySettings, RedisSettings, TaskScheduleSettings
        from tasks.celery_app import create_celery_app

        app = create_celery_app(
            redis_settings=RedisSettings(host="redis.internal", port=6380, password="s3cret"),
            celery_settings=CelerySettings(broker_db=3, result_db=4),
            schedule_settings=TaskScheduleSettings(),
        )

        assert app.main == "settlement_engine"
        assert app.conf.broker_url == "redis://:s3cret@redis.internal:6380/3"
        assert app.conf.result_backend == "redis://:s3cret@redis.internal:6380/4"
        assert app.conf.task_acks_late is True
        assert app.conf.timezone == "UTC"

    def test_ssl_uses_rediss_scheme(self):
        from config.settings import RedisSettings

        assert RedisSettings(ssl=True).base_url == "rediss://localhost:6379"

    def test_beat_schedule_uses_configured_cadence(self):
        from config.settings import TaskScheduleSettings
        from tasks.celery_app import build_beat_schedule

        schedule = build_beat_schedule(TaskScheduleSettings(
            reserve_release_interval_seconds=600,
            tax_expiry_interval_seconds=7200,
        ))

        assert schedule["release-due-reserves"] == {
            "task": "tasks.settlement_tasks.release_due_reserves",
            "schedule": 600,
        }
        assert schedule["expire-tax-forms"]["task"] == "tasks.settlement_tasks.expire_tax_forms"
        assert schedule["expire-tax-forms"]["schedule"] == 7200

    def test_schedule_interval_must_be_positive(self):
        from pydantic import ValidationError

        from config.settings import TaskScheduleSettings

        with pytest.raises(ValidationError):
            TaskScheduleSettings(reserve_release_interval_seconds=0)

    def test_global_app_registers_settlement_tasks(self):
        from tasks.celery_app import get_celery_app

        app = get_celery_app()
        app.loader.import_default_modules()

        assert "tasks.settlement_tasks.release_due_reserves" in app.tasks
        assert "tasks.settlement_tasks.expire_tax_forms" in app.tasks

    def test_worker_logging_is_sanitized(self):
        from tasks.celery_app import on_setup_logging

        with patch("tasks.celery_app.configure_secure_logging") as configure:
            on_setup_logging(loglevel=10)
        configure.assert_called_once_with(level=10)


class TestSettlementTasks:
    """Tests for the periodic settlement tasks."""

    def test_release_due_reserves_summary(self):
        from settlement.models import SweepResult
        from tasks.settlement_tasks import release_due_reserves

        service = MagicMock()
        service.sweep_reserve_releases.return_value = SweepResult(
            released=["p-1", "p-2"],
            held=["p-3"],
            errors={"p-4": "Payout p-4 is not completed"},
        )

        with patch("tasks.settlement_tasks.get_compliance_service", return_value=service):
            summary = release_due_reserves(limit=10)

        service.sweep_reserve_releases.assert_called_once_with(limit=10)
        assert summary == {
            "released": ["p-1", "p-2"],
            "held": ["p-3"],
            "errors": {"p-4": "Payout p-4 is not completed"},
            "processed": 4,
        }

    def test_expire_tax_forms(self):
        from tasks.settlement_tasks import expire_tax_forms

        service = MagicMock()
        service.expire_tax_forms.return_value = 2

        with patch("tasks.settlement_tasks.get_compliance_service", return_value=service):
            assert expire_tax_forms() == {"expired": 2}

    def test_release_runs_against_real_service(self, service, verified_payee):
        """A completed payout past its hold is released by the task."""
        from settlement.models import PayoutStatus
        from tasks.settlement_tasks import release_due_reserves

        payout = service.initiate_payout(verified_payee, "order-1", "100.00")
        done = service.process_payout(payout.payout_id)

        # Nothing is due yet
        with patch("tasks.settlement_tasks.get_compliance_service", return_value=service):
            assert release_due_reserves()["processed"] == 0

        later = done.reserve_release_due + timedelta(seconds=1)
        with patch("settlement.payout_service.utcnow", return_value=later):
            with patch("tasks.settlement_tasks.get_compliance_service", return_value=service):
                summary = release_due_reserves()

        assert summary["released"] == [payout.payout_id]
        assert service.get_payout(payout.payout_id).status == PayoutStatus.RESERVE_RELEASED
