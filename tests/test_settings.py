"""Tests for application and database settings."""

from decimal import Decimal

import pytest


class TestDatabaseSettings:
    """Tests for DatabaseSettings."""

    def test_sqlite_default(self, tmp_path):
        from config.database import DatabaseSettings

        settings = DatabaseSettings(driver="sqlite", sqlite_path=str(tmp_path / "db" / "settlement.db"))

        assert settings.is_sqlite is True
        assert settings.is_memory is False
        assert settings.url == f"sqlite:///{tmp_path / 'db' / 'settlement.db'}"
        assert settings.get_connect_args()["check_same_thread"] is False

    def test_memory(self):
        from config.database import DatabaseSettings

        settings = DatabaseSettings(driver="sqlite", sqlite_path=":memory:")
        assert settings.is_memory is True
        assert settings.url == "sqlite://"

    def test_postgres_url(self):
        from config.database import DatabaseSettings

        settings = DatabaseSettings(
            driver="postgresql+psycopg2",
            host="db.internal",
            port=5433,
            name="settlement",
            user="svc",
            password="pw",
        )
        assert settings.is_sqlite is False
        assert settings.url == "postgresql+psycopg2://svc:pw@db.internal:5433/settlement"

    def test_env_prefix(self, monkeypatch):
        from config.database import DatabaseSettings

        monkeypatch.setenv("DB_DRIVER", "postgresql+psycopg2")
        monkeypatch.setenv("DB_POOL_SIZE", "25")

        settings = DatabaseSettings()
        assert settings.driver == "postgresql+psycopg2"
        assert settings.pool_size == 25


class TestSettings:
    """Tests for Settings and its nested groups."""

    def test_defaults(self, monkeypatch):
        from config.settings import Settings

        monkeypatch.delenv("APP_ENVIRONMENT", raising=False)
        settings = Settings(_env_file=None)

        assert settings.compliance.reporting_threshold == Decimal("600.00")
        assert settings.compliance.tin_validity_days == 1095
        assert settings.payout.fee_rate == Decimal("0.05")
        assert settings.payout.reserve_rate == Decimal("0.10")
        assert settings.payout.reserve_hold_days == 30
        assert settings.is_production is False

    def test_nested_groups_read_their_own_prefix(self, monkeypatch):
        from config.settings import Settings

        monkeypatch.setenv("PAYOUT_FEE_RATE", "0.029")
        monkeypatch.setenv("COMPLIANCE_REPORTING_THRESHOLD", "20000")
        monkeypatch.setenv("TIN_ENCRYPTION_KEY", "ab" * 32)

        settings = Settings(_env_file=None)
        assert settings.payout.fee_rate == Decimal("0.029")
        assert settings.compliance.reporting_threshold == Decimal("20000")
        assert settings.tin.encryption_key == "ab" * 32

    def test_rates_above_gross_rejected(self):
        from pydantic import ValidationError

        from config.settings import PayoutSettings

        with pytest.raises(ValidationError):
            PayoutSettings(fee_rate=Decimal("0.6"), reserve_rate=Decimal("0.5"))

    def test_rates_beyond_stored_precision_rejected(self):
        from pydantic import ValidationError

        from config.settings import PayoutSettings

        with pytest.raises(ValidationError):
            PayoutSettings(fee_rate=Decimal("0.12345"))
        with pytest.raises(ValidationError):
            PayoutSettings(reserve_rate=Decimal("0.00001"))
        assert PayoutSettings(fee_rate=Decimal("0.1235")).fee_rate == Decimal("0.1235")

    @pytest.mark.parametrize("environment", ["production", " PROD ", "staging"])
    def test_production_like_environments(self, environment):
        from config.settings import Settings

        assert Settings(environment=environment, _env_file=None).is_production is True

    def test_production_security_errors(self):
        from config.database import DatabaseSettings
        from config.settings import Settings, TinSettings

        settings = Settings(
            environment="production",
            tin=TinSettings(encryption_key="short"),
            database=DatabaseSettings(driver="sqlite", sqlite_path=":memory:"),
            _env_file=None,
        )
        errors = settings.validate_production_security()

        assert len(errors) == 2
        assert errors[0].startswith("TIN_ENCRYPTION_KEY")
        assert errors[1].startswith("DB_DRIVER")

    def test_startup_validation_raises_without_exit(self):
        from config.settings import Settings, StartupSecurityError, TinSettings, validate_startup_security

        settings = Settings(environment="production", tin=TinSettings(), _env_file=None)

        with pytest.raises(StartupSecurityError):
            validate_startup_security(settings, exit_on_failure=False)

    def test_development_never_fails_startup(self):
        from config.settings import Settings, validate_startup_security

        assert validate_startup_security(Settings(environment="development", _env_file=None)) is True
