"""Application settings using Pydantic Settings.

Centralized configuration for the compliance gate and payout settlement engine.

SECURITY: Production requires the following environment variables:
- TIN_ENCRYPTION_KEY: AES-256 key for taxpayer identifiers (64 hex characters)

Generate the key with: python -c "import secrets; print(secrets.token_hex(32))"
"""

import sys
import logging
from decimal import Decimal
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from config.database import DatabaseSettings

logger = logging.getLogger(__name__)


class RedisSettings(BaseSettings):
    """Redis configuration for the Celery broker."""

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        extra="ignore",
    )

    host: str = Field(default="localhost", description="Redis host")
    port: int = Field(default=6379, description="Redis port")
    password: Optional[str] = Field(default=None, description="Redis password")
    ssl: bool = Field(default=False, description="Use SSL for Redis connection")

    @property
    def base_url(self) -> str:
        """Get Redis URL without a database number."""
        auth = f":{self.password}@" if self.password else ""
        protocol = "rediss" if self.ssl else "redis"
        return f"{protocol}://{auth}{self.host}:{self.port}"


class CelerySettings(BaseSettings):
    """Celery task queue configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CELERY_",
        extra="ignore",
    )

    broker_db: int = Field(default=1, description="Redis DB for Celery broker")
    result_db: int = Field(default=2, description="Redis DB for Celery results")

    task_serializer: str = Field(default="json", description="Task serialization format")
    result_serializer: str = Field(default="json", description="Result serialization format")
    accept_content: list = Field(default=["json"], description="Accepted content types")

    task_acks_late: bool = Field(default=True, description="Acknowledge tasks after completion")
    worker_prefetch_multiplier: int = Field(default=1, description="Tasks to prefetch per worker")
    task_time_limit: int = Field(default=300, description="Hard task time limit in seconds")
    task_soft_time_limit: int = Field(default=240, description="Soft task time limit")


class TaskScheduleSettings(BaseSettings):
    """Cadence of the periodic settlement sweeps."""

    model_config = SettingsConfigDict(
        env_prefix="TASKS_",
        extra="ignore",
    )

    reserve_release_interval_seconds: float = Field(
        default=3600.0, gt=0, description="How often the reserve-release sweep runs"
    )
    tax_expiry_interval_seconds: float = Field(
        default=86400.0, gt=0, description="How often verified tax forms are checked for expiry"
    )


class TinSettings(BaseSettings):
    """Taxpayer identifier encryption settings."""

    model_config = SettingsConfigDict(
        env_prefix="TIN_",
        extra="ignore",
    )

    # CRITICAL: Must be set via TIN_ENCRYPTION_KEY in production
    encryption_key: Optional[str] = Field(
        default=None,
        description="AES-256-GCM key as 64 hex characters",
    )


class ComplianceSettings(BaseSettings):
    """Information-reporting threshold and tax form validity."""

    model_config = SettingsConfigDict(
        env_prefix="COMPLIANCE_",
        extra="ignore",
    )

    reporting_threshold: Decimal = Field(
        default=Decimal("600.00"),
        ge=0,
        description="Year-to-date earnings at which a verified tax form is required (inclusive)",
    )
    tin_validity_days: int = Field(
        default=1095,
        ge=1,
        description="Days a verified tax form stays valid before it expires",
    )


class PayoutSettings(BaseSettings):
    """Fee, reserve and transfer retry configuration.

    Rates carry at most 4 decimal places, the precision stored on payout records.
    """

    model_config = SettingsConfigDict(
        env_prefix="PAYOUT_",
        extra="ignore",
    )

    fee_rate: Decimal = Field(default=Decimal("0.05"), ge=0, le=1, decimal_places=4, description="Platform fee rate")
    reserve_rate: Decimal = Field(default=Decimal("0.10"), ge=0, le=1, decimal_places=4, description="Reserve hold-back rate")
    reserve_hold_days: int = Field(default=30, ge=0, description="Days the reserve is held after completion")

    # Transfer retry settings
    transfer_max_attempts: int = Field(default=3, ge=1, description="Transfer attempts before holding")
    transfer_base_delay: float = Field(default=1.0, ge=0, description="Initial retry delay in seconds")
    transfer_backoff_multiplier: float = Field(default=2.0, ge=1, description="Backoff multiplier")
    transfer_max_delay: float = Field(default=30.0, ge=0, description="Max delay between retries")

    @model_validator(mode="after")
    def _rates_do_not_exceed_gross(self) -> "PayoutSettings":
        if self.fee_rate + self.reserve_rate > 1:
            raise ValueError("fee_rate + reserve_rate must not exceed 1")
        return self


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    name: str = Field(default="Settlement Engine", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    environment: str = Field(default="development", description="Environment name")

    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins",
    )

    # Nested settings groups, each read from its own env prefix
    tin: TinSettings = Field(default_factory=TinSettings)
    compliance: ComplianceSettings = Field(default_factory=ComplianceSettings)
    payout: PayoutSettings = Field(default_factory=PayoutSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    celery: CelerySettings = Field(default_factory=CelerySettings)
    tasks: TaskScheduleSettings = Field(default_factory=TaskScheduleSettings)

    @field_validator("environment")
    @classmethod
    def _normalize_environment(cls, value: str) -> str:
        return value.strip().lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment in ("production", "prod", "staging")

    def validate_production_security(self) -> List[str]:
        """
        Validate all security requirements for production.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not self.is_production:
            return errors

        key = self.tin.encryption_key
        if not key:
            errors.append(
                "TIN_ENCRYPTION_KEY: Required in production for TIN encryption. "
                "Generate with: python -c \"import secrets; print(secrets.token_hex(32))\""
            )
        elif len(key) != 64:
            errors.append("TIN_ENCRYPTION_KEY: Must be exactly 64 hex characters")

        if self.database.is_sqlite:
            errors.append("DB_DRIVER: SQLite is not supported in production")

        return errors


# =============================================================================
# STARTUP VALIDATION
# =============================================================================


class StartupSecurityError(Exception):
    """Production settings are missing a required secret or use an unsafe backend."""


def validate_startup_security(settings: Settings, exit_on_failure: bool = True) -> bool:
    """
    Refuse to start a production process with unsafe settings.

    Outside production this always passes.

    Raises:
        StartupSecurityError: Validation failed and exit_on_failure is False
    """
    errors = settings.validate_production_security()
    if not errors:
        if settings.is_production:
            logger.info("Production security validation passed")
        return True

    lines = ["Refusing to start: unsafe production configuration"]
    lines.extend(f"  {i}. {err}" for i, err in enumerate(errors, 1))
    report = "\n".join(lines)
    logger.critical(report)

    if exit_on_failure:
        print(report, file=sys.stderr)
        sys.exit(1)
    raise StartupSecurityError(report)


@lru_cache
def get_settings() -> Settings:
    """Settings loaded once from the environment and .env."""
    return Settings()
