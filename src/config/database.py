"""Database configuration using Pydantic Settings.

Supports both PostgreSQL (production) and SQLite (development/testing).
Configuration is loaded from environment variables with sensible defaults.
"""

from pathlib import Path

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """
    Database configuration settings.

    All settings can be overridden via environment variables with DB_ prefix.

    Example environment variables:
        DB_DRIVER=postgresql+psycopg2
        DB_HOST=localhost
        DB_PORT=5432
        DB_NAME=settlement
        DB_USER=settlement
        DB_PASSWORD=secret
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    driver: str = Field(
        default="sqlite",
        description="Database driver (postgresql+psycopg2 or sqlite)"
    )

    # PostgreSQL settings
    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    name: str = Field(default="settlement", description="Database name")
    user: str = Field(default="", description="Database user")
    password: str = Field(default="", description="Database password")

    # SQLite settings; ":memory:" keeps everything in a single shared connection
    sqlite_path: str = Field(
        default="data/settlement.db",
        description="Path to SQLite database file"
    )

    # Connection pool settings (PostgreSQL only)
    pool_size: int = Field(default=10, ge=1, le=100)
    max_overflow: int = Field(default=20, ge=0, le=100)
    pool_timeout: int = Field(default=30, ge=1)
    pool_recycle: int = Field(default=1800, ge=60)
    pool_pre_ping: bool = Field(default=True)

    echo_sql: bool = Field(
        default=False,
        description="Log all SQL statements (for debugging)"
    )
    query_timeout: int = Field(
        default=30,
        ge=1,
        description="Default query timeout in seconds"
    )

    @computed_field
    @property
    def is_sqlite(self) -> bool:
        """Check if using SQLite."""
        return "sqlite" in self.driver.lower()

    @computed_field
    @property
    def is_memory(self) -> bool:
        """Check if using an in-memory SQLite database."""
        return self.is_sqlite and self.sqlite_path == ":memory:"

    @computed_field
    @property
    def url(self) -> str:
        """
        Get the database URL.

        Returns:
            Database URL for sync connections.
        """
        if self.is_memory:
            return "sqlite://"

        if self.is_sqlite:
            path = Path(self.sqlite_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            return f"sqlite:///{path.absolute()}"

        auth = ""
        if self.user:
            auth = f"{self.user}"
            if self.password:
                auth += f":{self.password}"
            auth += "@"

        return f"{self.driver}://{auth}{self.host}:{self.port}/{self.name}"

    def get_connect_args(self) -> dict:
        """
        Get database-specific connection arguments.

        Returns:
            Dictionary of connection arguments for SQLAlchemy.
        """
        if self.is_sqlite:
            return {
                "check_same_thread": False,
                "timeout": self.query_timeout,
            }
        return {"connect_timeout": self.query_timeout}
