"""
Database Connection Module

Builds the sync SQLAlchemy engine and session factory for the settlement
engine. A Database is constructed explicitly at startup and passed to the
components that need it; there is no module-level engine.

Usage:
    database = Database(settings.database)
    database.create_all()

    with database.unit_of_work() as uow:
        uow.payouts.add(row)

    # Tests
    database = Database.in_memory()
"""

import logging
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool, QueuePool, StaticPool

from config.database import DatabaseSettings
from database.models import Base
from database.unit_of_work import UnitOfWork
from domain.event_bus import EventBus

logger = logging.getLogger(__name__)


def build_engine(settings: DatabaseSettings) -> Engine:
    """
    Create a synchronous SQLAlchemy engine.

    In-memory SQLite uses a StaticPool so every session shares the one
    connection that holds the data.
    """
    logger.info(
        "Creating database engine",
        extra={
            "driver": settings.driver,
            "database": settings.name if not settings.is_sqlite else settings.sqlite_path,
        }
    )

    if settings.is_memory:
        pool_class = StaticPool
        pool_kwargs = {}
    elif settings.is_sqlite:
        pool_class = NullPool
        pool_kwargs = {}
    else:
        pool_class = QueuePool
        pool_kwargs = {
            "pool_size": settings.pool_size,
            "max_overflow": settings.max_overflow,
            "pool_timeout": settings.pool_timeout,
            "pool_recycle": settings.pool_recycle,
            "pool_pre_ping": settings.pool_pre_ping,
        }

    return create_engine(
        settings.url,
        echo=settings.echo_sql,
        poolclass=pool_class,
        connect_args=settings.get_connect_args(),
        **pool_kwargs,
    )


class Database:
    """Engine, session factory and unit-of-work factory."""

    def __init__(self, settings: DatabaseSettings, event_bus: Optional[EventBus] = None):
        self.settings = settings
        self.event_bus = event_bus
        self.engine = build_engine(settings)
        self.session_factory = sessionmaker(
            bind=self.engine,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def in_memory(cls, event_bus: Optional[EventBus] = None) -> "Database":
        """Private in-memory SQLite database with the schema created."""
        database = cls(DatabaseSettings(driver="sqlite", sqlite_path=":memory:"), event_bus)
        database.create_all()
        return database

    def create_all(self) -> None:
        """Create all tables that do not exist yet."""
        Base.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        Base.metadata.drop_all(self.engine)

    def unit_of_work(self) -> UnitOfWork:
        """New unit of work; use it as a context manager."""
        return UnitOfWork(self.session_factory, self.event_bus)

    def dispose(self) -> None:
        """Close all pooled connections. Call during shutdown."""
        logger.info("Closing database engine")
        self.engine.dispose()
