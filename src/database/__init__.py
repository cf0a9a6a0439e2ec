"""
Database package for the settlement engine.

Provides:
- SQLAlchemy ORM models (database.models)
- Repositories per table (database.repositories)
- Sync UnitOfWork and the Database connection holder
"""

from .models import (
    Base,
    AuditLogRecord,
    CompliancePointer,
    PayoutRecordRow,
    SettlementFeeEntry,
    TaxInformationRecord,
)
from .unit_of_work import UnitOfWork
from .connection import Database, build_engine

__all__ = [
    "Base",
    "AuditLogRecord",
    "CompliancePointer",
    "PayoutRecordRow",
    "SettlementFeeEntry",
    "TaxInformationRecord",
    "UnitOfWork",
    "Database",
    "build_engine",
]
