"""Pytest configuration and fixtures for test suite."""

import os
import sys
from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest

# Set test environment BEFORE any other imports
os.environ.setdefault("APP_ENVIRONMENT", "test")

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))


from tests.helpers.settlement_fixtures import TEST_TIN_KEY, FakeTransferExecutor, make_submission


@pytest.fixture
def settings():
    """Settings with a fixed TIN key and no retry delays."""
    from config.settings import PayoutSettings, Settings, TinSettings

    return Settings(
        environment="test",
        tin=TinSettings(encryption_key=TEST_TIN_KEY),
        payout=PayoutSettings(
            fee_rate=Decimal("0.05"),
            reserve_rate=Decimal("0.10"),
            reserve_hold_days=30,
            transfer_max_attempts=3,
            transfer_base_delay=0.0,
            transfer_max_delay=0.0,
        ),
    )


@pytest.fixture
def event_bus():
    from domain.event_bus import EventBus
    return EventBus()


@pytest.fixture
def published_events(event_bus):
    """Every domain event published during the test."""
    events = []
    event_bus.subscribe_all(events.append)
    return events


@pytest.fixture
def database(event_bus):
    from database.connection import Database

    db = Database.in_memory(event_bus)
    yield db
    db.dispose()


@pytest.fixture
def file_database(tmp_path, event_bus):
    """File-backed SQLite database, for tests that run threads."""
    from config.database import DatabaseSettings
    from database.connection import Database

    db = Database(DatabaseSettings(driver="sqlite", sqlite_path=str(tmp_path / "settlement.db")), event_bus)
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def audit_trail(database):
    from audit.storage import SqlAlchemyAuditStorage
    from audit.trail import AuditTrail
    return AuditTrail(SqlAlchemyAuditStorage(database))


@pytest.fixture
def key_provider():
    from security.tin_vault import StaticKeyProvider
    return StaticKeyProvider(TEST_TIN_KEY)


@pytest.fixture
def vault(key_provider, audit_trail):
    from security.tin_vault import TinVault
    return TinVault(key_provider, audit_trail)


@pytest.fixture
def locks():
    from compliance.locks import PayeeLockRegistry
    return PayeeLockRegistry()


@pytest.fixture
def ledger(database, vault, audit_trail, settings, locks):
    from compliance.ledger import ComplianceLedger
    return ComplianceLedger(database, vault, audit_trail, settings.compliance, locks)


@pytest.fixture
def aggregator(database):
    from settlement.earnings import EarningsAggregator
    return EarningsAggregator(database)


@pytest.fixture
def gate(ledger, aggregator, settings):
    from settlement.gate import SettlementGate
    return SettlementGate(ledger, aggregator, settings.compliance)


@pytest.fixture
def transfer_executor():
    return FakeTransferExecutor()


@pytest.fixture
def payout_service(database, gate, audit_trail, transfer_executor, settings, locks):
    from settlement.payout_service import PayoutService
    return PayoutService(database, gate, audit_trail, transfer_executor, settings.payout, locks)


@pytest.fixture
def service(settings, database, transfer_executor, event_bus, key_provider):
    from services.tax_compliance_service import build_compliance_service
    return build_compliance_service(
        settings,
        database=database,
        transfer_executor=transfer_executor,
        event_bus=event_bus,
        key_provider=key_provider,
    )


@pytest.fixture
def verified_payee(ledger):
    """A payee with a verified W-9 on file."""
    record_id = ledger.submit(make_submission("verified-seller"))
    ledger.verify(record_id, "reviewer-1", "verified")
    return "verified-seller"


@pytest.fixture
def fixed_now():
    return datetime(2026, 6, 1, 12, 0, 0)
