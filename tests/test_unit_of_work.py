"""Tests for the unit of work and domain event publication."""

import logging
from decimal import Decimal

import pytest

from domain.event_bus import EventBus, LoggingEventHandler
from domain.events import EventType, PayoutStatusChanged, TaxFormSubmitted


def _submitted(payee_ref="seller-1"):
    return TaxFormSubmitted(payee_ref=payee_ref, record_id="rec-1")


class TestEventBus:
    """Tests for EventBus."""

    def test_typed_and_global_handlers(self):
        bus = EventBus()
        typed, everything = [], []
        bus.subscribe(TaxFormSubmitted, typed.append)
        bus.subscribe_all(everything.append)

        bus.publish(_submitted())
        bus.publish(PayoutStatusChanged(payee_ref="seller-1", payout_id="p-1", status="held"))

        assert [e.event_type for e in typed] == [EventType.TAX_FORM_SUBMITTED]
        assert len(everything) == 2

    def test_failing_handler_does_not_stop_delivery(self):
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("mailer down")

        bus.subscribe(TaxFormSubmitted, broken)
        bus.subscribe(TaxFormSubmitted, received.append)

        bus.publish(_submitted())
        assert len(received) == 1

    def test_unsubscribe(self):
        bus = EventBus()
        received = []
        bus.subscribe(TaxFormSubmitted, received.append)

        assert bus.unsubscribe(TaxFormSubmitted, received.append) is True
        assert bus.unsubscribe(TaxFormSubmitted, received.append) is False
        bus.publish(_submitted())
        assert received == []

    def test_events_are_immutable(self):
        from pydantic import ValidationError

        event = _submitted()
        with pytest.raises(ValidationError):
            event.payee_ref = "someone-else"

    def test_logging_handler(self, caplog):
        with caplog.at_level(logging.INFO, logger="domain.events"):
            LoggingEventHandler()(_submitted())
        assert "tax_form.submitted" in caplog.text


class TestUnitOfWork:
    """Tests for UnitOfWork commit / rollback behaviour."""

    def test_events_published_after_commit(self, database, published_events):
        with database.unit_of_work() as uow:
            uow.collect_event(_submitted())
            assert published_events == []

        assert len(published_events) == 1

    def test_rollback_discards_rows_and_events(self, database, published_events):
        from core.money import utcnow
        from database.models import SettlementFeeEntry
        from settlement.earnings import year_bounds
        from settlement.models import FeeEntryStatus

        with pytest.raises(RuntimeError):
            with database.unit_of_work() as uow:
                uow.fee_entries.add(SettlementFeeEntry(
                    payee_ref="seller-1",
                    event_ref="order-1",
                    seller_amount=Decimal("10.00"),
                    status=FeeEntryStatus.COMPLETED,
                    finalized_at=utcnow(),
                ))
                uow.collect_event(_submitted())
                raise RuntimeError("boom")

        assert published_events == []
        with database.unit_of_work() as uow:
            start, end = year_bounds(utcnow().year)
            assert uow.fee_entries.sum_completed("seller-1", start, end) == Decimal("0.00")

    def test_session_requires_context(self, database):
        uow = database.unit_of_work()
        with pytest.raises(RuntimeError):
            uow.session
