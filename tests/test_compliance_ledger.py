"""Tests for the compliance ledger (tax form lifecycle)."""

import threading
from datetime import timedelta

import pytest

from tests.helpers.settlement_fixtures import make_submission


class TestSubmission:
    """Tests for tax form submission."""

    def test_submit_creates_pending_current_record(self, ledger):
        from compliance.models import ComplianceStatus, TaxInfoStatus

        record_id = ledger.submit(make_submission("seller-1"))

        record = ledger.get_record(record_id)
        assert record.status == TaxInfoStatus.PENDING
        assert record.tin_last_four == "6789"
        assert record.masked_tin == "XXX-XX-6789"
        assert ledger.current_status("seller-1") == ComplianceStatus.PENDING
        assert ledger.current_record("seller-1").record_id == record_id

    def test_record_never_exposes_tin(self, ledger):
        record_id = ledger.submit(make_submission("seller-1"))
        dumped = ledger.get_record(record_id).model_dump()

        assert "encrypted_tin" not in dumped
        assert "123456789" not in str(dumped)

    def test_ciphertext_is_stored_encrypted(self, ledger):
        record_id = ledger.submit(make_submission("seller-1"))
        _, ciphertext = ledger.sealed_tin(record_id)

        assert ciphertext
        assert "123456789" not in ciphertext

    def test_unknown_payee_is_not_submitted(self, ledger):
        from compliance.models import ComplianceStatus

        assert ledger.current_status("nobody") == ComplianceStatus.NOT_SUBMITTED
        assert ledger.current_record("nobody") is None

    def test_invalid_ssn_is_rejected(self, ledger):
        from core.exceptions import ValidationError

        with pytest.raises(ValidationError) as exc_info:
            ledger.submit(make_submission("seller-1", tin="666-12-3456"))
        assert exc_info.value.field == "tin"
        assert "666" not in exc_info.value.message

    def test_invalid_ein_is_rejected(self, ledger):
        from core.exceptions import ValidationError

        with pytest.raises(ValidationError):
            ledger.submit(make_submission(
                "llc-1", tin="07-1234567", tin_type="ein", tax_classification="llc_p"
            ))

    def test_valid_ein_is_accepted(self, ledger):
        record_id = ledger.submit(make_submission(
            "llc-1", tin="12-3456789", tin_type="ein", tax_classification="llc_p",
            business_name="Acme LLC",
        ))
        assert ledger.get_record(record_id).masked_tin == "XX-XXX6789"

    def test_missing_field_is_reported(self, ledger):
        from core.exceptions import ValidationError

        payload = make_submission("seller-1")
        del payload["legal_name"]

        with pytest.raises(ValidationError) as exc_info:
            ledger.submit(payload)
        assert exc_info.value.field == "legal_name"

    def test_unknown_field_is_rejected(self, ledger):
        from core.exceptions import ValidationError

        with pytest.raises(ValidationError):
            ledger.submit(make_submission("seller-1", favourite_color="blue"))

    def test_submission_is_audited(self, ledger, audit_trail):
        from audit.event_types import AuditEventType

        record_id = ledger.submit(make_submission("seller-1"))

        events = audit_trail.query("seller-1", event_type=AuditEventType.TAX_INFO_SUBMITTED)
        assert len(events) == 1
        assert events[0].details["record_id"] == record_id

    def test_submission_publishes_event(self, ledger, published_events):
        from domain.events import TaxFormSubmitted

        record_id = ledger.submit(make_submission("seller-1"))

        submitted = [e for e in published_events if isinstance(e, TaxFormSubmitted)]
        assert len(submitted) == 1
        assert submitted[0].record_id == record_id


class TestReview:
    """Tests for reviewer decisions."""

    def test_verify_sets_expiry(self, ledger, settings):
        from compliance.models import ComplianceStatus, TaxInfoStatus

        record_id = ledger.submit(make_submission("seller-1"))
        record = ledger.verify(record_id, "reviewer-1", "verified", notes="matches IRS letter")

        assert record.status == TaxInfoStatus.VERIFIED
        assert record.verified_by == "reviewer-1"
        assert record.expires_at - record.verified_at == timedelta(days=settings.compliance.tin_validity_days)
        assert ledger.current_status("seller-1") == ComplianceStatus.VERIFIED

    def test_reject_marks_invalid(self, ledger):
        from compliance.models import ComplianceStatus

        record_id = ledger.submit(make_submission("seller-1"))
        record = ledger.verify(record_id, "reviewer-1", "invalid", notes="name mismatch")

        assert record.expires_at is None
        assert ledger.current_status("seller-1") == ComplianceStatus.INVALID

    def test_second_decision_fails_and_first_stands(self, ledger):
        from compliance.models import TaxInfoStatus
        from core.exceptions import InvalidStateTransition

        record_id = ledger.submit(make_submission("seller-1"))
        ledger.verify(record_id, "reviewer-1", "verified")

        with pytest.raises(InvalidStateTransition):
            ledger.verify(record_id, "reviewer-2", "invalid")

        record = ledger.get_record(record_id)
        assert record.status == TaxInfoStatus.VERIFIED
        assert record.verified_by == "reviewer-1"

    def test_concurrent_decisions_only_one_wins(self, file_database, vault, audit_trail, settings, locks):
        from compliance.ledger import ComplianceLedger
        from core.exceptions import InvalidStateTransition

        ledger = ComplianceLedger(file_database, vault, audit_trail, settings.compliance, locks)
        record_id = ledger.submit(make_submission("seller-1"))
        outcomes = []

        def decide(reviewer, decision):
            try:
                ledger.verify(record_id, reviewer, decision)
                outcomes.append("ok")
            except InvalidStateTransition:
                outcomes.append("rejected")

        threads = [
            threading.Thread(target=decide, args=("reviewer-1", "verified")),
            threading.Thread(target=decide, args=("reviewer-2", "invalid")),
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["ok", "rejected"]

    def test_unknown_record(self, ledger):
        from core.exceptions import NotFoundError

        with pytest.raises(NotFoundError):
            ledger.verify("missing", "reviewer-1", "verified")

    def test_unknown_decision(self, ledger):
        from core.exceptions import ValidationError

        record_id = ledger.submit(make_submission("seller-1"))
        with pytest.raises(ValidationError):
            ledger.verify(record_id, "reviewer-1", "maybe")

    def test_review_is_audited(self, ledger, audit_trail):
        from audit.event_types import AuditEventType

        record_id = ledger.submit(make_submission("seller-1"))
        ledger.verify(record_id, "reviewer-1", "invalid")

        events = audit_trail.query("seller-1", event_type=AuditEventType.TAX_INFO_REJECTED)
        assert len(events) == 1
        assert events[0].actor_ref == "reviewer-1"


class TestHistory:
    """Tests for resubmission and record history."""

    def test_resubmission_becomes_current(self, ledger):
        from compliance.models import ComplianceStatus, TaxInfoStatus

        first = ledger.submit(make_submission("seller-1"))
        ledger.verify(first, "reviewer-1", "invalid")
        second = ledger.submit(make_submission("seller-1", legal_name="Jane Q Doe"))

        assert ledger.current_status("seller-1") == ComplianceStatus.PENDING
        assert ledger.current_record("seller-1").record_id == second
        # Earlier records are kept untouched
        assert ledger.get_record(first).status == TaxInfoStatus.INVALID
        assert [r.record_id for r in ledger.history("seller-1")] == [first, second]

    def test_review_of_old_record_does_not_move_status(self, ledger):
        from compliance.models import ComplianceStatus

        first = ledger.submit(make_submission("seller-1"))
        ledger.submit(make_submission("seller-1"))
        ledger.verify(first, "reviewer-1", "verified")

        assert ledger.current_status("seller-1") == ComplianceStatus.PENDING

    def test_pending_queue(self, ledger):
        first = ledger.submit(make_submission("seller-1"))
        second = ledger.submit(make_submission("seller-2"))
        ledger.submit(make_submission("seller-3"))
        ledger.verify(second, "reviewer-1", "verified")

        records, total = ledger.list_pending(limit=1)
        assert total == 2
        assert [r.record_id for r in records] == [first]


class TestExpiry:
    """Tests for verified form expiry."""

    def test_expired_forms_move_to_expired(self, ledger, audit_trail, settings):
        from audit.event_types import AuditEventType
        from compliance.models import ComplianceStatus
        from core.money import utcnow

        record_id = ledger.submit(make_submission("seller-1"))
        ledger.verify(record_id, "reviewer-1", "verified")

        assert ledger.expire_verified(now=utcnow()) == 0

        later = utcnow() + timedelta(days=settings.compliance.tin_validity_days + 1)
        assert ledger.expire_verified(now=later) == 1
        assert ledger.current_status("seller-1") == ComplianceStatus.EXPIRED
        assert len(audit_trail.query("seller-1", event_type=AuditEventType.TAX_INFO_EXPIRED)) == 1

        # Second run finds nothing left to expire
        assert ledger.expire_verified(now=later) == 0


class TestPayeeLocks:
    """Tests for the per-payee lock registry."""

    def test_locks_are_dropped_after_use(self, ledger, locks):
        record_id = ledger.submit(make_submission("seller-1"))
        ledger.verify(record_id, "reviewer-1", "verified")
        ledger.submit(make_submission("seller-2"))

        assert len(locks) == 0

    def test_hold_is_reentrant(self, locks):
        with locks.hold("seller-1"):
            with locks.hold("seller-1"):
                assert len(locks) == 1
            assert len(locks) == 1
        assert len(locks) == 0

    def test_waiter_keeps_lock_until_done(self, locks):
        """A thread waiting on a payee runs only after the holder leaves."""
        order = []
        holding = threading.Event()
        release = threading.Event()

        def holder():
            with locks.hold("seller-1"):
                holding.set()
                release.wait(timeout=5)
                order.append("holder")

        def waiter():
            holding.wait(timeout=5)
            with locks.hold("seller-1"):
                order.append("waiter")

        threads = [threading.Thread(target=holder), threading.Thread(target=waiter)]
        for t in threads:
            t.start()
        holding.wait(timeout=5)
        release.set()
        for t in threads:
            t.join()

        assert order == ["holder", "waiter"]
        assert len(locks) == 0

    def test_different_payees_do_not_block(self, locks):
        with locks.hold("seller-1"):
            done = threading.Event()

            def other():
                with locks.hold("seller-2"):
                    done.set()

            t = threading.Thread(target=other)
            t.start()
            assert done.wait(timeout=5)
            t.join()
