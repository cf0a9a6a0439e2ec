"""
Tests for the tax compliance and payout HTTP API.

Exercises routes end to end through TestClient against an in-memory
database, including the error envelope for every mapped exception.
"""

import pytest
from fastapi.testclient import TestClient

from tests.helpers.settlement_fixtures import add_earnings, make_submission


@pytest.fixture
def client(settings, service):
    from web.app import create_app
    return TestClient(create_app(settings, service))


def _verified(client, owner_ref="seller-1"):
    record_id = client.post("/api/tax/forms", json=make_submission(owner_ref)).json()["record_id"]
    client.post(f"/api/tax/forms/{record_id}/verify", json={"reviewer_ref": "reviewer-1", "decision": "verified"})
    return record_id


class TestHealth:
    """Tests for the health endpoint and request ids."""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
        assert response.headers["X-Request-ID"]

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"


class TestTaxFormRoutes:
    """Tests for /api/tax."""

    def test_submit_and_status(self, client):
        response = client.post("/api/tax/forms", json=make_submission("seller-1"))

        assert response.status_code == 201
        assert response.json()["status"] == "pending"

        status = client.get("/api/tax/status/seller-1").json()
        assert status["status"] == "pending"
        assert status["tin_last_four"] == "6789"

    def test_invalid_tin_is_400(self, client):
        response = client.post("/api/tax/forms", json=make_submission("seller-1", tin="000-12-3456"))

        assert response.status_code == 400
        body = response.json()
        assert body["error"] is True
        assert body["code"] == "VALIDATION_ERROR"
        assert body["details"] == {"field": "tin"}
        assert "000" not in body["message"]

    def test_verify_and_info(self, client):
        record_id = _verified(client)

        info = client.get("/api/tax/info/seller-1").json()
        assert info["record_id"] == record_id
        assert info["status"] == "verified"
        assert info["tin_masked"] == "XXX-XX-6789"

    def test_second_review_is_409(self, client):
        record_id = _verified(client)

        response = client.post(
            f"/api/tax/forms/{record_id}/verify",
            json={"reviewer_ref": "reviewer-2", "decision": "invalid"},
        )
        assert response.status_code == 409
        assert response.json()["code"] == "INVALID_STATE_TRANSITION"
        assert response.json()["details"]["current_status"] == "verified"

    def test_unknown_decision_is_422(self, client):
        record_id = client.post("/api/tax/forms", json=make_submission("seller-1")).json()["record_id"]

        response = client.post(
            f"/api/tax/forms/{record_id}/verify",
            json={"reviewer_ref": "reviewer-1", "decision": "maybe"},
        )
        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert response.json()["field_errors"]

    def test_missing_info_is_404(self, client):
        response = client.get("/api/tax/info/nobody")
        assert response.status_code == 404
        assert response.json()["code"] == "RESOURCE_NOT_FOUND"

    def test_requirements(self, client, database):
        add_earnings(database, "seller-1", "600.00")

        body = client.get("/api/tax/requirements/seller-1").json()
        assert body["requires_tax_form"] is True
        assert body["threshold"] == "600.00"

    def test_pending_queue(self, client):
        client.post("/api/tax/forms", json=make_submission("seller-1"))
        client.post("/api/tax/forms", json=make_submission("seller-2"))

        body = client.get("/api/tax/pending", params={"limit": 1}).json()
        assert body["total"] == 2
        assert len(body["submissions"]) == 1

    def test_tin_access_is_audited(self, client):
        record_id = _verified(client)

        response = client.post(f"/api/tax/forms/{record_id}/tin", json={"reviewer_ref": "reviewer-9"})
        assert response.status_code == 200
        assert response.json()["tin"] == "123456789"

        audit = client.get("/api/tax/audit/seller-1", params={"event_type": "tin_decrypted"}).json()
        assert audit["count"] == 1
        assert audit["events"][0]["actor_ref"] == "reviewer-9"

    def test_audit_log_never_contains_tin(self, client):
        _verified(client)

        audit = client.get("/api/tax/audit/seller-1").json()
        assert audit["count"] >= 2
        assert "123456789" not in str(audit)
        assert "123-45-6789" not in str(audit)


class TestPayoutRoutes:
    """Tests for /api/payouts."""

    def test_blocked_payout_is_403(self, client, database):
        add_earnings(database, "seller-1", "600.00")

        response = client.post(
            "/api/payouts",
            json={"payee_ref": "seller-1", "event_ref": "order-1", "gross_amount": "50.00"},
        )

        assert response.status_code == 403
        body = response.json()
        assert body["code"] == "COMPLIANCE_BLOCKED"
        assert body["details"] == {"current_earnings": "600.00", "threshold": "600.00"}
        assert "W-9" in body["message"]

    def test_full_payout_flow(self, client, database):
        add_earnings(database, "seller-1", "600.00")
        _verified(client)

        created = client.post(
            "/api/payouts",
            json={"payee_ref": "seller-1", "event_ref": "order-1", "gross_amount": "100.00"},
        )
        assert created.status_code == 201
        payout = created.json()
        assert payout["status"] == "processing"
        assert payout["net_amount"] == "85.00"

        processed = client.post(f"/api/payouts/{payout['payout_id']}/process").json()
        assert processed["status"] == "completed"
        assert processed["reserve_release_due"]

        # Reserve is still within its hold period
        early = client.post(f"/api/payouts/{payout['payout_id']}/release-reserve")
        assert early.status_code == 409

        listed = client.get("/api/payouts", params={"payee_ref": "seller-1", "status": "completed"}).json()
        assert listed["count"] == 1

    def test_held_payout_review(self, client):
        _verified(client)

        payout = client.post(
            "/api/payouts",
            json={
                "payee_ref": "seller-1",
                "event_ref": "order-1",
                "gross_amount": "100.00",
                "risk_flags": ["velocity"],
            },
        ).json()
        assert payout["status"] == "held"

        cancelled = client.post(
            f"/api/payouts/{payout['payout_id']}/cancel",
            json={"reviewer_ref": "reviewer-1", "reason": "confirmed fraud"},
        )
        assert cancelled.json()["status"] == "cancelled"

        approve = client.post(f"/api/payouts/{payout['payout_id']}/approve", json={"reviewer_ref": "reviewer-1"})
        assert approve.status_code == 409

    def test_flag_and_approve(self, client):
        _verified(client)
        payout = client.post(
            "/api/payouts",
            json={"payee_ref": "seller-1", "event_ref": "order-1", "gross_amount": "100.00"},
        ).json()

        flagged = client.post(f"/api/payouts/{payout['payout_id']}/flag", json={"reason": "address mismatch"})
        assert flagged.json()["hold_reason"] == "manual_risk_review: address mismatch"

        approved = client.post(f"/api/payouts/{payout['payout_id']}/approve", json={"reviewer_ref": "reviewer-1"})
        assert approved.json()["status"] == "completed"

    def test_bad_amount_is_400(self, client):
        response = client.post(
            "/api/payouts",
            json={"payee_ref": "seller-1", "event_ref": "order-1", "gross_amount": "-1"},
        )
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_unknown_payout_is_404(self, client):
        response = client.get("/api/payouts/missing")
        assert response.status_code == 404
        assert response.json()["details"] == {"resource": "Payout", "resource_id": "missing"}
