"""Tests for /api/payments."""

from fastapi.testclient import TestClient

from bookrail.core.exceptions import RailRejectedException, RailTransientException
from bookrail.integrations.fee_rail import FeeChargeStatus


def _initiate(client, as_user, booking_id, client_id):
    return client.post(
        "/api/payments/initiate", json={"booking_id": booking_id}, headers=as_user(client_id)
    )


class TestSettlementRoutes:
    def test_full_settlement(
        self, client: TestClient, as_user, fee_rail, transfer_rail, confirmed_booking, client_id, provider_id
    ):
        response = _initiate(client, as_user, confirmed_booking.id, client_id)
        assert response.status_code == 200
        body = response.json()
        reference = body["fee_rail_reference"]
        assert body["client_secret"]
        assert body["payment"]["settlement_state"] == "FEE_PENDING"
        assert body["payment"]["display_summary"] == "Awaiting payment"

        confirm = {"booking_id": confirmed_booking.id, "fee_rail_reference": reference}
        response = client.post("/api/payments/confirm", json=confirm, headers=as_user(client_id))
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "PAYMENT_NOT_COMPLETED"

        fee_rail.set_status(reference, FeeChargeStatus.SUCCEEDED)
        response = client.post("/api/payments/confirm", json=confirm, headers=as_user(client_id))
        assert response.status_code == 200
        assert response.json()["settlement_state"] == "FEE_COMPLETED"

        response = client.post(
            "/api/payments/settle-provider",
            json={"booking_id": confirmed_booking.id},
            headers=as_user(provider_id),
        )
        assert response.status_code == 200
        assert response.json()["settlement_state"] == "FULLY_SETTLED"
        assert response.json()["display_summary"] == "Paid"
        assert transfer_rail.distinct_transfers == 1

        response = client.get(
            f"/api/payments/booking/{confirmed_booking.id}", headers=as_user(client_id)
        )
        assert response.json()["status"] == "completed"

        history = client.get("/api/payments/history", headers=as_user(provider_id)).json()
        assert history["total"] == 1
        assert history["payments"][0]["booking"]["id"] == confirmed_booking.id
        assert history["payments"][0]["booking"]["status"] == "CONFIRMED"

    def test_initiate_for_pending_booking(self, client: TestClient, as_user, pending_booking, client_id):
        response = _initiate(client, as_user, pending_booking.id, client_id)
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "INVALID_STATE"

    def test_provider_cannot_initiate(self, client: TestClient, as_user, confirmed_booking, provider_id):
        response = _initiate(client, as_user, confirmed_booking.id, provider_id)
        assert response.status_code == 403

    def test_declined_card(self, client: TestClient, as_user, fee_rail, confirmed_booking, client_id):
        fee_rail.fail_next(RailRejectedException("Card declined", rail="fee", rail_code="card_declined"))
        response = _initiate(client, as_user, confirmed_booking.id, client_id)
        assert response.status_code == 402
        assert response.json()["detail"]["details"]["rail_code"] == "card_declined"

    def test_transient_fee_failure_is_retried(
        self, client: TestClient, as_user, fee_rail, confirmed_booking, client_id
    ):
        fee_rail.fail_next(RailTransientException("timeout", rail="fee"))
        response = _initiate(client, as_user, confirmed_booking.id, client_id)
        assert response.status_code == 200
        assert fee_rail.distinct_charges == 1

    def test_transfer_outage_reports_pending_payout(
        self, client: TestClient, as_user, fee_rail, transfer_rail, confirmed_booking, client_id, provider_id
    ):
        reference = _initiate(client, as_user, confirmed_booking.id, client_id).json()["fee_rail_reference"]
        fee_rail.set_status(reference, FeeChargeStatus.SUCCEEDED)
        client.post(
            "/api/payments/confirm",
            json={"booking_id": confirmed_booking.id, "fee_rail_reference": reference},
            headers=as_user(client_id),
        )
        for _ in range(3):
            transfer_rail.fail_next(RailTransientException("Plaid down", rail="transfer"))

        response = client.post(
            "/api/payments/settle-provider",
            json={"booking_id": confirmed_booking.id},
            headers=as_user(provider_id),
        )

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "2"
        details = response.json()["detail"]["details"]
        assert details["settlement_state"] == "TRANSFER_FAILED"
        assert details["user_message"] == "Fee charged, provider payment pending"

        payment = client.get(
            f"/api/payments/booking/{confirmed_booking.id}", headers=as_user(client_id)
        ).json()
        assert payment["settlement_state"] == "TRANSFER_FAILED"
        assert payment["status"] == "completed"

    def test_payout_account_status(self, client: TestClient, as_user, provider_profile, provider_id):
        response = client.get("/api/payments/payout-account", headers=as_user(provider_id))
        assert response.status_code == 200
        assert response.json() == {
            "provider_id": provider_id,
            "linked": True,
            "verified": True,
            "account_mask": None,
        }

    def test_transfer_rejection_is_not_payment_required(
        self, client: TestClient, as_user, fee_rail, transfer_rail, confirmed_booking, client_id, provider_id
    ):
        reference = _initiate(client, as_user, confirmed_booking.id, client_id).json()["fee_rail_reference"]
        fee_rail.set_status(reference, FeeChargeStatus.SUCCEEDED)
        client.post(
            "/api/payments/confirm",
            json={"booking_id": confirmed_booking.id, "fee_rail_reference": reference},
            headers=as_user(client_id),
        )
        transfer_rail.fail_next(
            RailRejectedException("Account closed", rail="transfer", rail_code="ACCOUNT_CLOSED")
        )

        response = client.post(
            "/api/payments/settle-provider",
            json={"booking_id": confirmed_booking.id},
            headers=as_user(provider_id),
        )

        assert response.status_code == 422
        details = response.json()["detail"]["details"]
        assert details["settlement_state"] == "TRANSFER_FAILED"
        assert details["user_message"] == "Fee charged, provider payment pending"


class TestPayoutAccountRoutes:
    def test_link_and_exchange(self, client: TestClient, as_user, db, provider_profile, provider_id):
        provider_profile.payout_account_verified = False
        db.commit()

        response = client.post("/api/payments/payout-account/link-token", headers=as_user(provider_id))
        assert response.status_code == 200
        assert response.json()["link_token"]

        response = client.post(
            "/api/payments/payout-account/exchange",
            json={"public_token": "public-sandbox-1"},
            headers=as_user(provider_id),
        )
        assert response.status_code == 200
        assert response.json() == {
            "provider_id": provider_id,
            "linked": True,
            "verified": True,
            "account_mask": "0000",
        }

    def test_exchange_without_eligible_account(
        self, client: TestClient, as_user, transfer_rail, provider_profile, provider_id
    ):
        transfer_rail.accounts = []
        response = client.post(
            "/api/payments/payout-account/exchange",
            json={"public_token": "public-sandbox-1"},
            headers=as_user(provider_id),
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "NO_ELIGIBLE_ACCOUNT"

    def test_link_token_for_non_provider(self, client: TestClient, as_user, outsider_id):
        response = client.post("/api/payments/payout-account/link-token", headers=as_user(outsider_id))
        assert response.status_code == 404

    def test_exchange_requires_token(self, client: TestClient, as_user, provider_profile, provider_id):
        response = client.post(
            "/api/payments/payout-account/exchange", json={}, headers=as_user(provider_id)
        )
        assert response.status_code == 422
