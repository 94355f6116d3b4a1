"""Tests for the Stripe-backed fee rail and the in-memory fake."""

from decimal import Decimal
from unittest.mock import patch

import pytest
import stripe

from bookrail.core.exceptions import RailRejectedException, RailTransientException
from bookrail.integrations.fee_rail import (
    FakeFeeRail,
    FeeChargeStatus,
    StripeFeeRail,
    map_stripe_error,
    to_minor_units,
)


def _intent(**overrides):
    intent = {
        "id": "pi_123",
        "status": "requires_payment_method",
        "amount": 1200,
        "currency": "usd",
        "client_secret": "pi_123_secret_abc",
        "metadata": {"booking_id": "01HBOOKING0000000000000000"},
    }
    intent.update(overrides)
    return intent


class TestToMinorUnits:
    @pytest.mark.parametrize(
        "amount,cents",
        [(Decimal("12.00"), 1200), (Decimal("0.01"), 1), (Decimal("3.345"), 335), (Decimal("0"), 0)],
    )
    def test_conversion(self, amount, cents):
        assert to_minor_units(amount) == cents


class TestStripeFeeRail:
    def test_requires_secret_key(self):
        with pytest.raises(ValueError):
            StripeFeeRail(api_key="")

    def test_configures_bounded_timeout_without_sdk_retries(self, monkeypatch):
        monkeypatch.setattr(stripe, "default_http_client", None)
        monkeypatch.setattr(stripe, "max_network_retries", 2)
        with patch("stripe.RequestsClient") as mock_client:
            StripeFeeRail(api_key="sk_test_123", timeout=4.0)

        mock_client.assert_called_once_with(timeout=4.0)
        assert stripe.default_http_client is mock_client.return_value
        assert stripe.max_network_retries == 0

    def test_timeout_setup_failure_is_not_swallowed(self, monkeypatch):
        monkeypatch.setattr(stripe, "default_http_client", None)
        with patch("stripe.RequestsClient", side_effect=RuntimeError("no http client")):
            with pytest.raises(RuntimeError):
                StripeFeeRail(api_key="sk_test_123")

    @patch("stripe.PaymentIntent.create")
    def test_create_charge_passes_idempotency_key_and_fee_amount(self, mock_create):
        mock_create.return_value = _intent()
        rail = StripeFeeRail(api_key="sk_test_123")

        charge = rail.create_charge(
            amount=Decimal("12.00"),
            currency="usd",
            idempotency_key="fee-01HBOOKING0000000000000000-1",
            metadata={"booking_id": "01HBOOKING0000000000000000"},
            description="Platform fee",
        )

        kwargs = mock_create.call_args.kwargs
        assert kwargs["amount"] == 1200
        assert kwargs["idempotency_key"] == "fee-01HBOOKING0000000000000000-1"
        assert kwargs["metadata"] == {"booking_id": "01HBOOKING0000000000000000"}
        assert charge.reference == "pi_123"
        assert charge.client_secret == "pi_123_secret_abc"
        assert not charge.succeeded

    @patch("stripe.PaymentIntent.retrieve")
    def test_get_charge(self, mock_retrieve):
        mock_retrieve.return_value = _intent(status="succeeded")
        charge = StripeFeeRail(api_key="sk_test_123").get_charge("pi_123")
        mock_retrieve.assert_called_once_with("pi_123")
        assert charge.succeeded
        assert charge.metadata["booking_id"] == "01HBOOKING0000000000000000"

    @patch("stripe.PaymentIntent.create")
    def test_card_error_is_rejection(self, mock_create):
        mock_create.side_effect = stripe.CardError("Your card was declined.", None, "card_declined")
        rail = StripeFeeRail(api_key="sk_test_123")

        with pytest.raises(RailRejectedException) as exc_info:
            rail.create_charge(
                amount=Decimal("12.00"),
                currency="usd",
                idempotency_key="fee-x-1",
                metadata={},
                description="Platform fee",
            )
        assert exc_info.value.rail == "fee"
        assert exc_info.value.rail_code == "card_declined"

    @patch("stripe.PaymentIntent.retrieve")
    def test_connection_error_is_transient(self, mock_retrieve):
        mock_retrieve.side_effect = stripe.APIConnectionError("Network unreachable")
        with pytest.raises(RailTransientException):
            StripeFeeRail(api_key="sk_test_123").get_charge("pi_123")


class TestMapStripeError:
    def test_rate_limit_is_transient(self):
        assert isinstance(map_stripe_error(stripe.RateLimitError("slow down")), RailTransientException)

    def test_invalid_request_is_rejection(self):
        exc = stripe.InvalidRequestError("No such payment_intent", "id")
        assert isinstance(map_stripe_error(exc), RailRejectedException)

    def test_api_error_is_transient(self):
        assert isinstance(map_stripe_error(stripe.APIError("boom")), RailTransientException)


class TestFakeFeeRail:
    def test_same_key_returns_same_charge(self):
        rail = FakeFeeRail()
        first = rail.create_charge(
            amount=Decimal("12.00"), currency="usd", idempotency_key="k", metadata={}, description=""
        )
        second = rail.create_charge(
            amount=Decimal("12.00"), currency="usd", idempotency_key="k", metadata={}, description=""
        )
        assert first.reference == second.reference
        assert rail.distinct_charges == 1
        assert rail.create_calls == 2

    def test_fail_next(self):
        rail = FakeFeeRail()
        rail.fail_next(RailTransientException("timeout", rail="fee"))
        with pytest.raises(RailTransientException):
            rail.create_charge(
                amount=Decimal("1"), currency="usd", idempotency_key="k", metadata={}, description=""
            )
        assert rail.distinct_charges == 0

    def test_unknown_reference(self):
        with pytest.raises(RailRejectedException):
            FakeFeeRail().get_charge("pi_missing")

    def test_set_status(self):
        rail = FakeFeeRail()
        charge = rail.create_charge(
            amount=Decimal("1"), currency="usd", idempotency_key="k", metadata={}, description=""
        )
        rail.set_status(charge.reference, FeeChargeStatus.SUCCEEDED)
        assert rail.get_charge(charge.reference).succeeded
