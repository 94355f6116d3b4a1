"""Tests for domain exception to HTTP mapping."""

from bookrail.core.exceptions import (
    AlreadyPaidException,
    ConcurrentModificationException,
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
    PaymentNotCompletedException,
    PayoutAccountNotVerifiedException,
    RailRejectedException,
    RailTransientException,
)


def test_status_codes():
    assert NotFoundException("missing").to_http_exception().status_code == 404
    assert ForbiddenException("nope").to_http_exception().status_code == 403
    assert InvalidTransitionException("accept", "DECLINED", ["PENDING"]).to_http_exception().status_code == 409
    assert ConcurrentModificationException("Booking", "b1", "PENDING").to_http_exception().status_code == 409
    assert AlreadyPaidException("b1").to_http_exception().status_code == 409
    assert PaymentNotCompletedException("b1").to_http_exception().status_code == 422
    assert PayoutAccountNotVerifiedException("b1", "p1", "FEE_COMPLETED").to_http_exception().status_code == 422
    assert RailRejectedException("declined", rail="fee").to_http_exception().status_code == 402
    assert RailRejectedException("closed", rail="transfer").to_http_exception().status_code == 422


def test_transient_rail_error_advertises_retry():
    http_exc = RailTransientException("timeout", rail="transfer", rail_code="timeout").to_http_exception()
    assert http_exc.status_code == 503
    assert http_exc.headers == {"Retry-After": "2"}
    assert http_exc.detail["code"] == "RAIL_TRANSIENT"
    assert http_exc.detail["details"]["rail"] == "transfer"


def test_payout_account_error_carries_user_message():
    exc = PayoutAccountNotVerifiedException("b1", "p1", "FEE_COMPLETED")
    assert exc.code == "PAYOUT_ACCOUNT_NOT_VERIFIED"
    assert "bank account" in exc.details["user_message"]
