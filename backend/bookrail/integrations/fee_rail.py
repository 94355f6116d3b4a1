"""
Fee rail: card charges for the platform fee.

The production adapter wraps Stripe PaymentIntents. The adapter performs one
network call per method and never retries; callers own retry policy and
always pass a deterministic idempotency key.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
import logging
import time
from typing import Dict, List, Optional, Protocol
from uuid import uuid4

from pydantic import SecretStr
import stripe

from ..core.exceptions import RailError, RailRejectedException, RailTransientException
from ..monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

RAIL_NAME = "fee"


class FeeChargeStatus:
    """Charge statuses as reported by the rail (Stripe PaymentIntent vocabulary)."""

    REQUIRES_PAYMENT_METHOD = "requires_payment_method"
    REQUIRES_CONFIRMATION = "requires_confirmation"
    REQUIRES_ACTION = "requires_action"
    PROCESSING = "processing"
    REQUIRES_CAPTURE = "requires_capture"
    SUCCEEDED = "succeeded"
    CANCELED = "canceled"


@dataclass
class FeeCharge:
    reference: str
    status: str
    amount_cents: int
    currency: str
    client_secret: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == FeeChargeStatus.SUCCEEDED

    @property
    def canceled(self) -> bool:
        return self.status == FeeChargeStatus.CANCELED


class FeeRail(Protocol):
    def create_charge(
        self,
        *,
        amount: Decimal,
        currency: str,
        idempotency_key: str,
        metadata: Dict[str, str],
        description: str,
    ) -> FeeCharge:
        ...

    def get_charge(self, reference: str) -> FeeCharge:
        ...


def to_minor_units(amount: Decimal) -> int:
    """Convert a major-unit Decimal into integer cents."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def map_stripe_error(exc: stripe.StripeError) -> RailError:
    """Classify a Stripe error as a permanent rejection or a transient failure."""
    rail_code = getattr(exc, "code", None)
    message = getattr(exc, "user_message", None) or str(exc) or "Card rail error"
    http_status = getattr(exc, "http_status", None)

    if isinstance(exc, stripe.CardError):
        return RailRejectedException(message, rail=RAIL_NAME, rail_code=rail_code)
    if isinstance(exc, (stripe.APIConnectionError, stripe.RateLimitError)):
        return RailTransientException(message, rail=RAIL_NAME, rail_code=rail_code)
    if isinstance(
        exc,
        (
            stripe.InvalidRequestError,
            stripe.AuthenticationError,
            stripe.PermissionError,
            stripe.IdempotencyError,
        ),
    ):
        return RailRejectedException(message, rail=RAIL_NAME, rail_code=rail_code)
    if isinstance(exc, stripe.APIError) or (http_status is not None and http_status >= 500):
        return RailTransientException(message, rail=RAIL_NAME, rail_code=rail_code)
    return RailRejectedException(message, rail=RAIL_NAME, rail_code=rail_code)


def _charge_from_intent(intent: stripe.PaymentIntent) -> FeeCharge:
    metadata = intent.get("metadata") or {}
    return FeeCharge(
        reference=intent["id"],
        status=intent["status"],
        amount_cents=int(intent.get("amount") or 0),
        currency=intent.get("currency") or "usd",
        client_secret=intent.get("client_secret"),
        metadata={str(k): str(v) for k, v in dict(metadata).items()},
    )


class StripeFeeRail:
    """Fee rail backed by Stripe PaymentIntents."""

    def __init__(self, *, api_key: str | SecretStr, timeout: float = 8.0) -> None:
        secret_value = api_key.get_secret_value() if isinstance(api_key, SecretStr) else api_key
        if not secret_value:
            raise ValueError("Stripe secret key must be provided")

        stripe.api_key = secret_value
        # Retries are owned by the caller
        stripe.max_network_retries = 0
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    def create_charge(
        self,
        *,
        amount: Decimal,
        currency: str,
        idempotency_key: str,
        metadata: Dict[str, str],
        description: str,
    ) -> FeeCharge:
        start = time.monotonic()
        try:
            intent = stripe.PaymentIntent.create(
                amount=to_minor_units(amount),
                currency=currency,
                metadata=metadata,
                description=description,
                automatic_payment_methods={"enabled": True},
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as exc:
            logger.error(f"Stripe charge creation failed ({idempotency_key}): {exc}")
            raise map_stripe_error(exc) from exc
        finally:
            prometheus_metrics.observe_rail_call("stripe", "create_charge", time.monotonic() - start)

        charge = _charge_from_intent(intent)
        logger.info(f"Stripe charge {charge.reference} created with status {charge.status}")
        return charge

    def get_charge(self, reference: str) -> FeeCharge:
        if not reference:
            raise ValueError("reference must be provided")
        start = time.monotonic()
        try:
            intent = stripe.PaymentIntent.retrieve(reference)
        except stripe.StripeError as exc:
            logger.error(f"Stripe charge lookup failed for {reference}: {exc}")
            raise map_stripe_error(exc) from exc
        finally:
            prometheus_metrics.observe_rail_call("stripe", "get_charge", time.monotonic() - start)
        return _charge_from_intent(intent)


class FakeFeeRail:
    """In-memory fee rail for development and tests. Honors idempotency keys."""

    def __init__(self, *, initial_status: str = FeeChargeStatus.REQUIRES_PAYMENT_METHOD) -> None:
        self.initial_status = initial_status
        self.charges: Dict[str, FeeCharge] = {}
        self._by_key: Dict[str, str] = {}
        self._pending_errors: List[Exception] = []
        self.create_calls = 0
        self._logger = logging.getLogger(self.__class__.__name__)

    def fail_next(self, exc: Exception) -> None:
        """Raise ``exc`` from the next rail call."""
        self._pending_errors.append(exc)

    def set_status(self, reference: str, status: str) -> None:
        self.charges[reference].status = status

    def _maybe_fail(self) -> None:
        if self._pending_errors:
            raise self._pending_errors.pop(0)

    def create_charge(
        self,
        *,
        amount: Decimal,
        currency: str,
        idempotency_key: str,
        metadata: Dict[str, str],
        description: str,
    ) -> FeeCharge:
        self.create_calls += 1
        self._maybe_fail()
        existing = self._by_key.get(idempotency_key)
        if existing is not None:
            return self.charges[existing]

        reference = f"pi_fake_{uuid4().hex[:24]}"
        charge = FeeCharge(
            reference=reference,
            status=self.initial_status,
            amount_cents=to_minor_units(amount),
            currency=currency,
            client_secret=f"{reference}_secret_{uuid4().hex[:12]}",
            metadata=dict(metadata),
        )
        self.charges[reference] = charge
        self._by_key[idempotency_key] = reference
        self._logger.debug("Fake charge created", extra={"reference": reference})
        return charge

    def get_charge(self, reference: str) -> FeeCharge:
        self._maybe_fail()
        charge = self.charges.get(reference)
        if charge is None:
            raise RailRejectedException(
                f"No such charge: {reference}", rail=RAIL_NAME, rail_code="resource_missing"
            )
        return charge

    @property
    def distinct_charges(self) -> int:
        return len(self.charges)
