# backend/bookrail/services/pricing_service.py
"""
Settlement split computation.

The client pays the service price plus the platform fee. The provider is
credited the full price; the fee rail only ever charges the fee. This module
is the only place the split is computed, and the Payment row stores exactly
what it returns.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Dict, Union

CENT = Decimal("0.01")

Amount = Union[Decimal, int, str]


@dataclass(frozen=True)
class SettlementSplit:
    provider_amount: Decimal
    platform_fee: Decimal
    total_amount: Decimal

    def as_metadata(self) -> Dict[str, str]:
        """String form for rail metadata (card rails only accept string values)."""
        return {
            "provider_amount": str(self.provider_amount),
            "platform_fee": str(self.platform_fee),
            "total_amount": str(self.total_amount),
        }


def round2(value: Decimal) -> Decimal:
    """Round half-up to cents."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _to_decimal(value: Amount, name: str) -> Decimal:
    if isinstance(value, float):
        raise TypeError(f"{name} must not be a float; pass a Decimal or string")
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"{name} is not a valid decimal: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"{name} must be finite")
    return result


def compute_split(service_price: Amount, fee_percent: Amount) -> SettlementSplit:
    """
    Split a service price into provider amount and platform fee.

    ``total_amount`` is the sum of the two rounded parts, so it always equals
    ``provider_amount + platform_fee`` exactly.
    """
    price = _to_decimal(service_price, "service_price")
    percent = _to_decimal(fee_percent, "fee_percent")
    if price < 0:
        raise ValueError("service_price must not be negative")
    if percent < 0 or percent > 100:
        raise ValueError("fee_percent must be between 0 and 100")

    provider_amount = round2(price)
    platform_fee = round2(price * percent / Decimal(100))
    return SettlementSplit(
        provider_amount=provider_amount,
        platform_fee=platform_fee,
        total_amount=provider_amount + platform_fee,
    )
