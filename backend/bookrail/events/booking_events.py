"""Booking and payment domain events delivered through the outbox."""
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Optional


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class BookingStatusChanged:
    """Fired after a booking transition commits (including creation)."""

    event_type: ClassVar[str] = "booking.status_changed"

    booking_id: str
    new_status: str
    operation: str
    actor_id: Optional[str]
    snapshot: Dict[str, Any]
    occurred_at: datetime = field(default_factory=_now_utc)

    @property
    def idempotency_key(self) -> str:
        # A booking reaches each status at most once
        return f"{self.event_type}:{self.booking_id}:{self.new_status}"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PaymentStatusChanged:
    """Fired after a payment's settlement state changes."""

    event_type: ClassVar[str] = "payment.status_changed"

    booking_id: str
    new_status: str
    settlement_state: str
    fee_attempt: int
    transfer_attempts: int
    snapshot: Dict[str, Any]
    occurred_at: datetime = field(default_factory=_now_utc)

    @property
    def idempotency_key(self) -> str:
        # Fee retries and transfer retries revisit states, so the counters are part of the key
        return (
            f"{self.event_type}:{self.booking_id}:{self.settlement_state}:"
            f"{self.fee_attempt}:{self.transfer_attempts}"
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
