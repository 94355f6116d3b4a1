# backend/bookrail/models/payment.py
"""
Payment model for dual-rail settlement.

One row per booking. The fee leg (platform fee, card rail) and the transfer
leg (provider amount, ACH rail) each record their own rail reference. The
explicit ``settlement_state`` column drives every decision; ``status`` is the
coarse summary derived from it.
"""

from typing import Any, Dict

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base
from ..domain.settlement_state_machine import DISPLAY_SUMMARY, PaymentStatus, SettlementState

__all__ = ["Payment", "PaymentStatus", "SettlementState"]


class Payment(Base):
    """Settlement record for a single booking."""

    __tablename__ = "payments"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    booking_id = Column(String(26), ForeignKey("bookings.id"), nullable=False)

    # Amounts in major currency units
    total_amount = Column(Numeric(10, 2), nullable=False)
    provider_amount = Column(Numeric(10, 2), nullable=False)
    platform_fee = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="usd")

    # Fee leg
    fee_rail_reference = Column(String(255), nullable=True, index=True)
    fee_attempt = Column(Integer, nullable=False, default=1)
    fee_error = Column(Text, nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    # Transfer leg
    transfer_rail_reference = Column(String(255), nullable=True)
    transfer_attempts = Column(Integer, nullable=False, default=0)
    transfer_error = Column(Text, nullable=True)
    settled_at = Column(DateTime(timezone=True), nullable=True)

    settlement_state = Column(
        String(30), nullable=False, default=SettlementState.FEE_PENDING.value, index=True
    )
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    booking = relationship("Booking", back_populates="payment")

    __table_args__ = (
        UniqueConstraint("booking_id", name="uq_payments_booking_id"),
        CheckConstraint("platform_fee >= 0", name="ck_payments_fee_non_negative"),
        CheckConstraint(
            "settlement_state IN ('FEE_PENDING', 'FEE_COMPLETED', 'FULLY_SETTLED', "
            "'FEE_FAILED', 'TRANSFER_FAILED')",
            name="ck_payments_settlement_state",
        ),
    )

    @property
    def state(self) -> SettlementState:
        return SettlementState(self.settlement_state)

    @property
    def fee_idempotency_key(self) -> str:
        return f"fee-{self.booking_id}-{self.fee_attempt}"

    @property
    def transfer_idempotency_key(self) -> str:
        return f"transfer-{self.booking_id}"

    @property
    def display_summary(self) -> str:
        return DISPLAY_SUMMARY[self.state]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "total_amount": str(self.total_amount),
            "provider_amount": str(self.provider_amount),
            "platform_fee": str(self.platform_fee),
            "currency": self.currency,
            "status": self.status,
            "settlement_state": self.settlement_state,
            "fee_rail_reference": self.fee_rail_reference,
            "transfer_rail_reference": self.transfer_rail_reference,
        }

    def __repr__(self) -> str:
        return (
            f"<Payment {self.id}: booking={self.booking_id}, "
            f"state={self.settlement_state}, total={self.total_amount}>"
        )
