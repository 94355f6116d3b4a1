# backend/bookrail/models/booking.py
"""
Booking model.

A booking is a client's request for one of a provider's services at a
scheduled date and time. The service price is snapshotted at creation and
never changes afterwards, so settlement always uses the price the client saw.
Status is only ever written through the booking state machine.
"""

import logging
from typing import Any, Dict

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
import ulid

from ..database import Base
from ..domain.booking_state_machine import BookingStatus

logger = logging.getLogger(__name__)

__all__ = ["Booking", "BookingStatus"]


class Booking(Base):
    """Booking between a client and a provider for a single service."""

    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    # Parties are identified by user id; the service is owned by the provider's profile
    client_id = Column(String(26), nullable=False, index=True)
    provider_id = Column(String(26), nullable=False, index=True)
    service_id = Column(String(26), ForeignKey("services.id"), nullable=False)

    scheduled_date = Column(Date, nullable=False, index=True)
    scheduled_time = Column(String(5), nullable=False)  # "HH:MM"

    # Snapshot taken at creation
    service_name = Column(String(255), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value, index=True)
    notes = Column(Text, nullable=True)
    location = Column(
        JSONB(astext_type=Text()).with_variant(JSON(), "sqlite"),
        nullable=True,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    declined_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by_id = Column(String(26), nullable=True)

    service = relationship("Service", lazy="joined")
    payment = relationship("Payment", back_populates="booking", uselist=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'CONFIRMED', 'COMPLETED', 'DECLINED', 'CANCELLED')",
            name="ck_bookings_status",
        ),
        CheckConstraint("price >= 0", name="check_price_non_negative"),
        Index("ix_bookings_client_date", "client_id", "scheduled_date"),
        Index("ix_bookings_provider_date", "provider_id", "scheduled_date"),
    )

    @validates("price")
    def _validate_price(self, key: str, value: Any) -> Any:
        """Price is write-once."""
        if self.price is not None and value != self.price:
            raise ValueError(f"Booking {self.id} price is immutable")
        return value

    def is_party(self, user_id: str) -> bool:
        return user_id in (self.client_id, self.provider_id)

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot used in events and notifications."""
        return {
            "id": self.id,
            "client_id": self.client_id,
            "provider_id": self.provider_id,
            "service_id": self.service_id,
            "service_name": self.service_name,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "scheduled_time": self.scheduled_time,
            "price": str(self.price) if self.price is not None else None,
            "status": self.status,
            "notes": self.notes,
            "location": self.location,
        }

    def __repr__(self) -> str:
        return (
            f"<Booking {self.id}: client={self.client_id}, provider={self.provider_id}, "
            f"date={self.scheduled_date} {self.scheduled_time}, status={self.status}>"
        )
