# backend/bookrail/models/__init__.py
"""
SQLAlchemy models.

All models are imported here so that ``Base.metadata`` knows every table
before ``create_all`` runs and relationships resolve by class name.
"""

from .booking import Booking, BookingStatus
from .event_outbox import EventOutbox, EventOutboxStatus
from .payment import Payment, PaymentStatus, SettlementState
from .provider import ProviderProfile
from .service import Service

__all__ = [
    "Booking",
    "BookingStatus",
    "EventOutbox",
    "EventOutboxStatus",
    "Payment",
    "PaymentStatus",
    "ProviderProfile",
    "Service",
    "SettlementState",
]
