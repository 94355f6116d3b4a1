# backend/bookrail/repositories/factory.py
"""
Repository factory.

Centralizes repository creation so services never instantiate data access
classes directly.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from .booking_repository import BookingRepository
    from .event_outbox_repository import EventOutboxRepository
    from .payment_repository import PaymentRepository
    from .provider_repository import ProviderProfileRepository, ServiceRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_payment_repository(db: Session) -> "PaymentRepository":
        from .payment_repository import PaymentRepository

        return PaymentRepository(db)

    @staticmethod
    def create_provider_profile_repository(db: Session) -> "ProviderProfileRepository":
        from .provider_repository import ProviderProfileRepository

        return ProviderProfileRepository(db)

    @staticmethod
    def create_service_repository(db: Session) -> "ServiceRepository":
        from .provider_repository import ServiceRepository

        return ServiceRepository(db)

    @staticmethod
    def create_event_outbox_repository(db: Session) -> "EventOutboxRepository":
        from .event_outbox_repository import EventOutboxRepository

        return EventOutboxRepository(db)
