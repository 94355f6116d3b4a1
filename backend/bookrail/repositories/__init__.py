from .booking_repository import BookingRepository
from .event_outbox_repository import EventOutboxRepository
from .factory import RepositoryFactory
from .payment_repository import PaymentRepository
from .provider_repository import ProviderProfileRepository, ServiceRepository

__all__ = [
    "BookingRepository",
    "EventOutboxRepository",
    "PaymentRepository",
    "ProviderProfileRepository",
    "RepositoryFactory",
    "ServiceRepository",
]
