from .booking_events import BookingStatusChanged, PaymentStatusChanged
from .dispatcher import OutboxDispatcher
from .notifier import LoggingNotifier, Notifier, NotifierTemporaryError, RecordingNotifier
from .publisher import EventPublisher

__all__ = [
    "BookingStatusChanged",
    "EventPublisher",
    "LoggingNotifier",
    "Notifier",
    "NotifierTemporaryError",
    "OutboxDispatcher",
    "PaymentStatusChanged",
    "RecordingNotifier",
]
