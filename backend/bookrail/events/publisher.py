"""Event publisher - writes events to the outbox inside the caller's transaction."""
from datetime import datetime
import logging
from typing import Any, Dict, Protocol

from ..repositories.event_outbox_repository import EventOutboxRepository

logger = logging.getLogger(__name__)


class Event(Protocol):
    """Protocol for outbox event types."""

    event_type: str
    booking_id: str

    @property
    def idempotency_key(self) -> str:
        ...

    def to_dict(self) -> Dict[str, Any]:
        ...


def _json_ready(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _json_ready(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_json_ready(v) for v in value]
    return value


class EventPublisher:
    """
    Publishes domain events to the event outbox.

    The row is written in the same transaction as the state change, so an
    event exists if and only if the change committed. Delivery happens later
    in the outbox dispatcher.
    """

    def __init__(self, outbox_repository: EventOutboxRepository):
        self.outbox_repository = outbox_repository

    def publish(self, event: Event) -> None:
        payload = _json_ready(event.to_dict())
        self.outbox_repository.enqueue(
            event_type=event.event_type,
            aggregate_id=event.booking_id,
            payload=payload,
            idempotency_key=event.idempotency_key,
        )
        logger.debug(f"Queued {event.event_type} for booking {event.booking_id}")
