"""
Notifier collaborator.

The outbox dispatcher hands each committed state change to a notifier as
``notify(booking_id, new_status, snapshot)``. Fan-out to push, email or chat
lives behind this interface.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Protocol, Tuple

logger = logging.getLogger(__name__)


class NotifierTemporaryError(RuntimeError):
    """Raised by a notifier when delivery should be retried later."""


class Notifier(Protocol):
    def notify(self, booking_id: str, new_status: str, snapshot: Dict[str, Any]) -> None:
        ...


class LoggingNotifier:
    """Default notifier: records the fact in the application log."""

    def notify(self, booking_id: str, new_status: str, snapshot: Dict[str, Any]) -> None:
        logger.info(
            "Booking %s is now %s",
            booking_id,
            new_status,
            extra={"evt": "booking_notification", "booking_id": booking_id, "status": new_status},
        )


class RecordingNotifier:
    """Keeps every notification in memory; used by tests and local tooling."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []

    def notify(self, booking_id: str, new_status: str, snapshot: Dict[str, Any]) -> None:
        self.calls.append((booking_id, new_status, snapshot))
