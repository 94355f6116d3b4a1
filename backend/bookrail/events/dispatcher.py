"""
Outbox dispatcher.

Delivers pending outbox rows to the notifier with bounded retries and
backoff. Notifier failures only ever affect the outbox row; the state change
that produced the event is already committed.
"""

from __future__ import annotations

import logging
from time import monotonic
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..models.event_outbox import EventOutbox
from ..monitoring.prometheus_metrics import PrometheusMetrics
from ..repositories.event_outbox_repository import EventOutboxRepository
from .notifier import Notifier, NotifierTemporaryError

logger = logging.getLogger(__name__)

BACKOFF_SECONDS = [30, 120, 600, 1800, 7200]


def next_backoff(attempt_number: int) -> int:
    """Return backoff delay for the given attempt (1-indexed)."""
    index = max(0, min(attempt_number - 1, len(BACKOFF_SECONDS) - 1))
    return BACKOFF_SECONDS[index]


class OutboxDispatcher:
    def __init__(
        self,
        db: Session,
        notifier: Notifier,
        *,
        max_attempts: Optional[int] = None,
    ) -> None:
        self.db = db
        self.notifier = notifier
        self.max_attempts = max_attempts or settings.outbox_max_delivery_attempts
        self.repository = EventOutboxRepository(db)

    def dispatch_pending(self, limit: int = 200) -> int:
        """
        Deliver every due outbox event once.

        Returns the number of events delivered successfully.
        """
        delivered = 0
        for event in self.repository.fetch_pending(limit=limit):
            if self.deliver(event):
                delivered += 1
        if delivered:
            logger.info("Delivered %s outbox events", delivered)
        return delivered

    def deliver(self, event: EventOutbox) -> bool:
        attempt_number = event.attempt_count + 1
        PrometheusMetrics.record_outbox_attempt(event.event_type)
        payload = event.payload or {}
        start = monotonic()
        try:
            self.notifier.notify(
                payload.get("booking_id", event.aggregate_id),
                payload.get("new_status", ""),
                payload.get("snapshot", {}),
            )
        except Exception as exc:
            backoff = next_backoff(attempt_number)
            # Only temporary errors earn another attempt
            terminal = attempt_number >= self.max_attempts or not isinstance(
                exc, NotifierTemporaryError
            )
            self.repository.mark_failed(
                event.id,
                attempt_count=attempt_number,
                backoff_seconds=backoff,
                error=str(exc),
                terminal=terminal,
            )
            self.db.commit()
            if terminal:
                PrometheusMetrics.record_outbox_outcome(event.event_type, "failed")
                logger.error(
                    "Outbox event %s failed after %s attempts: %s", event.id, attempt_number, exc
                )
            else:
                logger.warning(
                    "Retrying outbox event %s attempt=%s backoff=%ss: %s",
                    event.id,
                    attempt_number,
                    backoff,
                    exc,
                )
            return False

        self.repository.mark_sent(event.id, attempt_number)
        self.db.commit()
        PrometheusMetrics.record_outbox_outcome(event.event_type, "sent")
        logger.debug(
            "Delivered outbox event %s type=%s in %.3fs",
            event.id,
            event.event_type,
            monotonic() - start,
        )
        return True
