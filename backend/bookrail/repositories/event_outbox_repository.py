# backend/bookrail/repositories/event_outbox_repository.py
"""
Repository for the event outbox.

Implements idempotent enqueue, pending fetch with row locking on Postgres,
and delivery status updates used by the outbox dispatcher.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Optional, cast

from sqlalchemy import Select, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session
import ulid

from ..models.event_outbox import EventOutbox, EventOutboxStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class EventOutboxRepository(BaseRepository[EventOutbox]):
    """Data access helpers for event outbox rows."""

    def __init__(self, db: Session):
        super().__init__(db, EventOutbox)

    def enqueue(
        self,
        event_type: str,
        aggregate_id: str,
        payload: Optional[dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> EventOutbox:
        """
        Insert an outbox row unless one already exists for the idempotency key.

        Returns the persisted row (existing or newly created).
        """
        payload = payload or {}
        now = _now_utc()
        key = idempotency_key or f"{event_type}:{aggregate_id}:{int(now.timestamp())}"
        values = {
            "id": str(ulid.ULID()),
            "event_type": event_type,
            "aggregate_id": aggregate_id,
            "payload": payload,
            "idempotency_key": key,
            "status": EventOutboxStatus.PENDING.value,
            "attempt_count": 0,
            "next_attempt_at": now,
        }

        if self.dialect_name == "postgresql":
            stmt = (
                pg_insert(EventOutbox)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["idempotency_key"])
            )
        else:
            stmt = insert(EventOutbox).values(**values)
            if self.dialect_name == "sqlite":
                stmt = stmt.prefix_with("OR IGNORE")

        result = self.db.execute(stmt)
        if not getattr(result, "rowcount", 0):
            logger.debug(f"Outbox event {key} already enqueued")

        row = self.db.execute(
            select(EventOutbox).where(EventOutbox.idempotency_key == key)
        ).scalar_one_or_none()
        if row is None:
            raise RuntimeError("Outbox row not found after enqueue")
        return cast(EventOutbox, row)

    def fetch_pending(self, limit: int = 200) -> list[EventOutbox]:
        """Return pending events eligible for delivery ordered by attempt time."""
        now = _now_utc()
        stmt: Select[Any] = (
            select(EventOutbox)
            .where(EventOutbox.status == EventOutboxStatus.PENDING.value)
            .where(EventOutbox.next_attempt_at <= now)
            .order_by(EventOutbox.next_attempt_at.asc(), EventOutbox.id.asc())
            .limit(limit)
        )
        if self.dialect_name == "postgresql":
            stmt = stmt.with_for_update(skip_locked=True)
        return cast(list[EventOutbox], self.db.execute(stmt).scalars().all())

    def list_for_aggregate(self, aggregate_id: str) -> list[EventOutbox]:
        return cast(
            list[EventOutbox],
            self.db.execute(
                select(EventOutbox)
                .where(EventOutbox.aggregate_id == aggregate_id)
                .order_by(EventOutbox.id.asc())
            )
            .scalars()
            .all(),
        )

    def mark_sent(self, event_id: str, attempt_count: int) -> None:
        now = _now_utc()
        self.db.execute(
            update(EventOutbox)
            .where(EventOutbox.id == event_id)
            .values(
                status=EventOutboxStatus.SENT.value,
                attempt_count=attempt_count,
                last_error=None,
                next_attempt_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        self.db.flush()

    def mark_failed(
        self,
        event_id: str,
        *,
        attempt_count: int,
        backoff_seconds: int,
        error: str | None = None,
        terminal: bool = False,
    ) -> None:
        """Update row after a delivery failure; ``terminal`` stops further attempts."""
        now = _now_utc()
        values: dict[str, Any] = {
            "attempt_count": attempt_count,
            "updated_at": now,
            "last_error": (error[:1000] if error else None),
        }
        if terminal:
            values["status"] = EventOutboxStatus.FAILED.value
            values["next_attempt_at"] = now
        else:
            values["status"] = EventOutboxStatus.PENDING.value
            values["next_attempt_at"] = now + timedelta(seconds=max(backoff_seconds, 1))

        self.db.execute(
            update(EventOutbox)
            .where(EventOutbox.id == event_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.flush()
