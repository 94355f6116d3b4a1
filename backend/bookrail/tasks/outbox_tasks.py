# backend/bookrail/tasks/outbox_tasks.py
"""
Celery tasks for outbox delivery and booking housekeeping.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from celery.utils.log import get_task_logger
from sqlalchemy.orm import Session

from bookrail.database import SessionLocal
from bookrail.events.dispatcher import OutboxDispatcher
from bookrail.events.notifier import LoggingNotifier
from bookrail.services.booking_service import BookingService
from bookrail.tasks.celery_app import celery_app

logger = get_task_logger(__name__)


@contextmanager
def _session_scope() -> Iterator[Session]:
    """Provide transactional scope for use in tasks."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@celery_app.task(name="outbox.dispatch_pending", max_retries=0, queue="notifications")
def dispatch_pending(limit: int = 200) -> int:
    """
    Deliver pending outbox events.

    Returns the number of events delivered.
    """
    with _session_scope() as session:
        delivered = OutboxDispatcher(session, LoggingNotifier()).dispatch_pending(limit=limit)
        if delivered:
            logger.info("Delivered %s outbox events", delivered)
        return delivered


@celery_app.task(name="bookings.auto_complete", max_retries=0, queue="bookings")
def auto_complete_bookings() -> int:
    """Complete confirmed bookings whose slot ended past the grace period."""
    with _session_scope() as session:
        return BookingService(session).auto_complete_due_bookings()
