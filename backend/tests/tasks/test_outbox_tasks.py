"""Tests for the Celery task entry points, executed eagerly in-process."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from bookrail.models.event_outbox import EventOutbox, EventOutboxStatus
from bookrail.tasks import outbox_tasks


def test_dispatch_pending_delivers_committed_events(db, session_factory, pending_booking):
    with patch.object(outbox_tasks, "SessionLocal", session_factory):
        delivered = outbox_tasks.dispatch_pending()

    assert delivered == 1
    row = db.query(EventOutbox).one()
    db.refresh(row)
    assert row.status == EventOutboxStatus.SENT.value


def test_auto_complete_task_uses_configured_grace(
    db, session_factory, booking_service, confirmed_booking, monkeypatch
):
    from bookrail.core.config import settings

    monkeypatch.setattr(settings, "auto_complete_grace_hours", 0)
    later = datetime.now(timezone.utc) + timedelta(days=10)

    with patch.object(outbox_tasks, "SessionLocal", session_factory), patch(
        "bookrail.services.booking_service._now_utc", return_value=later
    ):
        completed = outbox_tasks.auto_complete_bookings()

    assert completed == 1
    assert booking_service.get_booking(confirmed_booking.id, confirmed_booking.provider_id).status == "COMPLETED"


def test_task_names():
    assert outbox_tasks.dispatch_pending.name == "outbox.dispatch_pending"
    assert outbox_tasks.auto_complete_bookings.name == "bookings.auto_complete"
