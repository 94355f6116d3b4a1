"""
Celery Beat schedule.

Outbox dispatch runs continuously; auto-complete only when a grace period is
configured.
"""

from datetime import timedelta
from typing import Any, Dict

from celery.schedules import crontab

from bookrail.core.config import settings


def get_beat_schedule() -> Dict[str, Dict[str, Any]]:
    schedule: Dict[str, Dict[str, Any]] = {
        "dispatch-outbox-events": {
            "task": "outbox.dispatch_pending",
            "schedule": timedelta(seconds=settings.outbox_dispatch_interval_seconds),
            "options": {"queue": "notifications"},
        },
    }
    if settings.auto_complete_grace_hours is not None:
        schedule["auto-complete-bookings"] = {
            "task": "bookings.auto_complete",
            "schedule": crontab(minute="*/15"),
            "options": {"queue": "bookings"},
        }
    return schedule
