# backend/bookrail/tasks/celery_app.py
"""
Celery application configuration.

Redis is the broker. Tasks are fire-and-forget, so no result backend is set.
"""

from typing import Any

from celery import Celery
from celery.signals import setup_logging

from bookrail.core.config import settings


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Returns:
        Celery: Configured Celery application instance
    """
    celery_app = Celery("bookrail", broker=settings.celery_broker_url)

    celery_app.conf.update(
        {
            "task_serializer": "json",
            "accept_content": ["json"],
            "result_serializer": "json",
            "timezone": "UTC",
            "enable_utc": True,
            "task_ignore_result": True,
            "worker_prefetch_multiplier": 4,
            "worker_max_tasks_per_child": 1000,
            "task_soft_time_limit": 120,
            "task_time_limit": 300,
            "task_acks_late": True,
            "task_reject_on_worker_lost": True,
            "worker_hijack_root_logger": False,
            "worker_redirect_stdouts": True,
            "worker_redirect_stdouts_level": "INFO",
            "broker_transport_options": {"visibility_timeout": 3600},
        }
    )

    # Force import of task modules so tasks are registered
    celery_app.conf.imports = tuple(
        set(celery_app.conf.imports or ()) | {"bookrail.tasks.outbox_tasks"}
    )

    celery_app.conf.task_routes = {
        "outbox.*": {"queue": "notifications"},
        "bookings.*": {"queue": "bookings"},
    }

    from bookrail.tasks.beat_schedule import get_beat_schedule

    celery_app.conf.beat_schedule = get_beat_schedule()

    return celery_app


# Disable Celery's default logging configuration
@setup_logging.connect  # type: ignore[misc]
def config_loggers(*args: Any, **kwargs: Any) -> None:
    """Configure logging to integrate with the application's logging setup."""
    import logging

    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


celery_app = create_celery_app()
