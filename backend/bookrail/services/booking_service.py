# backend/bookrail/services/booking_service.py
"""
Booking lifecycle service.

Creates bookings and drives them through the lifecycle table in
``domain.booking_state_machine``. Every transition:

1. Loads the booking and checks the actor is a party to it
2. Checks the actor's role and the current status against the table
3. Writes the new status with a compare-and-set on the status it read
4. Queues a notification in the same transaction
"""

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    ConcurrentModificationException,
    ForbiddenException,
    InvalidTransitionException,
    NotFoundException,
    ValidationException,
)
from ..domain.booking_state_machine import (
    ActorRole,
    BookingOperation,
    BookingStatus,
    actor_may_perform,
    can_transition,
    transition_for,
)
from ..events.booking_events import BookingStatusChanged
from ..events.publisher import EventPublisher
from ..models.booking import Booking
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..schemas.booking import BookingCreate
from .base import BaseService

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class BookingService(BaseService):
    """Service layer for booking lifecycle operations."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.provider_repository = RepositoryFactory.create_provider_profile_repository(db)
        self.service_repository = RepositoryFactory.create_service_repository(db)
        self.event_publisher = EventPublisher(RepositoryFactory.create_event_outbox_repository(db))

    @BaseService.measure_operation("create_booking")
    def create_booking(self, client_id: str, booking_data: BookingCreate) -> Booking:
        """
        Create a PENDING booking for ``client_id``.

        Raises:
            ValidationException: Client tried to book their own service
            NotFoundException: Provider missing or inactive, or the service is
                not an active service of that provider
        """
        if client_id == booking_data.provider_id:
            raise ValidationException("You cannot book your own service", code="SELF_BOOKING")

        provider = self.provider_repository.get_by_user_id(booking_data.provider_id)
        if provider is None or not provider.is_active:
            raise NotFoundException(
                "Provider not found or inactive",
                code="PROVIDER_NOT_FOUND",
                details={"provider_id": booking_data.provider_id},
            )

        service = self.service_repository.get_active_for_provider(booking_data.service_id, provider.id)
        if service is None:
            raise NotFoundException(
                "Service not found for this provider",
                code="SERVICE_NOT_FOUND",
                details={"service_id": booking_data.service_id},
            )

        with self.transaction():
            booking = self.booking_repository.create(
                client_id=client_id,
                provider_id=booking_data.provider_id,
                service_id=service.id,
                service_name=service.name,
                price=service.price,
                scheduled_date=booking_data.scheduled_date,
                scheduled_time=booking_data.scheduled_time,
                notes=booking_data.notes,
                location=booking_data.location.model_dump() if booking_data.location else None,
                status=transition_for(BookingOperation.CREATE).result.value,
            )
            self._publish(booking, BookingOperation.CREATE, client_id)

        prometheus_metrics.record_booking_transition(
            BookingOperation.CREATE.value, BookingStatus.PENDING.value
        )
        logger.info(
            f"Booking {booking.id} created by client {client_id} "
            f"for service {service.id} at {booking.price}"
        )
        return booking

    @BaseService.measure_operation("accept_booking")
    def accept_booking(self, booking_id: str, actor_id: str) -> Booking:
        return self._transition(
            BookingOperation.ACCEPT, booking_id, actor_id, confirmed_at=_now_utc()
        )

    @BaseService.measure_operation("decline_booking")
    def decline_booking(self, booking_id: str, actor_id: str) -> Booking:
        return self._transition(
            BookingOperation.DECLINE, booking_id, actor_id, declined_at=_now_utc()
        )

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(self, booking_id: str, actor_id: str) -> Booking:
        return self._transition(
            BookingOperation.CANCEL,
            booking_id,
            actor_id,
            cancelled_at=_now_utc(),
            cancelled_by_id=actor_id,
        )

    @BaseService.measure_operation("complete_booking")
    def complete_booking(self, booking_id: str, actor_id: str) -> Booking:
        """Mark work delivered. Does not depend on the booking's payment state."""
        return self._transition(
            BookingOperation.COMPLETE, booking_id, actor_id, completed_at=_now_utc()
        )

    @BaseService.measure_operation("auto_complete_bookings")
    def auto_complete_due_bookings(
        self,
        now: Optional[datetime] = None,
        grace_hours: Optional[int] = None,
    ) -> int:
        """
        Complete CONFIRMED bookings whose slot ended more than ``grace_hours`` ago.

        Scheduled date and time are interpreted as UTC. Returns the number of
        bookings completed. Bookings that change concurrently are skipped and
        picked up on the next run if still eligible.
        """
        grace = grace_hours if grace_hours is not None else settings.auto_complete_grace_hours
        if grace is None:
            return 0
        now = now or _now_utc()
        cutoff = now - timedelta(hours=grace)

        completed = 0
        for booking in self.booking_repository.get_confirmed_on_or_before(cutoff.date()):
            if self._scheduled_at(booking) > cutoff:
                continue
            try:
                self._apply(
                    booking,
                    BookingOperation.COMPLETE,
                    actor_id=None,
                    completed_at=now,
                )
                completed += 1
            except ConcurrentModificationException:
                logger.info(f"Skipping auto-complete for booking {booking.id}: changed concurrently")
        if completed:
            logger.info(f"Auto-completed {completed} bookings")
        return completed

    @BaseService.measure_operation("get_booking")
    def get_booking(self, booking_id: str, actor_id: str) -> Booking:
        """Return the booking if ``actor_id`` is one of its parties."""
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None or not booking.is_party(actor_id):
            raise self._not_found(booking_id)
        return booking

    @BaseService.measure_operation("list_user_bookings")
    def list_user_bookings(
        self,
        user_id: str,
        role: Optional[str] = None,
        status: Optional[BookingStatus] = None,
    ) -> List[Booking]:
        if role not in (None, ActorRole.CLIENT.value, ActorRole.PROVIDER.value):
            raise ValidationException(f"Unknown role filter: {role}", code="INVALID_ROLE")
        return self.booking_repository.list_for_user(user_id, role=role, status=status)

    # Internals

    def _transition(
        self,
        operation: BookingOperation,
        booking_id: str,
        actor_id: str,
        **values: Any,
    ) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None or not booking.is_party(actor_id):
            # Non-parties cannot learn whether the booking exists
            raise self._not_found(booking_id)

        role = ActorRole.CLIENT if actor_id == booking.client_id else ActorRole.PROVIDER
        if not actor_may_perform(operation, role):
            raise ForbiddenException(
                f"Only the {self._allowed_roles(operation)} can {operation.value} this booking",
                code="ACTOR_NOT_ALLOWED",
                details={"booking_id": booking_id, "operation": operation.value},
            )

        return self._apply(booking, operation, actor_id=actor_id, **values)

    def _apply(
        self,
        booking: Booking,
        operation: BookingOperation,
        *,
        actor_id: Optional[str],
        **values: Any,
    ) -> Booking:
        transition = transition_for(operation)
        current = BookingStatus(booking.status)
        if not can_transition(operation, current):
            raise InvalidTransitionException(
                operation.value,
                current.value,
                sorted(status.value for status in transition.allowed_from),
            )

        with self.transaction():
            updated = self.booking_repository.compare_and_set_status(
                booking.id, current, transition.result, **values
            )
            self._publish(updated, operation, actor_id)

        prometheus_metrics.record_booking_transition(operation.value, transition.result.value)
        logger.info(
            f"Booking {updated.id} {current.value} -> {transition.result.value} "
            f"({operation.value} by {actor_id or 'system'})"
        )
        return updated

    def _publish(self, booking: Booking, operation: BookingOperation, actor_id: Optional[str]) -> None:
        self.event_publisher.publish(
            BookingStatusChanged(
                booking_id=booking.id,
                new_status=booking.status,
                operation=operation.value,
                actor_id=actor_id,
                snapshot=booking.to_dict(),
            )
        )

    @staticmethod
    def _scheduled_at(booking: Booking) -> datetime:
        hour, minute = (int(part) for part in booking.scheduled_time.split(":"))
        return datetime(
            booking.scheduled_date.year,
            booking.scheduled_date.month,
            booking.scheduled_date.day,
            hour,
            minute,
            tzinfo=timezone.utc,
        )

    @staticmethod
    def _allowed_roles(operation: BookingOperation) -> str:
        roles = sorted(
            role.value for role in transition_for(operation).actors if role != ActorRole.SYSTEM
        )
        return " or ".join(roles)

    @staticmethod
    def _not_found(booking_id: str) -> NotFoundException:
        details: Dict[str, Any] = {"booking_id": booking_id}
        return NotFoundException("Booking not found", code="BOOKING_NOT_FOUND", details=details)
