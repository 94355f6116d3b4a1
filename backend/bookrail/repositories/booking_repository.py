# backend/bookrail/repositories/booking_repository.py
"""
Booking repository.

Status changes go through :meth:`BookingRepository.compare_and_set_status`,
a conditional UPDATE guarded by the status the caller read. Two concurrent
writers on the same booking can never both succeed.
"""

from datetime import date
import logging
from typing import Any, List, Optional

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import ConcurrentModificationException, RepositoryException
from ..domain.booking_state_machine import BookingStatus
from ..models.booking import Booking
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def get_by_id(self, id: str) -> Optional[Booking]:
        """Load a booking, overwriting any stale copy held by the session."""
        try:
            return (
                self.db.query(Booking)
                .filter(Booking.id == id)
                .populate_existing()
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting booking {id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve booking: {str(e)}")

    def compare_and_set_status(
        self,
        booking_id: str,
        expected: BookingStatus,
        new_status: BookingStatus,
        **values: Any,
    ) -> Booking:
        """
        Move a booking from ``expected`` to ``new_status`` atomically.

        Raises:
            ConcurrentModificationException: The stored status was no longer ``expected``
        """
        stmt = (
            update(Booking)
            .where(Booking.id == booking_id)
            .where(Booking.status == expected.value)
            .values(status=new_status.value, **values)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount != 1:
            logger.info(
                f"Booking {booking_id} status write lost race (expected {expected.value})"
            )
            raise ConcurrentModificationException("Booking", booking_id, expected.value)

        booking = self.get_by_id(booking_id)
        if booking is None:
            raise RepositoryException(f"Booking {booking_id} vanished after status update")
        return booking

    def list_for_user(
        self,
        user_id: str,
        role: Optional[str] = None,
        status: Optional[BookingStatus] = None,
    ) -> List[Booking]:
        """
        Bookings where ``user_id`` is a party, newest scheduled first.

        Args:
            user_id: Client or provider user id
            role: "client" or "provider" to restrict which side is matched
            status: Optional status filter
        """
        query = self.db.query(Booking)
        if role == "client":
            query = query.filter(Booking.client_id == user_id)
        elif role == "provider":
            query = query.filter(Booking.provider_id == user_id)
        else:
            query = query.filter(or_(Booking.client_id == user_id, Booking.provider_id == user_id))

        if status is not None:
            query = query.filter(Booking.status == status.value)

        return query.order_by(
            Booking.scheduled_date.desc(), Booking.scheduled_time.desc(), Booking.id.desc()
        ).all()

    def get_confirmed_on_or_before(self, cutoff: date, limit: int = 500) -> List[Booking]:
        """CONFIRMED bookings scheduled on or before ``cutoff`` (auto-complete candidates)."""
        return (
            self.db.query(Booking)
            .filter(Booking.status == BookingStatus.CONFIRMED.value)
            .filter(Booking.scheduled_date <= cutoff)
            .order_by(Booking.scheduled_date.asc(), Booking.id.asc())
            .limit(limit)
            .all()
        )
