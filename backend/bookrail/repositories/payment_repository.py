# backend/bookrail/repositories/payment_repository.py
"""
Payment repository.

Every settlement write is conditional on the state the caller observed, so
retries and concurrent requests converge on one row per booking and one
reference per leg.
"""

from __future__ import annotations

from decimal import Decimal
import logging
from typing import Any, Iterable, List, Optional

from sqlalchemy import insert, or_, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session, contains_eager
import ulid

from ..core.exceptions import ConcurrentModificationException, RepositoryException
from ..domain.settlement_state_machine import (
    SettlementState,
    is_legal_edge,
    payment_status_for,
)
from ..models.booking import Booking
from ..models.payment import Payment
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class PaymentRepository(BaseRepository[Payment]):
    def __init__(self, db: Session):
        super().__init__(db, Payment)

    def get_by_booking_id(self, booking_id: str) -> Optional[Payment]:
        return (
            self.db.query(Payment)
            .filter(Payment.booking_id == booking_id)
            .populate_existing()
            .first()
        )

    def create_pending(
        self,
        booking_id: str,
        *,
        total_amount: Decimal,
        provider_amount: Decimal,
        platform_fee: Decimal,
        currency: str,
    ) -> Payment:
        """
        Insert the FEE_PENDING row for ``booking_id`` unless one already exists.

        Returns the stored row either way; a concurrent initiator's row wins.
        """
        values = {
            "id": str(ulid.ULID()),
            "booking_id": booking_id,
            "total_amount": total_amount,
            "provider_amount": provider_amount,
            "platform_fee": platform_fee,
            "currency": currency,
            "fee_attempt": 1,
            "transfer_attempts": 0,
            "settlement_state": SettlementState.FEE_PENDING.value,
            "status": payment_status_for(SettlementState.FEE_PENDING).value,
        }

        if self.dialect_name == "postgresql":
            stmt = (
                pg_insert(Payment)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["booking_id"])
            )
        else:
            stmt = insert(Payment).values(**values)
            if self.dialect_name == "sqlite":
                stmt = stmt.prefix_with("OR IGNORE")

        self.db.execute(stmt)
        payment = self.get_by_booking_id(booking_id)
        if payment is None:
            raise RepositoryException(f"Payment for booking {booking_id} not found after insert")
        return payment

    def transition(
        self,
        booking_id: str,
        expected: Iterable[SettlementState],
        new_state: SettlementState,
        **values: Any,
    ) -> Payment:
        """
        Conditionally move the payment from one of ``expected`` to ``new_state``.

        Raises:
            ConcurrentModificationException: The stored state was not in ``expected``
        """
        expected_states = list(expected)
        for state in expected_states:
            if not is_legal_edge(state, new_state):
                raise ValueError(f"Illegal settlement edge {state.value} -> {new_state.value}")

        stmt = (
            update(Payment)
            .where(Payment.booking_id == booking_id)
            .where(Payment.settlement_state.in_([s.value for s in expected_states]))
            .values(
                settlement_state=new_state.value,
                status=payment_status_for(new_state).value,
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount != 1:
            raise ConcurrentModificationException(
                "Payment", booking_id, "|".join(s.value for s in expected_states)
            )

        payment = self.get_by_booking_id(booking_id)
        if payment is None:
            raise RepositoryException(f"Payment for booking {booking_id} vanished after update")
        return payment

    def attach_fee_reference(self, booking_id: str, fee_attempt: int, reference: str) -> Payment:
        """
        Record the fee rail reference for the current attempt.

        Only fills an empty slot (or re-writes the same value), so two
        initiators can never store different charges for one attempt.
        """
        stmt = (
            update(Payment)
            .where(Payment.booking_id == booking_id)
            .where(Payment.settlement_state == SettlementState.FEE_PENDING.value)
            .where(Payment.fee_attempt == fee_attempt)
            .where(
                or_(
                    Payment.fee_rail_reference.is_(None),
                    Payment.fee_rail_reference == reference,
                )
            )
            .values(fee_rail_reference=reference)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount != 1:
            raise ConcurrentModificationException("Payment", booking_id, f"fee attempt {fee_attempt}")

        payment = self.get_by_booking_id(booking_id)
        if payment is None:
            raise RepositoryException(f"Payment for booking {booking_id} vanished after update")
        return payment

    def history_for_user(self, user_id: str, limit: int = 100) -> List[Payment]:
        """Payments on bookings where ``user_id`` is client or provider, newest first."""
        return (
            self.db.query(Payment)
            .join(Booking, Booking.id == Payment.booking_id)
            .options(contains_eager(Payment.booking))
            .filter(or_(Booking.client_id == user_id, Booking.provider_id == user_id))
            .order_by(Payment.created_at.desc(), Payment.id.desc())
            .limit(limit)
            .all()
        )
