# backend/bookrail/services/settlement_service.py
"""
Dual-rail settlement.

One client payment is settled over two independent rails:

- Fee leg: a card charge for the platform fee only (fee rail)
- Transfer leg: an ACH credit of the provider amount (transfer rail)

The Payment row's settlement state decides what each operation may do. No
database transaction is held open across a rail call: every step re-reads
state, calls the rail, then writes its outcome with a conditional update.
Idempotency keys are derived from the booking id (and fee attempt), so any
retry of any step produces at most one real charge and one real transfer.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.exceptions import (
    TRANSFER_PENDING_USER_MESSAGE,
    AlreadyPaidException,
    ForbiddenException,
    InvalidBookingStateException,
    NotFoundException,
    PaymentNotCompletedException,
    PayoutAccountNotVerifiedException,
    RailError,
    RailRejectedException,
    RailTransientException,
    ValidationException,
)
from ..domain.booking_state_machine import BookingStatus
from ..domain.settlement_state_machine import (
    Disposition,
    SettlementOperation,
    SettlementState,
    disposition_for,
    state_of,
)
from ..events.booking_events import PaymentStatusChanged
from ..events.publisher import EventPublisher
from ..integrations.fee_rail import FeeCharge, FeeRail, to_minor_units
from ..integrations.transfer_rail import PayoutAccount, TransferRail
from ..models.booking import Booking
from ..models.payment import Payment
from ..models.provider import ProviderProfile
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .pricing_service import compute_split

logger = logging.getLogger(__name__)

TRANSFER_DESCRIPTION = "Booking payout"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _outcome(exc: RailError) -> str:
    return "transient" if isinstance(exc, RailTransientException) else "rejected"


@dataclass
class SettlementInitiation:
    """Result of initiating settlement: the payment and the charge to authorize."""

    payment: Payment
    fee_rail_reference: str
    client_secret: Optional[str]


@dataclass
class PayoutAccountStatus:
    provider_id: str
    linked: bool
    verified: bool
    account_mask: Optional[str] = None


def _payout_status(profile: ProviderProfile) -> PayoutAccountStatus:
    return PayoutAccountStatus(
        provider_id=profile.user_id,
        linked=bool(profile.payout_access_token and profile.payout_account_id),
        verified=profile.has_verified_payout_account,
        account_mask=profile.payout_account_mask,
    )


class SettlementService(BaseService):
    """Orchestrates the fee leg and the transfer leg for a booking."""

    def __init__(
        self,
        db: Session,
        fee_rail: FeeRail,
        transfer_rail: TransferRail,
        *,
        fee_percent: Optional[Decimal] = None,
        currency: Optional[str] = None,
    ):
        super().__init__(db)
        self.fee_rail = fee_rail
        self.transfer_rail = transfer_rail
        self.fee_percent = fee_percent if fee_percent is not None else settings.platform_fee_percent
        self.currency = currency or settings.currency
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self.provider_repository = RepositoryFactory.create_provider_profile_repository(db)
        self.event_publisher = EventPublisher(RepositoryFactory.create_event_outbox_repository(db))

    # Fee leg

    @BaseService.measure_operation("initiate_settlement")
    def initiate_settlement(self, booking_id: str, requester_id: str) -> SettlementInitiation:
        """
        Start (or resume) the fee leg for a CONFIRMED booking.

        Returns the existing charge when one is still live, so repeated calls
        never create a second charge.

        Raises:
            NotFoundException: Booking missing or requester is not a party
            ForbiddenException: Requester is the provider
            InvalidBookingStateException: Booking is not CONFIRMED
            AlreadyPaidException: Fee leg already collected
            RailRejectedException / RailTransientException: Fee rail failures
        """
        booking = self._load_booking_for_client(booking_id, requester_id)
        if booking.status != BookingStatus.CONFIRMED.value:
            raise InvalidBookingStateException(booking_id, booking.status)

        payment = self.payment_repository.get_by_booking_id(booking_id)
        state = state_of(payment)
        if disposition_for(SettlementOperation.INITIATE, state) == Disposition.REJECT:
            raise AlreadyPaidException(booking_id)

        if payment is not None and state == SettlementState.FEE_PENDING and payment.fee_rail_reference:
            charge = self.fee_rail.get_charge(payment.fee_rail_reference)
            if not charge.canceled:
                logger.info(
                    f"Returning live charge {charge.reference} for booking {booking_id}"
                )
                return SettlementInitiation(payment, charge.reference, charge.client_secret)
            payment = self._record_fee_failure(payment, f"Charge {charge.reference} was canceled")
            state = SettlementState.FEE_FAILED

        payment = self._prepare_fee_attempt(booking, payment, state)

        idempotency_key = payment.fee_idempotency_key
        try:
            charge = self.fee_rail.create_charge(
                amount=payment.platform_fee,
                currency=payment.currency,
                idempotency_key=idempotency_key,
                metadata=self._charge_metadata(booking, payment),
                description=f"Platform fee for booking {booking.id}",
            )
        except RailRejectedException as exc:
            prometheus_metrics.record_settlement_leg("fee", "rejected")
            self._record_fee_failure(payment, exc.message)
            raise
        except RailTransientException:
            # Payment stays FEE_PENDING without a reference; the next call retries with the same key
            prometheus_metrics.record_settlement_leg("fee", "transient")
            raise

        with self.transaction():
            payment = self.payment_repository.attach_fee_reference(
                booking_id, payment.fee_attempt, charge.reference
            )

        prometheus_metrics.record_settlement_leg("fee", "pending")
        logger.info(
            f"Fee charge {charge.reference} created for booking {booking_id} "
            f"(attempt {payment.fee_attempt}, fee {payment.platform_fee})"
        )
        return SettlementInitiation(payment, charge.reference, charge.client_secret)

    @BaseService.measure_operation("confirm_fee_leg")
    def confirm_fee_leg(self, booking_id: str, fee_rail_reference: str, requester_id: str) -> Payment:
        """
        Mark the fee leg collected after checking the charge with the fee rail.

        The charge status is always read from the rail, and the charge must
        carry this booking's id in its metadata.
        """
        self._load_booking_for_client(booking_id, requester_id)

        payment = self.payment_repository.get_by_booking_id(booking_id)
        state = state_of(payment)
        disposition = disposition_for(SettlementOperation.CONFIRM_FEE, state)
        if disposition == Disposition.REJECT:
            message = (
                "Fee payment failed; start a new payment"
                if state == SettlementState.FEE_FAILED
                else "No payment has been initiated for this booking"
            )
            raise PaymentNotCompletedException(
                booking_id, message, details={"settlement_state": state.value}
            )

        assert payment is not None
        if payment.fee_rail_reference and payment.fee_rail_reference != fee_rail_reference:
            raise ValidationException(
                "Payment reference does not match this booking",
                code="PAYMENT_REFERENCE_MISMATCH",
                details={"booking_id": booking_id},
            )
        if disposition == Disposition.REPLAY:
            return payment

        charge = self.fee_rail.get_charge(fee_rail_reference)
        self._verify_charge(charge, payment)

        if charge.canceled:
            self._record_fee_failure(payment, f"Charge {charge.reference} was canceled")
            raise PaymentNotCompletedException(
                booking_id,
                "Fee payment was canceled",
                details={"charge_status": charge.status},
            )
        if not charge.succeeded:
            raise PaymentNotCompletedException(
                booking_id,
                "Payment not completed",
                details={"charge_status": charge.status},
            )

        with self.transaction():
            payment = self.payment_repository.transition(
                booking_id,
                [SettlementState.FEE_PENDING],
                SettlementState.FEE_COMPLETED,
                fee_rail_reference=charge.reference,
                fee_error=None,
                paid_at=_now_utc(),
            )
            self._publish(payment)

        prometheus_metrics.record_settlement_leg("fee", "succeeded")
        logger.info(f"Fee leg completed for booking {booking_id} ({charge.reference})")
        return payment

    # Transfer leg

    @BaseService.measure_operation("settle_provider_leg")
    def settle_provider_leg(self, booking_id: str, requester_id: str) -> Payment:
        """
        Credit the provider amount to the provider's verified bank account.

        Requires the fee leg to be collected. A transfer failure never undoes
        the fee leg; the payment moves to TRANSFER_FAILED and this operation can
        be re-run safely.
        """
        booking = self._load_booking_for_party(booking_id, requester_id)

        payment = self.payment_repository.get_by_booking_id(booking_id)
        state = state_of(payment)
        disposition = disposition_for(SettlementOperation.SETTLE_PROVIDER, state)
        if disposition == Disposition.REJECT:
            raise PaymentNotCompletedException(
                booking_id,
                "Client payment must be completed before the provider is paid",
                details={"settlement_state": state.value},
            )
        assert payment is not None
        if disposition == Disposition.REPLAY:
            return payment

        account = self._payout_account(booking, payment)
        idempotency_key = payment.transfer_idempotency_key
        try:
            authorization_id = self.transfer_rail.authorize_transfer(
                account=account,
                amount=payment.provider_amount,
                idempotency_key=idempotency_key,
            )
            result = self.transfer_rail.execute_transfer(
                account=account,
                authorization_id=authorization_id,
                description=TRANSFER_DESCRIPTION,
                idempotency_key=idempotency_key,
            )
        except RailError as exc:
            prometheus_metrics.record_settlement_leg("transfer", _outcome(exc))
            with self.transaction():
                failed = self.payment_repository.transition(
                    booking_id,
                    [SettlementState.FEE_COMPLETED, SettlementState.TRANSFER_FAILED],
                    SettlementState.TRANSFER_FAILED,
                    transfer_error=exc.message[:1000],
                    transfer_attempts=payment.transfer_attempts + 1,
                )
                self._publish(failed)
            logger.warning(
                f"Transfer leg failed for booking {booking_id} "
                f"(attempt {failed.transfer_attempts}): {exc.message}"
            )
            exc.details.update(
                {
                    "booking_id": booking_id,
                    "settlement_state": SettlementState.TRANSFER_FAILED.value,
                    "user_message": TRANSFER_PENDING_USER_MESSAGE,
                }
            )
            raise

        with self.transaction():
            payment = self.payment_repository.transition(
                booking_id,
                [SettlementState.FEE_COMPLETED, SettlementState.TRANSFER_FAILED],
                SettlementState.FULLY_SETTLED,
                transfer_rail_reference=result.reference,
                transfer_error=None,
                transfer_attempts=payment.transfer_attempts + 1,
                settled_at=_now_utc(),
            )
            self._publish(payment)

        prometheus_metrics.record_settlement_leg("transfer", "succeeded")
        logger.info(
            f"Transfer {result.reference} ({result.status}) sent for booking {booking_id}: "
            f"{payment.provider_amount} to provider {booking.provider_id}"
        )
        return payment

    # Reads

    @BaseService.measure_operation("get_payment_for_booking")
    def get_payment_for_booking(self, booking_id: str, requester_id: str) -> Payment:
        self._load_booking_for_party(booking_id, requester_id)
        payment = self.payment_repository.get_by_booking_id(booking_id)
        if payment is None:
            raise NotFoundException(
                "Payment not found", code="PAYMENT_NOT_FOUND", details={"booking_id": booking_id}
            )
        return payment

    @BaseService.measure_operation("get_payment_history")
    def get_payment_history(self, user_id: str, limit: int = 100) -> List[Payment]:
        return self.payment_repository.history_for_user(user_id, limit=limit)

    @BaseService.measure_operation("get_payout_account_status")
    def get_payout_account_status(self, provider_user_id: str) -> PayoutAccountStatus:
        return _payout_status(self._load_provider(provider_user_id))

    # Payout account linking

    @BaseService.measure_operation("create_payout_link_token")
    def create_payout_link_token(self, provider_user_id: str) -> str:
        """Start the bank-link flow for a provider; returns the transfer rail's link token."""
        self._load_provider(provider_user_id)
        return self.transfer_rail.create_link_token(provider_user_id)

    @BaseService.measure_operation("link_payout_account")
    def link_payout_account(self, provider_user_id: str, public_token: str) -> PayoutAccountStatus:
        """
        Exchange the token returned by the bank-link flow and store the payout account.

        The first depository checking or savings account on the linked item is
        used. Linking again replaces the stored account.

        Raises:
            NotFoundException: Caller has no provider profile
            ValidationException: The linked item has no checking or savings account
            RailRejectedException / RailTransientException: Transfer rail failures
        """
        profile = self._load_provider(provider_user_id)
        item = self.transfer_rail.exchange_public_token(public_token)
        accounts = self.transfer_rail.get_accounts(item.access_token)
        account = next((a for a in accounts if a.is_payout_eligible), None)
        if account is None:
            raise ValidationException(
                "No valid checking or savings account found",
                code="NO_ELIGIBLE_ACCOUNT",
                details={"provider_id": provider_user_id, "accounts": len(accounts)},
            )

        with self.transaction():
            profile = self.provider_repository.link_payout_account(
                profile,
                access_token=item.access_token,
                item_id=item.item_id,
                account_id=account.account_id,
                account_mask=account.mask,
            )

        logger.info(
            f"Payout account {account.subtype} ****{account.mask} linked for provider {provider_user_id}"
        )
        return _payout_status(profile)

    # Internals

    def _load_provider(self, provider_user_id: str) -> ProviderProfile:
        profile = self.provider_repository.get_by_user_id(provider_user_id)
        if profile is None:
            raise NotFoundException(
                "Provider not found", code="PROVIDER_NOT_FOUND", details={"provider_id": provider_user_id}
            )
        return profile

    def _load_booking_for_party(self, booking_id: str, requester_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None or not booking.is_party(requester_id):
            raise NotFoundException(
                "Booking not found", code="BOOKING_NOT_FOUND", details={"booking_id": booking_id}
            )
        return booking

    def _load_booking_for_client(self, booking_id: str, requester_id: str) -> Booking:
        booking = self._load_booking_for_party(booking_id, requester_id)
        if requester_id != booking.client_id:
            raise ForbiddenException(
                "Only the client can pay for this booking",
                code="NOT_BOOKING_CLIENT",
                details={"booking_id": booking_id},
            )
        return booking

    def _prepare_fee_attempt(
        self,
        booking: Booking,
        payment: Optional[Payment],
        state: SettlementState,
    ) -> Payment:
        """Ensure a FEE_PENDING row exists for a fresh (or resumed) fee attempt."""
        if payment is None:
            split = compute_split(booking.price, self.fee_percent)
            with self.transaction():
                payment = self.payment_repository.create_pending(
                    booking.id,
                    total_amount=split.total_amount,
                    provider_amount=split.provider_amount,
                    platform_fee=split.platform_fee,
                    currency=self.currency,
                )
                self._publish(payment)
            return payment

        if state == SettlementState.FEE_FAILED:
            with self.transaction():
                payment = self.payment_repository.transition(
                    booking.id,
                    [SettlementState.FEE_FAILED],
                    SettlementState.FEE_PENDING,
                    fee_attempt=payment.fee_attempt + 1,
                    fee_rail_reference=None,
                )
                self._publish(payment)
            logger.info(f"Starting fee attempt {payment.fee_attempt} for booking {booking.id}")

        # FEE_PENDING with no reference: a previous creation timed out; reuse its key
        return payment

    def _record_fee_failure(self, payment: Payment, reason: str) -> Payment:
        with self.transaction():
            failed = self.payment_repository.transition(
                payment.booking_id,
                [SettlementState.FEE_PENDING],
                SettlementState.FEE_FAILED,
                fee_error=reason[:1000],
            )
            self._publish(failed)
        logger.warning(f"Fee leg failed for booking {payment.booking_id}: {reason}")
        return failed

    def _verify_charge(self, charge: FeeCharge, payment: Payment) -> None:
        if charge.metadata.get("booking_id") != payment.booking_id:
            logger.warning(
                f"Charge {charge.reference} does not belong to booking {payment.booking_id}"
            )
            raise ValidationException(
                "Payment does not belong to this booking",
                code="PAYMENT_REFERENCE_MISMATCH",
                details={"booking_id": payment.booking_id},
            )
        if charge.amount_cents != to_minor_units(payment.platform_fee):
            raise ValidationException(
                "Charged amount does not match the platform fee",
                code="PAYMENT_AMOUNT_MISMATCH",
                details={"booking_id": payment.booking_id},
            )

    def _payout_account(self, booking: Booking, payment: Payment) -> PayoutAccount:
        profile = self.provider_repository.get_by_user_id(booking.provider_id)
        if profile is None or not profile.has_verified_payout_account:
            raise PayoutAccountNotVerifiedException(
                booking.id, booking.provider_id, payment.settlement_state
            )
        return PayoutAccount(
            access_token=profile.payout_access_token,
            account_id=profile.payout_account_id,
            legal_name=profile.legal_name,
        )

    @staticmethod
    def _charge_metadata(booking: Booking, payment: Payment) -> Dict[str, str]:
        return {
            "booking_id": booking.id,
            "client_id": booking.client_id,
            "provider_id": booking.provider_id,
            "provider_amount": str(payment.provider_amount),
            "platform_fee": str(payment.platform_fee),
            "total_amount": str(payment.total_amount),
            "fee_attempt": str(payment.fee_attempt),
        }

    def _publish(self, payment: Payment) -> None:
        self.event_publisher.publish(
            PaymentStatusChanged(
                booking_id=payment.booking_id,
                new_status=payment.status,
                settlement_state=payment.settlement_state,
                fee_attempt=payment.fee_attempt,
                transfer_attempts=payment.transfer_attempts,
                snapshot={**payment.booking.to_dict(), "payment": payment.to_dict()},
            )
        )
