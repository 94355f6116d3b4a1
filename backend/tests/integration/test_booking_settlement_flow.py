"""End-to-end booking and settlement flow through the service layer and outbox."""

from decimal import Decimal

import pytest

from bookrail.core.exceptions import RailTransientException
from bookrail.domain.settlement_state_machine import SettlementState
from bookrail.events.dispatcher import OutboxDispatcher
from bookrail.events.notifier import RecordingNotifier
from bookrail.integrations.fee_rail import FeeChargeStatus

pytestmark = pytest.mark.integration


def test_booking_is_settled_over_both_rails_and_every_change_is_notified(
    db,
    booking_service,
    settlement_service,
    fee_rail,
    transfer_rail,
    client_id,
    provider_id,
    booking_request,
):
    booking = booking_service.create_booking(client_id, booking_request())
    booking_service.accept_booking(booking.id, provider_id)

    initiation = settlement_service.initiate_settlement(booking.id, client_id)
    # Client completes card authentication for the fee
    fee_rail.set_status(initiation.fee_rail_reference, FeeChargeStatus.SUCCEEDED)
    settlement_service.confirm_fee_leg(booking.id, initiation.fee_rail_reference, client_id)

    transfer_rail.fail_next(RailTransientException("Plaid down", rail="transfer"))
    with pytest.raises(RailTransientException):
        settlement_service.settle_provider_leg(booking.id, provider_id)
    payment = settlement_service.settle_provider_leg(booking.id, provider_id)

    booking_service.complete_booking(booking.id, provider_id)

    assert payment.settlement_state == SettlementState.FULLY_SETTLED.value
    assert fee_rail.charges[initiation.fee_rail_reference].amount_cents == 1200
    assert transfer_rail.amounts[payment.transfer_rail_reference] == Decimal("120.00")
    assert fee_rail.distinct_charges == 1
    assert transfer_rail.distinct_transfers == 1

    notifier = RecordingNotifier()
    OutboxDispatcher(db, notifier).dispatch_pending()

    booking_statuses = {status for _, status, snapshot in notifier.calls if "payment" not in snapshot}
    payment_states = {
        snapshot["payment"]["settlement_state"] for _, _, snapshot in notifier.calls if "payment" in snapshot
    }
    assert booking_statuses == {"PENDING", "CONFIRMED", "COMPLETED"}
    assert payment_states == {"FEE_PENDING", "FEE_COMPLETED", "TRANSFER_FAILED", "FULLY_SETTLED"}
    assert all(booking_id == booking.id for booking_id, _, _ in notifier.calls)
