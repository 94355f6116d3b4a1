"""
Settlement state machine.

A Payment row moves through explicit settlement states rather than a mix of
nullable columns. This module decides, for every settlement operation, what
each state allows, and which persisted payment status a state maps to.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple


class SettlementState(str, Enum):
    NOT_STARTED = "NOT_STARTED"  # no Payment row yet
    FEE_PENDING = "FEE_PENDING"
    FEE_COMPLETED = "FEE_COMPLETED"
    FULLY_SETTLED = "FULLY_SETTLED"
    FEE_FAILED = "FEE_FAILED"
    TRANSFER_FAILED = "TRANSFER_FAILED"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class SettlementOperation(str, Enum):
    INITIATE = "initiate"
    CONFIRM_FEE = "confirm_fee"
    SETTLE_PROVIDER = "settle_provider"


class Disposition(str, Enum):
    PROCEED = "proceed"  # run the operation
    REPLAY = "replay"  # already done; return the recorded outcome
    REJECT = "reject"  # not legal from this state


_S = SettlementState
_D = Disposition

SETTLEMENT_RULES: Dict[SettlementOperation, Dict[SettlementState, Disposition]] = {
    SettlementOperation.INITIATE: {
        _S.NOT_STARTED: _D.PROCEED,
        _S.FEE_PENDING: _D.PROCEED,
        _S.FEE_FAILED: _D.PROCEED,
        _S.FEE_COMPLETED: _D.REJECT,
        _S.TRANSFER_FAILED: _D.REJECT,
        _S.FULLY_SETTLED: _D.REJECT,
    },
    SettlementOperation.CONFIRM_FEE: {
        _S.NOT_STARTED: _D.REJECT,
        _S.FEE_PENDING: _D.PROCEED,
        _S.FEE_FAILED: _D.REJECT,
        _S.FEE_COMPLETED: _D.REPLAY,
        _S.TRANSFER_FAILED: _D.REPLAY,
        _S.FULLY_SETTLED: _D.REPLAY,
    },
    SettlementOperation.SETTLE_PROVIDER: {
        _S.NOT_STARTED: _D.REJECT,
        _S.FEE_PENDING: _D.REJECT,
        _S.FEE_FAILED: _D.REJECT,
        _S.FEE_COMPLETED: _D.PROCEED,
        _S.TRANSFER_FAILED: _D.PROCEED,
        _S.FULLY_SETTLED: _D.REPLAY,
    },
}

# Legal edges for conditional writes. Self-edges record a new reference or error
# without changing state.
SETTLEMENT_EDGES: FrozenSet[Tuple[SettlementState, SettlementState]] = frozenset(
    {
        (_S.NOT_STARTED, _S.FEE_PENDING),
        (_S.FEE_PENDING, _S.FEE_PENDING),
        (_S.FEE_PENDING, _S.FEE_COMPLETED),
        (_S.FEE_PENDING, _S.FEE_FAILED),
        (_S.FEE_FAILED, _S.FEE_PENDING),
        (_S.FEE_COMPLETED, _S.FULLY_SETTLED),
        (_S.FEE_COMPLETED, _S.TRANSFER_FAILED),
        (_S.TRANSFER_FAILED, _S.TRANSFER_FAILED),
        (_S.TRANSFER_FAILED, _S.FULLY_SETTLED),
    }
)

PAYMENT_STATUS_BY_STATE: Dict[SettlementState, PaymentStatus] = {
    _S.FEE_PENDING: PaymentStatus.PENDING,
    _S.FEE_FAILED: PaymentStatus.FAILED,
    _S.FEE_COMPLETED: PaymentStatus.COMPLETED,
    _S.TRANSFER_FAILED: PaymentStatus.COMPLETED,
    _S.FULLY_SETTLED: PaymentStatus.COMPLETED,
}

# Plain-language summary shown to clients and providers.
DISPLAY_SUMMARY: Dict[SettlementState, str] = {
    _S.NOT_STARTED: "No payment yet",
    _S.FEE_PENDING: "Awaiting payment",
    _S.FEE_FAILED: "Payment failed",
    _S.FEE_COMPLETED: "Fee charged, provider payment pending",
    _S.TRANSFER_FAILED: "Fee charged, provider payment pending",
    _S.FULLY_SETTLED: "Paid",
}


def state_of(payment: Optional[Any]) -> SettlementState:
    """Return the settlement state of a Payment row (or NOT_STARTED for None)."""
    if payment is None:
        return SettlementState.NOT_STARTED
    return SettlementState(payment.settlement_state)


def disposition_for(operation: SettlementOperation, state: SettlementState) -> Disposition:
    return SETTLEMENT_RULES[operation][state]


def is_legal_edge(current: SettlementState, target: SettlementState) -> bool:
    return (current, target) in SETTLEMENT_EDGES


def payment_status_for(state: SettlementState) -> PaymentStatus:
    """Map a persisted settlement state onto the coarse payment status."""
    if state == SettlementState.NOT_STARTED:
        raise ValueError("NOT_STARTED has no persisted payment status")
    return PAYMENT_STATUS_BY_STATE[state]
