"""
Booking lifecycle state machine.

Single source of truth for which actor may move a booking from which status
to which status. Services consult this table; nothing else writes status.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "PENDING"  # Requested by client, awaiting provider
    CONFIRMED = "CONFIRMED"  # Accepted by provider
    COMPLETED = "COMPLETED"  # Work delivered
    DECLINED = "DECLINED"  # Provider turned it down
    CANCELLED = "CANCELLED"  # Withdrawn by either party


class BookingOperation(str, Enum):
    CREATE = "create"
    ACCEPT = "accept"
    DECLINE = "decline"
    CANCEL = "cancel"
    COMPLETE = "complete"


class ActorRole(str, Enum):
    CLIENT = "client"
    PROVIDER = "provider"
    SYSTEM = "system"  # policy-driven automation, e.g. auto-complete


@dataclass(frozen=True)
class BookingTransition:
    operation: BookingOperation
    actors: FrozenSet[ActorRole]
    allowed_from: FrozenSet[BookingStatus]
    result: BookingStatus


BOOKING_TRANSITIONS: Dict[BookingOperation, BookingTransition] = {
    BookingOperation.CREATE: BookingTransition(
        operation=BookingOperation.CREATE,
        actors=frozenset({ActorRole.CLIENT}),
        allowed_from=frozenset(),
        result=BookingStatus.PENDING,
    ),
    BookingOperation.ACCEPT: BookingTransition(
        operation=BookingOperation.ACCEPT,
        actors=frozenset({ActorRole.PROVIDER}),
        allowed_from=frozenset({BookingStatus.PENDING}),
        result=BookingStatus.CONFIRMED,
    ),
    BookingOperation.DECLINE: BookingTransition(
        operation=BookingOperation.DECLINE,
        actors=frozenset({ActorRole.PROVIDER}),
        allowed_from=frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED}),
        result=BookingStatus.DECLINED,
    ),
    BookingOperation.CANCEL: BookingTransition(
        operation=BookingOperation.CANCEL,
        actors=frozenset({ActorRole.CLIENT, ActorRole.PROVIDER}),
        allowed_from=frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED}),
        result=BookingStatus.CANCELLED,
    ),
    BookingOperation.COMPLETE: BookingTransition(
        operation=BookingOperation.COMPLETE,
        actors=frozenset({ActorRole.PROVIDER, ActorRole.SYSTEM}),
        allowed_from=frozenset({BookingStatus.CONFIRMED}),
        result=BookingStatus.COMPLETED,
    ),
}

TERMINAL_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.DECLINED, BookingStatus.CANCELLED}
)


def transition_for(operation: BookingOperation) -> BookingTransition:
    return BOOKING_TRANSITIONS[operation]


def actor_may_perform(operation: BookingOperation, role: ActorRole) -> bool:
    return role in BOOKING_TRANSITIONS[operation].actors


def can_transition(operation: BookingOperation, current: BookingStatus | str) -> bool:
    """Return True if ``operation`` is legal from ``current``."""
    return BookingStatus(current) in BOOKING_TRANSITIONS[operation].allowed_from


def is_valid_edge(current: BookingStatus | str, target: BookingStatus | str) -> bool:
    """Return True if some operation moves a booking from ``current`` to ``target``."""
    current_status = BookingStatus(current)
    target_status = BookingStatus(target)
    return any(
        current_status in t.allowed_from and t.result == target_status
        for t in BOOKING_TRANSITIONS.values()
    )
