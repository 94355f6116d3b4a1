"""Tests for the booking lifecycle table."""

import pytest

from bookrail.domain.booking_state_machine import (
    BOOKING_TRANSITIONS,
    TERMINAL_STATUSES,
    ActorRole,
    BookingOperation,
    BookingStatus,
    actor_may_perform,
    can_transition,
    is_valid_edge,
)


class TestTransitionTable:
    @pytest.mark.parametrize(
        "operation,current,expected",
        [
            (BookingOperation.ACCEPT, BookingStatus.PENDING, True),
            (BookingOperation.ACCEPT, BookingStatus.CONFIRMED, False),
            (BookingOperation.DECLINE, BookingStatus.PENDING, True),
            (BookingOperation.DECLINE, BookingStatus.CONFIRMED, True),
            (BookingOperation.CANCEL, BookingStatus.CONFIRMED, True),
            (BookingOperation.COMPLETE, BookingStatus.CONFIRMED, True),
            (BookingOperation.COMPLETE, BookingStatus.PENDING, False),
        ],
    )
    def test_can_transition(self, operation, current, expected):
        assert can_transition(operation, current) is expected

    @pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
    def test_terminal_statuses_have_no_outgoing_operations(self, status):
        for operation in BookingOperation:
            assert not can_transition(operation, status)

    def test_accepts_plain_strings(self):
        assert can_transition(BookingOperation.ACCEPT, "PENDING")

    def test_actor_roles(self):
        assert actor_may_perform(BookingOperation.ACCEPT, ActorRole.PROVIDER)
        assert not actor_may_perform(BookingOperation.ACCEPT, ActorRole.CLIENT)
        assert actor_may_perform(BookingOperation.CANCEL, ActorRole.CLIENT)
        assert actor_may_perform(BookingOperation.CANCEL, ActorRole.PROVIDER)
        assert actor_may_perform(BookingOperation.COMPLETE, ActorRole.SYSTEM)
        assert not actor_may_perform(BookingOperation.COMPLETE, ActorRole.CLIENT)

    def test_create_yields_pending(self):
        assert BOOKING_TRANSITIONS[BookingOperation.CREATE].result == BookingStatus.PENDING

    def test_valid_edges(self):
        assert is_valid_edge(BookingStatus.PENDING, BookingStatus.CONFIRMED)
        assert is_valid_edge(BookingStatus.CONFIRMED, BookingStatus.COMPLETED)
        assert not is_valid_edge(BookingStatus.PENDING, BookingStatus.COMPLETED)
        assert not is_valid_edge(BookingStatus.CANCELLED, BookingStatus.CONFIRMED)
