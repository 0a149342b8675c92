# tests/unit/test_state_machine.py

import pytest

from src.domain.state_machine import BookingStateMachine, BookingStatus
from src.domain.exceptions import InvalidStateTransitionError


# ---------------------
# VALID TRANSITIONS
# ---------------------

def test_pending_can_be_confirmed():
    assert BookingStateMachine.can_transition(
        BookingStatus.PENDING,
        BookingStatus.CONFIRMED,
    )


def test_pending_can_be_cancelled():
    assert BookingStateMachine.can_transition(
        BookingStatus.PENDING,
        BookingStatus.CANCELLED,
    )


def test_allowed_transitions_from_pending():
    assert BookingStateMachine.get_allowed_transitions(BookingStatus.PENDING) == {
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED,
    }


# ---------------------
# INVALID TRANSITIONS
# ---------------------

def test_terminal_state_confirmed():
    assert BookingStateMachine.is_terminal(BookingStatus.CONFIRMED)

    with pytest.raises(InvalidStateTransitionError):
        BookingStateMachine.validate_transition(
            BookingStatus.CONFIRMED,
            BookingStatus.CANCELLED,
        )


def test_terminal_state_cancelled():
    assert BookingStateMachine.is_terminal(BookingStatus.CANCELLED)

    with pytest.raises(InvalidStateTransitionError):
        BookingStateMachine.validate_transition(
            BookingStatus.CANCELLED,
            BookingStatus.CONFIRMED,
        )


def test_cannot_return_to_pending():
    with pytest.raises(InvalidStateTransitionError):
        BookingStateMachine.validate_transition(
            BookingStatus.CONFIRMED,
            BookingStatus.PENDING,
        )


def test_pending_is_not_terminal():
    assert not BookingStateMachine.is_terminal(BookingStatus.PENDING)


def test_invalid_type_guard():
    with pytest.raises(TypeError):
        BookingStateMachine.validate_transition(
            "pending",  # invalid type
            BookingStatus.CONFIRMED,
        )
