from __future__ import annotations

from typing import Literal

from hotel_ops.errors import AppError


ReservationStatus = Literal[
    "Pending",
    "Confirmed",
    "Checked In",
    "Checked Out",
    "Cancelled",
]

PENDING = "Pending"
CONFIRMED = "Confirmed"
CHECKED_IN = "Checked In"
CHECKED_OUT = "Checked Out"
CANCELLED = "Cancelled"

RESERVATION_STATUSES = [PENDING, CONFIRMED, CHECKED_IN, CHECKED_OUT, CANCELLED]
TERMINAL_STATUSES = {CHECKED_OUT, CANCELLED}


_ALLOWED_TRANSITIONS = {
    PENDING: {CONFIRMED, CANCELLED},
    CONFIRMED: {CHECKED_IN, CANCELLED},
    CHECKED_IN: {CHECKED_OUT, CANCELLED},
    CHECKED_OUT: set(),
    CANCELLED: set(),
}


class ReservationStateTransitionError(AppError):
    """Raised when an invalid reservation status transition is requested."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(
            409,
            "invalid_status_transition",
            f"Invalid reservation status transition: {current} -> {target}",
            {"current": current, "target": target},
        )
        self.current = current
        self.target = target


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def validate_transition(current: str, target: str) -> None:
    """Validate that a transition from current -> target is allowed.

    Raises ReservationStateTransitionError if not allowed.
    """

    allowed = _ALLOWED_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise ReservationStateTransitionError(current=current, target=target)
