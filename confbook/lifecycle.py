"""Booking status lifecycle and the actor rules that guard it.

``pending`` is the only initial state. ``approved`` may still be cancelled;
``rejected`` and ``cancelled`` accept nothing. Permission is checked before
the transition graph, so a regular user asking to approve anything gets
:class:`Forbidden` rather than :class:`InvalidTransition`.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet

from .errors import Forbidden, InvalidTransition, ValidationError
from .models import Booking, BookingStatus, RoleEnum

TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.APPROVED, BookingStatus.REJECTED, BookingStatus.CANCELLED}),
    BookingStatus.APPROVED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.REJECTED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

ADMIN_ONLY_TARGETS = frozenset({BookingStatus.APPROVED, BookingStatus.REJECTED})
REQUESTABLE_TARGETS = frozenset({BookingStatus.APPROVED, BookingStatus.REJECTED, BookingStatus.CANCELLED})
# statuses that hold a slot on the room's calendar
ACTIVE_STATUSES = (BookingStatus.PENDING, BookingStatus.APPROVED)
OWNER_RESCHEDULABLE = frozenset(ACTIVE_STATUSES)


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as supplied by the auth layer."""

    id: int
    role: RoleEnum

    @property
    def is_admin(self) -> bool:
        return self.role == RoleEnum.ADMIN

    def owns(self, booking: Booking) -> bool:
        return booking.user_id == self.id


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def parse_target_status(value: str) -> BookingStatus:
    try:
        target = BookingStatus(value)
    except ValueError:
        target = None
    if target not in REQUESTABLE_TARGETS:
        allowed = ", ".join(sorted(status.value for status in REQUESTABLE_TARGETS))
        raise ValidationError([f"Status must be one of: {allowed}"])
    return target


def authorize_status_change(booking: Booking, target: BookingStatus, actor: Actor) -> None:
    if target in ADMIN_ONLY_TARGETS and not actor.is_admin:
        raise Forbidden(f"Only admins can mark a booking as {target.value}")
    if target == BookingStatus.CANCELLED and not (actor.is_admin or actor.owns(booking)):
        raise Forbidden("Only the requester or an admin can cancel this booking")
    if not can_transition(booking.status, target):
        raise InvalidTransition(booking.status.value, target.value)


def authorize_reschedule(booking: Booking, actor: Actor) -> None:
    if not (actor.is_admin or actor.owns(booking)):
        raise Forbidden("Only the requester or an admin can modify this booking")
    if booking.status == BookingStatus.CANCELLED:
        raise InvalidTransition(
            booking.status.value,
            booking.status.value,
            detail="Cancelled bookings cannot be rescheduled",
        )
    if not actor.is_admin and booking.status not in OWNER_RESCHEDULABLE:
        raise Forbidden(f"A {booking.status.value} booking can only be rescheduled by an admin")


def authorize_delete(booking: Booking, actor: Actor) -> None:
    if not (actor.is_admin or actor.owns(booking)):
        raise Forbidden("Only the requester or an admin can delete this booking")
