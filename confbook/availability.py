"""Decides whether a room is free for a proposed interval."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from .errors import Conflict
from .intervals import TimeInterval, overlaps
from .lifecycle import ACTIVE_STATUSES
from .models import Booking
from .repository import BookingRepository

logger = logging.getLogger(__name__)


class AvailabilityChecker:
    """Read-only view over a room's pending and approved bookings.

    Only trustworthy up to the commit that follows it; callers that write
    must hold the room lock (:meth:`BookingRepository.lock_room`) first.
    """

    def __init__(self, repository: BookingRepository) -> None:
        self.repository = repository

    def find_conflicts(
        self,
        room_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[int] = None,
    ) -> List[Booking]:
        wanted = TimeInterval(start, end)
        candidates = self.repository.find_bookings(
            room_id, ACTIVE_STATUSES, interval=wanted, exclude_booking_id=exclude_booking_id
        )
        return [booking for booking in candidates if overlaps(booking.interval, wanted)]

    def is_available(
        self,
        room_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[int] = None,
    ) -> bool:
        return not self.find_conflicts(room_id, start, end, exclude_booking_id)

    def ensure_available(
        self,
        room_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[int] = None,
    ) -> None:
        conflicts = self.find_conflicts(room_id, start, end, exclude_booking_id)
        if conflicts:
            clash = conflicts[0]
            logger.info(
                "Room %s busy for %s - %s (conflicts with booking %s)", room_id, start, end, clash.id
            )
            raise Conflict("Room already booked for that slot", conflicting_booking_id=clash.id)
