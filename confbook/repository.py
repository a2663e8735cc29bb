"""SQLAlchemy-backed persistence for rooms and bookings."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import NotFound, StoreError
from .intervals import TimeInterval, overlap_clause
from .models import Booking, BookingStatus, Room

logger = logging.getLogger(__name__)


class BookingRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get_room(self, room_id: int) -> Optional[Room]:
        return self.session.get(Room, room_id)

    def get_booking(self, booking_id: int) -> Optional[Booking]:
        return self.session.get(Booking, booking_id)

    def find_bookings(
        self,
        room_id: int,
        statuses: Sequence[BookingStatus],
        interval: Optional[TimeInterval] = None,
        exclude_booking_id: Optional[int] = None,
    ) -> List[Booking]:
        stmt = select(Booking).where(Booking.room_id == room_id, Booking.status.in_(statuses))
        if interval is not None:
            stmt = stmt.where(overlap_clause(Booking.start_time, Booking.end_time, interval))
        if exclude_booking_id is not None:
            stmt = stmt.where(Booking.id != exclude_booking_id)
        return list(self.session.scalars(stmt.order_by(Booking.start_time)))

    def lock_room(self, room_id: int) -> None:
        """Take the room's write lock for the rest of the current transaction.

        Must be the first statement of the transaction so that, on SQLite, the
        connection waits for the lock instead of failing on an upgrade.
        """
        result = self.session.execute(
            update(Room)
            .where(Room.id == room_id)
            .values(lock_version=Room.lock_version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFound("Room not found")

    def add(self, booking: Booking) -> None:
        self.session.add(booking)

    def delete(self, booking: Booking) -> None:
        self.session.delete(booking)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Commit on success; roll back on any error, wrapping database failures."""
        try:
            yield
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("Booking store failure: %s", exc)
            raise StoreError("Booking store unavailable") from exc
        except Exception:
            self.session.rollback()
            raise
