"""Booking command handlers.

Each handler follows the same order: validate input, authorize the actor,
check availability when the interval changes, commit one write, then hand
notifications and audit records to the dispatcher. Interval-changing and
status-changing commands take the room lock as the first statement of their
transaction, so the availability read and the write cannot interleave with
another command on the same room.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict

from sqlalchemy.orm import Session

from . import activity
from .activity import ActivityRecorder
from .availability import AvailabilityChecker
from .errors import NotFound, ValidationError
from .lifecycle import (
    Actor,
    authorize_delete,
    authorize_reschedule,
    authorize_status_change,
    parse_target_status,
)
from .models import Booking, BookingStatus
from .notifications import BookingSnapshot, Notifier
from .repository import BookingRepository
from .schemas import BookingCreate, BookingStatusUpdate, BookingUpdate
from .validators import (
    ensure_valid,
    sanitize_input,
    validate_booking,
    validate_booking_update,
    validate_reschedule,
)

logger = logging.getLogger(__name__)


class BookingCommands:
    def __init__(
        self,
        session: Session,
        notifier: Notifier,
        recorder: ActivityRecorder,
        dispatcher: Any,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.repository = BookingRepository(session)
        self.availability = AvailabilityChecker(self.repository)
        self.notifier = notifier
        self.recorder = recorder
        self.dispatcher = dispatcher
        self.clock = clock

    def create(self, request: BookingCreate, actor: Actor) -> Booking:
        now = self.clock()
        ensure_valid(validate_booking(request.room_id, request.start_time, request.end_time, request.purpose, now))

        with self.repository.transaction():
            self.repository.lock_room(request.room_id)
            room = self.repository.get_room(request.room_id)
            if room is None:
                raise NotFound("Room not found")
            if not room.is_active:
                raise ValidationError(["Room is not accepting bookings"])
            self.availability.ensure_available(room.id, request.start_time, request.end_time)
            booking = Booking(
                room_id=room.id,
                user_id=actor.id,
                start_time=request.start_time,
                end_time=request.end_time,
                purpose=request.purpose.strip(),
                status=BookingStatus.PENDING,
            )
            self.repository.add(booking)

        logger.info("Booking %s created for room %s by user %s", booking.id, booking.room_id, actor.id)
        snapshot = BookingSnapshot.from_booking(booking)
        self.dispatcher.dispatch("notify_created", self.notifier.notify_created, snapshot)
        self._audit(actor, activity.BOOKING_CREATE, snapshot)
        return booking

    def reschedule(self, booking_id: int, request: BookingUpdate, actor: Actor) -> Booking:
        ensure_valid(validate_booking_update(request.start_time, request.end_time, request.purpose))
        booking = self._load(booking_id)

        with self.repository.transaction():
            self.repository.lock_room(booking.room_id)
            booking = self._reload(booking_id)
            authorize_reschedule(booking, actor)

            start = request.start_time or booking.start_time
            end = request.end_time or booking.end_time
            interval_changed = (start, end) != (booking.start_time, booking.end_time)
            ensure_valid(
                validate_reschedule(start, end, request.purpose, start != booking.start_time, self.clock())
            )
            if interval_changed:
                self.availability.ensure_available(booking.room_id, start, end, exclude_booking_id=booking.id)

            previous = {"start_time": booking.start_time.isoformat(), "end_time": booking.end_time.isoformat()}
            booking.start_time = start
            booking.end_time = end
            if request.purpose is not None:
                booking.purpose = request.purpose.strip()

        logger.info("Booking %s rescheduled by user %s", booking.id, actor.id)
        snapshot = BookingSnapshot.from_booking(booking)
        if interval_changed:
            self.dispatcher.dispatch("notify_rescheduled", self.notifier.notify_rescheduled, snapshot)
        self._audit(actor, activity.BOOKING_RESCHEDULE, snapshot, previous=previous)
        return booking

    def change_status(self, booking_id: int, request: BookingStatusUpdate, actor: Actor) -> Booking:
        target = parse_target_status(request.status)
        booking = self._load(booking_id)

        with self.repository.transaction():
            self.repository.lock_room(booking.room_id)
            booking = self._reload(booking_id)
            authorize_status_change(booking, target, actor)

            previous_status = booking.status
            booking.status = target
            if target in (BookingStatus.APPROVED, BookingStatus.REJECTED):
                booking.approved_by = actor.id
                booking.approved_at = self.clock()
            elif target == BookingStatus.CANCELLED and request.cancellation_reason:
                booking.cancellation_reason = sanitize_input(request.cancellation_reason)

        logger.info(
            "Booking %s moved %s -> %s by user %s", booking.id, previous_status.value, target.value, actor.id
        )
        snapshot = BookingSnapshot.from_booking(booking)
        self.dispatcher.dispatch(
            "notify_status_changed", self.notifier.notify_status_changed, snapshot, target.value
        )
        event = activity.BOOKING_CANCEL if target == BookingStatus.CANCELLED else activity.BOOKING_STATUS_CHANGE
        self._audit(actor, event, snapshot, previous_status=previous_status.value)
        return booking

    def delete(self, booking_id: int, actor: Actor) -> None:
        booking = self._load(booking_id)
        authorize_delete(booking, actor)
        snapshot = BookingSnapshot.from_booking(booking)

        with self.repository.transaction():
            self.repository.delete(booking)

        logger.info("Booking %s deleted by user %s", booking_id, actor.id)
        self._audit(actor, activity.BOOKING_DELETE, snapshot)

    def _load(self, booking_id: int) -> Booking:
        booking = self.repository.get_booking(booking_id)
        if booking is None:
            raise NotFound("Booking not found")
        return booking

    def _reload(self, booking_id: int) -> Booking:
        # the row may have been deleted between the first load and the lock
        booking = self.repository.session.get(Booking, booking_id, populate_existing=True)
        if booking is None:
            raise NotFound("Booking not found")
        return booking

    def _audit(self, actor: Actor, event_type: str, snapshot: BookingSnapshot, **extra: Any) -> None:
        details: Dict[str, Any] = {
            "booking_id": snapshot.id,
            "room_id": snapshot.room_id,
            "start_time": snapshot.start_time.isoformat(),
            "end_time": snapshot.end_time.isoformat(),
            "status": snapshot.status,
        }
        details.update(extra)
        self.dispatcher.dispatch("audit_" + event_type, self.recorder.record, actor.id, event_type, details)
