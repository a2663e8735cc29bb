"""Reminders for approved bookings that start soon.

Meant to be triggered externally (cron) through ``scripts/send_reminders.py``.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import Booking, BookingStatus
from .notifications import BookingSnapshot, Notifier

logger = logging.getLogger(__name__)


def send_due_reminders(
    db: Session,
    notifier: Notifier,
    now: datetime,
    minutes_before: int = 60,
    tolerance_minutes: int = 30,
) -> int:
    """Notify requesters of approved bookings starting around ``now + minutes_before``.

    Each booking is reminded at most once; the stamp is committed per booking
    so a failing notifier does not lose progress made on earlier ones.
    Returns the number of reminders sent.
    """
    window_start = now + timedelta(minutes=minutes_before - tolerance_minutes)
    window_end = now + timedelta(minutes=minutes_before + tolerance_minutes)
    due = db.scalars(
        select(Booking)
        .where(
            Booking.status == BookingStatus.APPROVED,
            Booking.start_time >= window_start,
            Booking.start_time <= window_end,
            Booking.last_reminder_sent_at.is_(None),
        )
        .order_by(Booking.start_time)
    ).all()

    if not due:
        logger.info("No bookings due for a reminder between %s and %s", window_start, window_end)
        return 0

    sent = 0
    for booking in due:
        try:
            notifier.notify_reminder(BookingSnapshot.from_booking(booking))
        except Exception:
            logger.exception("Error sending reminder for booking %s", booking.id)
            continue
        booking.last_reminder_sent_at = now
        db.commit()
        sent += 1

    logger.info("Reminders sent for %s booking(s)", sent)
    return sent
