"""Usage reports for admins: summary, utilization, per-user activity, CSV export."""
from __future__ import annotations

import csv
import io
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, joinedload

from .intervals import TimeInterval, overlap_clause
from .lifecycle import ACTIVE_STATUSES
from .models import Booking, BookingStatus, Room, User
from .schemas import BookingSummary, MostBookedRoom, RoomUtilization, UserActivity

CSV_COLUMNS = [
    "id",
    "room",
    "location",
    "requester",
    "start_time",
    "end_time",
    "status",
    "purpose",
    "approved_by",
    "approved_at",
    "cancellation_reason",
    "created_at",
]


def booking_summary(db: Session) -> BookingSummary:
    per_status: Dict[BookingStatus, int] = dict(
        db.execute(select(Booking.status, func.count(Booking.id)).group_by(Booking.status)).all()
    )
    total_rooms = db.scalar(select(func.count(Room.id))) or 0
    active_rooms = db.scalar(select(func.count(Room.id)).where(Room.is_active.is_(True))) or 0

    top = db.execute(
        select(Room.id, Room.name, func.count(Booking.id).label("booking_count"))
        .join(Booking, Booking.room_id == Room.id)
        .group_by(Room.id, Room.name)
        .order_by(func.count(Booking.id).desc(), Room.id)
        .limit(1)
    ).first()

    return BookingSummary(
        total_bookings=sum(per_status.values()),
        pending_bookings=per_status.get(BookingStatus.PENDING, 0),
        approved_bookings=per_status.get(BookingStatus.APPROVED, 0),
        rejected_bookings=per_status.get(BookingStatus.REJECTED, 0),
        cancelled_bookings=per_status.get(BookingStatus.CANCELLED, 0),
        total_rooms=total_rooms,
        active_rooms=active_rooms,
        most_booked_room=MostBookedRoom(room_id=top[0], room_name=top[1], count=top[2]) if top else None,
    )


def room_utilization(db: Session, start: datetime, end: datetime) -> List[RoomUtilization]:
    """Share of ``[start, end)`` each room spends held by pending or approved bookings."""
    window = TimeInterval(start, end)
    window_hours = window.duration.total_seconds() / 3600
    bookings = db.scalars(
        select(Booking).where(
            Booking.status.in_(ACTIVE_STATUSES),
            overlap_clause(Booking.start_time, Booking.end_time, window),
        )
    )
    counts: Dict[int, int] = defaultdict(int)
    seconds: Dict[int, float] = defaultdict(float)
    for booking in bookings:
        counts[booking.room_id] += 1
        seconds[booking.room_id] += booking.interval.clip(window).total_seconds()

    rows = []
    for room in db.scalars(select(Room).order_by(Room.id)):
        hours = seconds[room.id] / 3600
        rows.append(
            RoomUtilization(
                room_id=room.id,
                room_name=room.name,
                bookings=counts[room.id],
                booked_hours=round(hours, 2),
                utilization_rate=round(hours / window_hours * 100, 1),
            )
        )
    rows.sort(key=lambda row: row.utilization_rate, reverse=True)
    return rows


def user_activity(db: Session, start: Optional[datetime] = None, end: Optional[datetime] = None) -> List[UserActivity]:
    stmt = (
        select(User.id, User.email, Booking.status, func.count(Booking.id))
        .join(Booking, Booking.user_id == User.id)
        .group_by(User.id, User.email, Booking.status)
    )
    if start is not None and end is not None:
        stmt = stmt.where(overlap_clause(Booking.start_time, Booking.end_time, TimeInterval(start, end)))

    per_user: Dict[int, UserActivity] = {}
    for user_id, email, status, count in db.execute(stmt):
        row = per_user.setdefault(user_id, UserActivity(user_id=user_id, email=email, total_bookings=0))
        row.total_bookings += count
        setattr(row, status.value, getattr(row, status.value) + count)
    return sorted(per_user.values(), key=lambda row: (-row.total_bookings, row.user_id))


def export_bookings_csv(
    db: Session,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    status: Optional[BookingStatus] = None,
) -> str:
    stmt = select(Booking).options(joinedload(Booking.room), joinedload(Booking.user), joinedload(Booking.approver))
    if start is not None and end is not None:
        stmt = stmt.where(overlap_clause(Booking.start_time, Booking.end_time, TimeInterval(start, end)))
    if status is not None:
        stmt = stmt.where(Booking.status == status)

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_COLUMNS)
    for booking in db.scalars(stmt.order_by(Booking.start_time)):
        writer.writerow(
            [
                booking.id,
                booking.room.name if booking.room else "",
                booking.room.location if booking.room else "",
                booking.user.email if booking.user else "",
                booking.start_time.isoformat(),
                booking.end_time.isoformat(),
                booking.status.value,
                booking.purpose,
                booking.approver.email if booking.approver else "",
                booking.approved_at.isoformat() if booking.approved_at else "",
                booking.cancellation_reason or "",
                booking.created_at.isoformat() if booking.created_at else "",
            ]
        )
    return buffer.getvalue()
