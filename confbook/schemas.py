"""Pydantic schemas shared across the services."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Optional

from pydantic import AfterValidator, BaseModel, EmailStr, Field

from .models import BookingStatus, RoleEnum


def _as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # the database stores naive UTC timestamps
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


UtcDateTime = Annotated[datetime, AfterValidator(_as_naive_utc)]


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserCreate(BaseModel):
    email: EmailStr
    password: str
    role: RoleEnum = RoleEnum.USER


class UserRead(BaseModel):
    id: int
    email: EmailStr
    role: RoleEnum
    created_at: datetime

    model_config = {"from_attributes": True}


class RoomBase(BaseModel):
    name: str = Field(..., max_length=100)
    location: str = Field(..., max_length=255)
    capacity: int
    amenities: List[str] = Field(default_factory=list)
    is_active: bool = True


class RoomCreate(RoomBase):
    pass


class RoomUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=255)
    capacity: Optional[int] = None
    amenities: Optional[List[str]] = None
    is_active: Optional[bool] = None


class RoomRead(RoomBase):
    id: int
    created_by: Optional[int] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class BookingCreate(BaseModel):
    room_id: int
    start_time: UtcDateTime
    end_time: UtcDateTime
    purpose: str = ""


class BookingUpdate(BaseModel):
    start_time: Optional[UtcDateTime] = None
    end_time: Optional[UtcDateTime] = None
    purpose: Optional[str] = None


class BookingStatusUpdate(BaseModel):
    status: str
    cancellation_reason: Optional[str] = Field(None, max_length=500)


class BookingRead(BaseModel):
    id: int
    room_id: int
    user_id: int
    start_time: datetime
    end_time: datetime
    purpose: str
    status: BookingStatus
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AvailabilityRead(BaseModel):
    room_id: int
    start_time: datetime
    end_time: datetime
    available: bool
    conflicting_booking_ids: List[int] = Field(default_factory=list)


class ActivityLogRead(BaseModel):
    id: int
    user_id: Optional[int] = None
    type: str
    details: Dict[str, Any] = Field(default_factory=dict)
    ip: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class MostBookedRoom(BaseModel):
    room_id: int
    room_name: str
    count: int


class BookingSummary(BaseModel):
    total_bookings: int
    pending_bookings: int
    approved_bookings: int
    rejected_bookings: int
    cancelled_bookings: int
    total_rooms: int
    active_rooms: int
    most_booked_room: Optional[MostBookedRoom] = None


class RoomUtilization(BaseModel):
    room_id: int
    room_name: str
    bookings: int
    booked_hours: float
    utilization_rate: float


class UserActivity(BaseModel):
    user_id: int
    email: str
    total_bookings: int
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    cancelled: int = 0
