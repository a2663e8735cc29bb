"""Unit tests for schema validation."""
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from confbook.models import RoleEnum
from confbook.schemas import BookingCreate, BookingStatusUpdate, BookingUpdate, RoomCreate, UserCreate


class TestUserSchemas:
    """Test user-related schemas."""

    def test_user_create_default_role(self):
        user = UserCreate(email="jane@example.com", password="SecurePass123!")

        assert user.role == RoleEnum.USER

    def test_user_create_invalid_email(self):
        """Test user creation with invalid email."""
        with pytest.raises(ValidationError):
            UserCreate(email="invalid-email", password="Password123")

    def test_unknown_role_rejected(self):
        with pytest.raises(ValidationError):
            UserCreate(email="jane@example.com", password="Password123", role="auditor")


class TestRoomSchemas:
    """Test room-related schemas."""

    def test_room_create_default_values(self):
        room = RoomCreate(name="Small Room", location="Floor 1", capacity=2)

        assert room.amenities == []
        assert room.is_active is True

    def test_room_name_length_limit(self):
        with pytest.raises(ValidationError):
            RoomCreate(name="x" * 101, location="Floor 1", capacity=2)


class TestBookingSchemas:
    """Test booking-related schemas."""

    def test_aware_times_become_naive_utc(self):
        beirut = timezone(timedelta(hours=3))
        booking = BookingCreate(
            room_id=1,
            start_time=datetime(2030, 1, 7, 12, 0, tzinfo=beirut),
            end_time="2030-01-07T10:00:00Z",
            purpose="Sync",
        )

        assert booking.start_time == datetime(2030, 1, 7, 9, 0)
        assert booking.start_time.tzinfo is None
        assert booking.end_time == datetime(2030, 1, 7, 10, 0)

    def test_naive_times_are_kept(self):
        booking = BookingCreate(room_id=1, start_time="2030-01-07T09:00:00", end_time="2030-01-07T10:00:00")

        assert booking.start_time == datetime(2030, 1, 7, 9, 0)
        assert booking.purpose == ""

    def test_update_fields_are_optional(self):
        update = BookingUpdate()

        assert update.start_time is None
        assert update.model_dump(exclude_unset=True) == {}

    def test_cancellation_reason_length(self):
        with pytest.raises(ValidationError):
            BookingStatusUpdate(status="cancelled", cancellation_reason="x" * 501)
