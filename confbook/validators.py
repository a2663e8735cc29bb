"""Canonical validators: one per entity, each returning a list of violations."""
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Iterable, List, Mapping, Optional

from .errors import ValidationError

_TAG_RE = re.compile(r"<[^>]*>?")
_UNSAFE_RE = re.compile(r"[^\w\s@.-]", re.ASCII)


def sanitize_input(value: Any) -> Any:
    """Strip HTML tags and symbols other than ``@ . - _``; non-strings pass through."""
    if not isinstance(value, str):
        return value
    return _UNSAFE_RE.sub("", _TAG_RE.sub("", value)).strip()


def ensure_valid(errors: Iterable[str]) -> None:
    errors = list(errors)
    if errors:
        raise ValidationError(errors)


def validate_booking(
    room_id: Optional[int],
    start_time: Optional[datetime],
    end_time: Optional[datetime],
    purpose: Optional[str],
    now: datetime,
) -> List[str]:
    errors: List[str] = []
    if not room_id:
        errors.append("Room is required")
    if start_time is None:
        errors.append("Start time is required")
    if end_time is None:
        errors.append("End time is required")
    if start_time is not None and start_time < now:
        errors.append("Start time cannot be in the past")
    if start_time is not None and end_time is not None and end_time <= start_time:
        errors.append("End time must be after start time")
    if not isinstance(purpose, str) or not purpose.strip():
        errors.append("Booking purpose is required")
    return errors


def validate_booking_update(
    start_time: Optional[datetime],
    end_time: Optional[datetime],
    purpose: Optional[str],
) -> List[str]:
    """Checks an update on its own, before the stored booking is consulted."""
    errors: List[str] = []
    if start_time is not None and end_time is not None and end_time <= start_time:
        errors.append("End time must be after start time")
    if purpose is not None and not purpose.strip():
        errors.append("Booking purpose is required")
    return errors


def validate_reschedule(
    start_time: datetime,
    end_time: datetime,
    purpose: Optional[str],
    start_changed: bool,
    now: datetime,
) -> List[str]:
    """Checks the merged interval of a reschedule; ``purpose`` is None when unchanged."""
    errors: List[str] = []
    if start_changed and start_time < now:
        errors.append("Start time cannot be in the past")
    if end_time <= start_time:
        errors.append("End time must be after start time")
    if purpose is not None and not purpose.strip():
        errors.append("Booking purpose is required")
    return errors


def validate_room(data: Mapping[str, Any], partial: bool = False) -> List[str]:
    """With ``partial`` only the keys present in ``data`` are checked."""
    errors: List[str] = []
    for field, label in (("name", "Room name"), ("location", "Room location")):
        if partial and field not in data:
            continue
        value = data.get(field)
        if not isinstance(value, str) or not value.strip():
            errors.append(f"{label} is required")
    if not partial or "capacity" in data:
        capacity = data.get("capacity")
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            errors.append("Room capacity must be a positive number")
    amenities = data.get("amenities")
    if amenities is not None:
        if not isinstance(amenities, (list, tuple, set)):
            errors.append("Amenities must be an array")
        elif not all(isinstance(item, str) for item in amenities):
            errors.append("Amenities must be strings")
    return errors


def validate_password(password: Optional[str], min_length: int = 6) -> List[str]:
    if not password or not isinstance(password, str):
        return ["Password is required"]
    if len(password) < min_length:
        return [f"Password must be at least {min_length} characters long"]
    return []
