"""Error taxonomy raised by the booking core."""
from __future__ import annotations

from typing import Iterable, List, Optional


class BookingError(Exception):
    """Base class; ``status_code`` is what the HTTP layer answers with."""

    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(BookingError):
    status_code = 400

    def __init__(self, errors: Iterable[str]) -> None:
        self.errors: List[str] = list(errors)
        super().__init__(self.errors[0] if self.errors else "Invalid input")


class NotFound(BookingError):
    status_code = 404


class Forbidden(BookingError):
    status_code = 403


class Conflict(BookingError):
    status_code = 409

    def __init__(self, detail: str, conflicting_booking_id: Optional[int] = None) -> None:
        super().__init__(detail)
        self.conflicting_booking_id = conflicting_booking_id


class InvalidTransition(BookingError):
    status_code = 409

    def __init__(self, current: str, target: str, detail: Optional[str] = None) -> None:
        super().__init__(detail or f"Cannot move booking from {current} to {target}")
        self.current = current
        self.target = target


class StoreError(BookingError):
    status_code = 500
