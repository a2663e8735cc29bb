"""Half-open booking windows and the overlap test used everywhere."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import and_
from sqlalchemy.sql.elements import ColumnElement


@dataclass(frozen=True)
class TimeInterval:
    """A window ``[start, end)``: the start instant is included, the end is not."""

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise ValueError("End time must be after start time")

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def overlaps(self, other: "TimeInterval") -> bool:
        return overlaps(self, other)

    def clip(self, window: "TimeInterval") -> timedelta:
        """Length of the part of this interval that falls inside ``window``."""
        start = max(self.start, window.start)
        end = min(self.end, window.end)
        return max(end - start, timedelta(0))


def overlaps(a: TimeInterval, b: TimeInterval) -> bool:
    return a.start < b.end and b.start < a.end


def overlap_clause(start_column, end_column, interval: TimeInterval) -> ColumnElement[bool]:
    """SQL form of :func:`overlaps` for rows stored as ``(start_column, end_column)``."""
    return and_(start_column < interval.end, interval.start < end_column)
