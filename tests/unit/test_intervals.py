"""Unit tests for half-open time intervals."""
from datetime import datetime, timedelta

import pytest

from confbook.intervals import TimeInterval, overlaps

NINE = datetime(2030, 1, 7, 9, 0)


def window(start_hour: float, end_hour: float) -> TimeInterval:
    return TimeInterval(NINE + timedelta(hours=start_hour - 9), NINE + timedelta(hours=end_hour - 9))


class TestTimeInterval:
    """Construction and arithmetic."""

    def test_end_must_follow_start(self):
        with pytest.raises(ValueError):
            TimeInterval(NINE, NINE)
        with pytest.raises(ValueError):
            TimeInterval(NINE, NINE - timedelta(minutes=1))

    def test_duration(self):
        assert window(9, 10.5).duration == timedelta(minutes=90)

    def test_clip_inside_and_outside(self):
        day = window(9, 17)
        assert window(8, 10).clip(day) == timedelta(hours=1)
        assert window(10, 11).clip(day) == timedelta(hours=1)
        assert window(18, 19).clip(day) == timedelta(0)


class TestOverlaps:
    """The overlap rule used by availability checks."""

    @pytest.mark.parametrize(
        "other, expected",
        [
            ((9.5, 10.5), True),
            ((8, 9.5), True),
            ((9, 10), True),
            ((8, 11), True),
            ((9.25, 9.75), True),
            ((10, 11), False),
            ((8, 9), False),
        ],
    )
    def test_against_nine_to_ten(self, other, expected):
        booked = window(9, 10)
        candidate = window(*other)
        assert overlaps(booked, candidate) is expected
        assert candidate.overlaps(booked) is expected
