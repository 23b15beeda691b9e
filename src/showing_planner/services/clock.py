"""Wall-clock helpers shared by the schedulers."""

from __future__ import annotations

from datetime import date, time
from typing import Union

from ..models.domain import TimeOfDay

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def parse_clock(value: Union[str, time]) -> time:
    """Parse ``"HH:MM"`` (or pass through a ``time``)."""
    if isinstance(value, time):
        return value
    hours, _, minutes = value.strip().partition(":")
    try:
        return time(int(hours), int(minutes or 0))
    except ValueError as exc:
        raise ValueError(f"Unable to parse clock time from value '{value}'") from exc


def to_minutes(value: Union[str, time]) -> int:
    """Minutes since midnight."""
    clock = parse_clock(value)
    return clock.hour * 60 + clock.minute


def weekday_name(day: date) -> str:
    return WEEKDAY_NAMES[day.weekday()]


def time_of_day(value: Union[str, time]) -> TimeOfDay:
    hour = parse_clock(value).hour
    if hour < 12:
        return "morning"
    if hour < 17:
        return "afternoon"
    return "evening"
