from __future__ import annotations

import re
from datetime import date, time

from pydantic import BaseModel, ConfigDict


HHMM_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"
_HHMM_RE = re.compile(HHMM_PATTERN)


class TimeWindow(BaseModel):
    """A half-open interval ``[start, end)`` on one calendar day.

    ``start`` and ``end`` are minutes since midnight.
    """

    model_config = ConfigDict(frozen=True)

    day: date
    start: int
    end: int

    @classmethod
    def from_hhmm(cls, day: date, start: str, end: str) -> "TimeWindow":
        return cls(day=day, start=parse_hhmm(start), end=parse_hhmm(end))

    @classmethod
    def from_times(cls, day: date, start: time, end: time) -> "TimeWindow":
        return cls(day=day, start=_time_to_minutes(start), end=_time_to_minutes(end))

    @property
    def duration_minutes(self) -> int:
        return self.end - self.start

    @property
    def start_time(self) -> time:
        return _minutes_to_time(self.start)

    @property
    def end_time(self) -> time:
        return _minutes_to_time(self.end)

    def overlaps(self, other: "TimeWindow") -> bool:
        return windows_overlap(self, other)

    def label(self) -> str:
        return f"{format_hhmm(self.start)}-{format_hhmm(self.end)}"


def windows_overlap(a: TimeWindow, b: TimeWindow) -> bool:
    # Touching windows (a.end == b.start) do not overlap.
    return a.day == b.day and a.start < b.end and b.start < a.end


def parse_hhmm(value: str) -> int:
    text = (value or "").strip()
    if not _HHMM_RE.match(text):
        raise ValueError(f"Invalid time {value!r}; expected HH:MM.")
    hours, minutes = text.split(":")
    return int(hours) * 60 + int(minutes)


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def _time_to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def _minutes_to_time(minutes: int) -> time:
    return time(hour=minutes // 60, minute=minutes % 60)
