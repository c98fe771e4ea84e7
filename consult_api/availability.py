"""
Weekly availability schedules and the one-hour slots they produce.

A schedule maps weekday names to an opening window::

    {"Monday": {"startTime": "09:00", "endTime": "17:00"}}

A day that is missing from the mapping is a closed day. Schedules are
validated strictly when a consultant writes them; when read back they are
parsed leniently, so a malformed stored entry only means "no slots" for that
day and never an error.
"""

import re
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Tuple

from errors import InvalidAvailability, InvalidSlot

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

SLOT_MINUTES = 60

_HHMM = re.compile(r"^([01]\d|2[0-4]):([0-5]\d)$")


def weekday_name(day: date) -> str:
    return WEEKDAYS[day.weekday()]


def parse_hhmm(value: Any) -> int:
    """Return minutes since midnight for an "HH:MM" string."""
    if not isinstance(value, str):
        raise ValueError("time must be a string in HH:MM form")
    match = _HHMM.match(value.strip())
    if not match:
        raise ValueError(f"'{value}' is not a valid HH:MM time")
    minutes = int(match.group(1)) * 60 + int(match.group(2))
    if minutes > 24 * 60:
        raise ValueError(f"'{value}' is past the end of the day")
    return minutes


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def format_slot(start: int, end: int) -> str:
    return f"{format_hhmm(start)}-{format_hhmm(end)}"


def parse_slot(label: str) -> Tuple[int, int]:
    """Split a "HH:MM-HH:MM" slot label into start and end minutes."""
    if not isinstance(label, str) or label.count("-") != 1:
        raise InvalidSlot(f"Time slot '{label}' must look like HH:MM-HH:MM")
    raw_start, raw_end = label.split("-")
    try:
        start = parse_hhmm(raw_start)
        end = parse_hhmm(raw_end)
    except ValueError as exc:
        raise InvalidSlot(f"Time slot '{label}' is invalid: {exc}")
    if start >= end:
        raise InvalidSlot(f"Time slot '{label}' must end after it starts")
    return start, end


class DayWindow:
    __slots__ = ("start", "end")

    def __init__(self, start: int, end: int) -> None:
        self.start = start
        self.end = end

    def slots(self) -> List[str]:
        result = []
        current = self.start
        while current + SLOT_MINUTES <= self.end:
            result.append(format_slot(current, current + SLOT_MINUTES))
            current += SLOT_MINUTES
        return result

    def contains(self, start: int, end: int) -> bool:
        return self.start <= start and end <= self.end

    def has_slot(self, start: int, end: int) -> bool:
        """True when start-end is one of the hourly slots this window produces."""
        return (
            end - start == SLOT_MINUTES
            and (start - self.start) % SLOT_MINUTES == 0
            and self.contains(start, end)
        )

    def to_dict(self) -> Dict[str, str]:
        return {"startTime": format_hhmm(self.start), "endTime": format_hhmm(self.end)}

    def __eq__(self, other: object) -> bool:
        return isinstance(other, DayWindow) and (self.start, self.end) == (other.start, other.end)

    def __repr__(self) -> str:
        return f"DayWindow({format_hhmm(self.start)}-{format_hhmm(self.end)})"


class WeeklyAvailability:
    """A consultant's opening hours, one optional window per weekday."""

    def __init__(self, windows: Optional[Dict[str, DayWindow]] = None) -> None:
        self._windows = dict(windows or {})

    @classmethod
    def from_raw(cls, raw: Any, strict: bool = False) -> "WeeklyAvailability":
        """Build a schedule from its JSON form.

        With ``strict`` every problem raises InvalidAvailability. Otherwise
        bad days are dropped and anything that isn't a mapping is treated as
        an empty schedule.
        """
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            if strict:
                raise InvalidAvailability("Availability must be an object keyed by weekday name")
            return cls()

        windows = {}
        for day, entry in raw.items():
            if entry is None:
                continue
            try:
                windows[day] = cls._parse_day(day, entry)
            except ValueError as exc:
                if strict:
                    raise InvalidAvailability(str(exc), details={"day": day})
        return cls(windows)

    @staticmethod
    def _parse_day(day: Any, entry: Any) -> DayWindow:
        if day not in WEEKDAYS:
            raise ValueError(f"'{day}' is not a weekday name")
        if not isinstance(entry, Mapping):
            raise ValueError(f"{day} must have startTime and endTime")
        if "startTime" not in entry or "endTime" not in entry:
            raise ValueError(f"{day} must have startTime and endTime")
        start = parse_hhmm(entry["startTime"])
        end = parse_hhmm(entry["endTime"])
        if start >= end:
            raise ValueError(f"{day} must end after it starts")
        return DayWindow(start, end)

    def window_for(self, day_name: str) -> Optional[DayWindow]:
        return self._windows.get(day_name)

    def is_open(self, day: date) -> bool:
        return weekday_name(day) in self._windows

    def slots_for(self, day: date) -> List[str]:
        window = self.window_for(weekday_name(day))
        if window is None:
            return []
        return window.slots()

    def covers(self, day: date, slot: str) -> bool:
        start, end = parse_slot(slot)
        window = self.window_for(weekday_name(day))
        return window is not None and window.has_slot(start, end)

    def to_dict(self) -> Dict[str, Dict[str, str]]:
        return {day: self._windows[day].to_dict() for day in WEEKDAYS if day in self._windows}

    def __bool__(self) -> bool:
        return bool(self._windows)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, WeeklyAvailability) and self._windows == other._windows
