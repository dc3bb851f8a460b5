from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from typing import FrozenSet, Iterable, List, Optional

WEEKDAY_NAMES = ("MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY")

_TIME_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})(?::(\d{2}))?\s*$")


def now_local() -> datetime:
    # naive local wall-clock time, alarms are plain time-of-day values
    return datetime.now()


def parse_time_of_day(value: str) -> time:
    match = _TIME_RE.match(value or "")
    if not match:
        raise ValueError(f"Invalid time of day: {value!r}")
    hour, minute, second = int(match.group(1)), int(match.group(2)), int(match.group(3) or 0)
    if hour > 23 or minute > 59 or second > 59:
        raise ValueError(f"Time of day out of range: {value!r}")
    return time(hour, minute, second)


def format_time_of_day(value: time) -> str:
    if value.second:
        return value.strftime("%H:%M:%S")
    return value.strftime("%H:%M")


def parse_weekdays(value) -> FrozenSet[int]:
    """Parse week days given as names, indices or the bracketed web form.

    Accepts a list such as ``["MONDAY", "WEDNESDAY"]`` as well as the string
    ``"[MONDAY,WEDNESDAY]"`` posted by the web page. Returns weekday
    indices compatible with ``date.weekday()``.
    """
    if value is None:
        return frozenset()
    if isinstance(value, str):
        stripped = value.strip().strip("[]")
        items: Iterable = [part for part in stripped.split(",") if part.strip()]
    else:
        items = value
    days = set()
    for item in items:
        if isinstance(item, int) and not isinstance(item, bool):
            if not 0 <= item <= 6:
                raise ValueError(f"Invalid weekday index: {item}")
            days.add(item)
            continue
        name = str(item).strip().upper()
        if name not in WEEKDAY_NAMES:
            raise ValueError(f"Invalid weekday: {item!r}")
        days.add(WEEKDAY_NAMES.index(name))
    return frozenset(days)


def format_weekdays(days: Iterable[int]) -> List[str]:
    return [WEEKDAY_NAMES[day] for day in sorted(days)]


def occurrence_on(day: date, at: time) -> datetime:
    return datetime.combine(day, at)


def candidate_occurrences(now: datetime, at: time, weekdays: FrozenSet[int], any_day: bool) -> List[datetime]:
    """Occurrences of ``at`` on yesterday and today that match the weekday set.

    Yesterday is included so that an occurrence just before midnight is not
    lost when a tick lands after midnight.
    """
    result = []
    for offset in (1, 0):
        day = now.date() - timedelta(days=offset)
        if any_day or day.weekday() in weekdays:
            result.append(occurrence_on(day, at))
    return result


def seconds_between(start: Optional[datetime], end: datetime) -> float:
    if start is None:
        return 0.0
    return max(0.0, (end - start).total_seconds())
