"""Time-of-day and weekday-pattern normalization.

Every source describes time differently: the datastore keeps ``HH:MM`` or
``HH:MM:SS`` text, the provider returns ISO date-times anchored on a dummy
date (``1900-01-01T09:00:00Z``) and people type ``9:30 am``. Everything is
converted to minutes after midnight before comparison.
"""

from __future__ import annotations

import re
from datetime import datetime, time
from enum import Enum
from typing import Any, Optional


MINUTES_PER_DAY = 24 * 60

_ISO_FRAGMENT_RE = re.compile(
    r"T(?P<hour>\d{2}):(?P<minute>\d{2})(?::(?P<second>\d{2})(?:\.\d+)?)?"
    r"(?:Z|[+-]\d{2}:?\d{2})?$"
)
_CLOCK_RE = re.compile(r"^(?P<hour>\d{1,2}):(?P<minute>\d{2})(?::(?P<second>\d{2}))?$")
_MERIDIEM_RE = re.compile(
    r"^(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))?\s*(?P<period>am|pm|a\.m\.|p\.m\.)$",
    re.IGNORECASE,
)


class MissingPatternPolicy(str, Enum):
    """How an empty or absent recurrence pattern is interpreted."""

    ALWAYS = "always"
    NEVER = "never"


def _to_minutes(hour: int, minute: int, second: int = 0) -> Optional[int]:
    if not 0 <= hour <= 23 or not 0 <= minute <= 59 or not 0 <= second <= 59:
        return None
    return hour * 60 + minute


def parse_time(raw: Any) -> Optional[int]:
    """Return minutes after midnight, or None when ``raw`` is not a known form."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, datetime):
        return raw.hour * 60 + raw.minute
    if isinstance(raw, time):
        return raw.hour * 60 + raw.minute
    if not isinstance(raw, str):
        return None

    value = raw.strip()
    if not value:
        return None

    iso = _ISO_FRAGMENT_RE.search(value)
    if iso:
        return _to_minutes(
            int(iso.group("hour")),
            int(iso.group("minute")),
            int(iso.group("second") or 0),
        )

    clock = _CLOCK_RE.match(value)
    if clock:
        return _to_minutes(
            int(clock.group("hour")),
            int(clock.group("minute")),
            int(clock.group("second") or 0),
        )

    meridiem = _MERIDIEM_RE.match(value)
    if meridiem:
        hour = int(meridiem.group("hour"))
        minute = int(meridiem.group("minute") or 0)
        if not 1 <= hour <= 12:
            return None
        period = meridiem.group("period").lower().replace(".", "")
        if period == "pm" and hour != 12:
            hour += 12
        if period == "am" and hour == 12:
            hour = 0
        return _to_minutes(hour, minute)

    return None


def format_time(minutes: Optional[int]) -> str:
    """Render minutes after midnight as ``9am`` / ``9:30am`` / ``12pm``."""
    if minutes is None:
        return ""
    minutes = minutes % MINUTES_PER_DAY
    hour, minute = divmod(minutes, 60)
    period = "pm" if hour >= 12 else "am"
    display_hour = hour % 12 or 12
    if minute == 0:
        return f"{display_hour}{period}"
    return f"{display_hour}:{minute:02d}{period}"


def format_clock(minutes: Optional[int]) -> str:
    """Render minutes after midnight as 24-hour ``HH:MM``."""
    if minutes is None:
        return ""
    hour, minute = divmod(minutes % MINUTES_PER_DAY, 60)
    return f"{hour:02d}:{minute:02d}"


def overlaps(start_a: int, end_a: int, start_b: int, end_b: int) -> bool:
    """Half-open interval overlap: ``[start_a, end_a)`` vs ``[start_b, end_b)``."""
    return start_a < end_b and end_a > start_b


# Python weekday numbering: Monday == 0.
_DAY_TOKENS: dict[str, int] = {
    "monday": 0, "mon": 0, "mo": 0, "m": 0,
    "tuesday": 1, "tue": 1, "tues": 1, "tu": 1, "t": 1,
    "wednesday": 2, "wed": 2, "we": 2, "w": 2,
    "thursday": 3, "thu": 3, "thur": 3, "thurs": 3, "th": 3, "r": 3,
    "friday": 4, "fri": 4, "fr": 4, "f": 4,
    "saturday": 5, "sat": 5, "sa": 5,
    "sunday": 6, "sun": 6, "su": 6, "u": 6,
}
_COMPACT_CODES = sorted(
    (token for token in _DAY_TOKENS if len(token) <= 3),
    key=len,
    reverse=True,
)
_TOKEN_SPLIT_RE = re.compile(r"[^a-z]+")


def _decode_compact(token: str) -> Optional[set[int]]:
    """Decode runs like ``mwf`` or ``tuth``; None if any part is unknown."""
    days: set[int] = set()
    index = 0
    while index < len(token):
        for code in _COMPACT_CODES:
            if token.startswith(code, index):
                days.add(_DAY_TOKENS[code])
                index += len(code)
                break
        else:
            return None
    return days


def pattern_days(pattern: Optional[str]) -> set[int]:
    """Return the weekday numbers a free-text recurrence pattern names."""
    if not pattern:
        return set()
    days: set[int] = set()
    for token in _TOKEN_SPLIT_RE.split(pattern.lower()):
        if not token:
            continue
        if token in _DAY_TOKENS:
            days.add(_DAY_TOKENS[token])
            continue
        decoded = _decode_compact(token)
        if decoded:
            days.update(decoded)
    return days


def day_matches(
    pattern: Optional[str],
    target_weekday: int,
    *,
    missing_policy: MissingPatternPolicy,
) -> bool:
    """Check whether a recurrence pattern occurs on ``target_weekday`` (Monday == 0)."""
    if pattern is None or not pattern.strip():
        return missing_policy is MissingPatternPolicy.ALWAYS
    return target_weekday in pattern_days(pattern)
