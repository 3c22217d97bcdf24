"""Date and time helpers pinned to the portal's local timezone.

Every day-boundary decision goes through `start_of_local_day`, so nothing else
in the service compares instants that have not been normalized.
"""
import re
from datetime import date, datetime

from dateutil import tz
from dateutil.parser import isoparse

from config import TIMEZONE

LOCAL_TZ = tz.gettz(TIMEZONE)

BUSINESS_START = 8 * 60  # 08:00
BUSINESS_END = 22 * 60  # 22:00
SLOT_MINUTES = 30

TIME_PATTERN = re.compile(r"([0-9]{2}):([0-9]{2})")


class FormatError(ValueError):
    """A time or date string that does not parse. Callers are expected to
    validate user input before it gets here."""


def current_local_date() -> datetime:
    return datetime.now(LOCAL_TZ)


def start_of_local_day(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            local = value.replace(tzinfo=LOCAL_TZ)
        else:
            local = value.astimezone(LOCAL_TZ)
    else:
        local = datetime(value.year, value.month, value.day, tzinfo=LOCAL_TZ)
    return local.replace(hour=0, minute=0, second=0, microsecond=0)


def local_day(value: date | datetime) -> date:
    return start_of_local_day(value).date()


def parse_local_day(value: str | date | datetime) -> date:
    """Resolve a request value to the local calendar day it names.

    A bare ``YYYY-MM-DD`` string is that local day as written; a timestamp is
    converted to the local zone first (naive timestamps are local wall-clock).
    """
    if isinstance(value, (date, datetime)):
        return local_day(value)
    if not isinstance(value, str):
        raise FormatError(f"Cannot interpret {value!r} as a date")
    text = value.strip()
    try:
        parsed = isoparse(text)
    except ValueError as exc:
        raise FormatError(f"Invalid date: {value!r}") from exc
    if len(text) == 10:
        return parsed.date()
    return local_day(parsed)


def is_past(value: date | datetime, today: date | datetime | None = None) -> bool:
    if today is None:
        today = current_local_date()
    return start_of_local_day(value) < start_of_local_day(today)


def time_to_minutes(time_str: str) -> int:
    match = TIME_PATTERN.fullmatch(time_str) if isinstance(time_str, str) else None
    if match is None:
        raise FormatError(f"Expected HH:mm, got {time_str!r}")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise FormatError(f"Time out of range: {time_str!r}")
    return hours * 60 + minutes


def minutes_to_time(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def is_valid_time(time_str: str) -> bool:
    try:
        time_to_minutes(time_str)
    except FormatError:
        return False
    return True


def generate_slots() -> list[str]:
    return [
        minutes_to_time(m)
        for m in range(BUSINESS_START, BUSINESS_END + 1, SLOT_MINUTES)
    ]


def is_valid_interval(start: str, end: str) -> bool:
    return time_to_minutes(start) < time_to_minutes(end)


def is_business_hours(time_str: str) -> bool:
    return BUSINESS_START <= time_to_minutes(time_str) <= BUSINESS_END


def is_slot_aligned(time_str: str) -> bool:
    return time_to_minutes(time_str) % SLOT_MINUTES == 0


def intervals_overlap(start1: str, end1: str, start2: str, end2: str) -> bool:
    # half-open: [10:00, 11:00) and [11:00, 12:00) do not overlap
    return time_to_minutes(start1) < time_to_minutes(end2) and time_to_minutes(
        start2
    ) < time_to_minutes(end1)


def occupied_slots(start: str, end: str) -> list[str]:
    """Slot starts covered by ``[start, end)``. Both ends must be slot aligned."""
    return [
        minutes_to_time(m)
        for m in range(time_to_minutes(start), time_to_minutes(end), SLOT_MINUTES)
    ]
