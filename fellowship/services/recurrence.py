# fellowship/services/recurrence.py
from __future__ import annotations

from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Iterable
from zoneinfo import ZoneInfo

MIN_RECURRENCE_INTERVAL = 1
MAX_RECURRENCE_INTERVAL = 99

# 0 = Sunday ... 6 = Saturday, matching the client payloads.
DAY_NUMBERS_TO_NAMES = {
    0: "Sunday",
    1: "Monday",
    2: "Tuesday",
    3: "Wednesday",
    4: "Thursday",
    5: "Friday",
    6: "Saturday",
}
DAY_NAMES_TO_NUMBERS = {name.lower(): number for number, name in DAY_NUMBERS_TO_NAMES.items()}
RRULE_DAY_TOKENS = {0: "SU", 1: "MO", 2: "TU", 3: "WE", 4: "TH", 5: "FR", 6: "SA"}


class RecurrencePattern(str, Enum):
    """
    Supported repeat frequencies.
    """

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def parse(cls, value: Any) -> "RecurrencePattern | None":
        """
        Case-insensitive lookup; returns None for anything unrecognised.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


def parse_end_date(value: Any) -> date | None:
    """
    Coerce an end date given as ``date``, ``datetime`` or ``YYYY-MM-DD`` string.

    Raises ValueError for values that cannot be read as a date. ``None`` and
    empty strings mean "no end date".
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            pass
        # Full ISO timestamps such as '2026-12-31T00:00:00Z'
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    raise ValueError(f"Unsupported end date value: {value!r}")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def normalize_days_of_week(days_of_week: Iterable[int] | None) -> list[int]:
    """
    Sorted, de-duplicated day numbers.
    """
    return sorted(set(days_of_week or []))


def validate_recurrence_params(
    pattern: Any,
    interval: Any,
    days_of_week: Any,
    end_date: Any,
) -> list[str]:
    """
    Check a recurrence definition and return every problem found.

    Never raises: an empty list means the definition is valid. Whether the end
    date lies in the future is a caller decision and is not checked here.
    """
    errors: list[str] = []

    parsed_pattern = RecurrencePattern.parse(pattern)
    if parsed_pattern is None:
        errors.append("Invalid recurrence pattern. Must be daily, weekly, or monthly.")

    if not _is_int(interval) or not (
        MIN_RECURRENCE_INTERVAL <= interval <= MAX_RECURRENCE_INTERVAL
    ):
        errors.append(
            f"Invalid interval. Must be a whole number between "
            f"{MIN_RECURRENCE_INTERVAL} and {MAX_RECURRENCE_INTERVAL}."
        )

    if parsed_pattern is RecurrencePattern.WEEKLY:
        if not isinstance(days_of_week, (list, tuple, set)) or len(days_of_week) == 0:
            errors.append("Weekly recurrence requires at least one day of the week.")
        else:
            if any(not _is_int(day) or not 0 <= day <= 6 for day in days_of_week):
                errors.append("Invalid day of week. Must be 0-6 (Sunday-Saturday).")
            elif len(set(days_of_week)) != len(list(days_of_week)):
                errors.append("Days of week must not contain duplicates.")

    if end_date is not None:
        try:
            parse_end_date(end_date)
        except (TypeError, ValueError):
            errors.append("Invalid end date. Please use YYYY-MM-DD format.")

    return errors


def end_of_day_utc(end_date: date, tz: str = "UTC") -> datetime:
    """
    Last representable second of ``end_date`` in ``tz``, as an aware UTC datetime.
    """
    local_end = datetime.combine(end_date, time(23, 59, 59), tzinfo=ZoneInfo(tz))
    return local_end.astimezone(timezone.utc)


def generate_recurrence_rule(
    pattern: str | RecurrencePattern,
    interval: int = 1,
    days_of_week: Iterable[int] | None = None,
    end_date: Any = None,
    tz: str = "UTC",
) -> str:
    """
    Build the RFC 5545 rule attached to the master calendar event.

    Examples
    --------
    >>> generate_recurrence_rule("weekly", 2, [3, 1], date(2026, 12, 31))
    'RRULE:FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,WE;UNTIL=20261231T235959Z'

    Notes
    -----
    - ``INTERVAL`` is omitted when it is 1 (the grammar's default).
    - ``BYDAY`` is only emitted for weekly rules.
    - ``UNTIL`` is the end of ``end_date`` in ``tz``, rendered in UTC.
    """
    parsed = RecurrencePattern.parse(pattern)
    if parsed is None:
        raise ValueError(f"Unsupported recurrence pattern: {pattern!r}")

    parts = [f"FREQ={parsed.value.upper()}"]

    if interval > 1:
        parts.append(f"INTERVAL={interval}")

    days = normalize_days_of_week(days_of_week)
    if parsed is RecurrencePattern.WEEKLY and days:
        parts.append("BYDAY=" + ",".join(RRULE_DAY_TOKENS[day] for day in days))

    until = parse_end_date(end_date)
    if until is not None:
        parts.append("UNTIL=" + end_of_day_utc(until, tz).strftime("%Y%m%dT%H%M%SZ"))

    return "RRULE:" + ";".join(parts)


def _join_names(names: list[str]) -> str:
    if len(names) == 1:
        return names[0]
    return ", ".join(names[:-1]) + " and " + names[-1]


def format_recurrence_description(
    pattern: str | RecurrencePattern,
    interval: int = 1,
    days_of_week: Iterable[int] | None = None,
    end_date: Any = None,
) -> str:
    """
    Human-readable schedule, e.g. "Every 2 weeks on Monday and Wednesday until Dec 31, 2026".
    """
    parsed = RecurrencePattern.parse(pattern)
    if parsed is None:
        return "Custom schedule"

    unit = {
        RecurrencePattern.DAILY: "day",
        RecurrencePattern.WEEKLY: "week",
        RecurrencePattern.MONTHLY: "month",
    }[parsed]
    description = f"Every {unit}" if interval == 1 else f"Every {interval} {unit}s"

    days = normalize_days_of_week(days_of_week)
    if parsed is RecurrencePattern.WEEKLY and days:
        description += " on " + _join_names([DAY_NUMBERS_TO_NAMES[day] for day in days])

    try:
        until = parse_end_date(end_date)
    except ValueError:
        until = None
    if until is not None:
        description += f" until {until.strftime('%b')} {until.day}, {until.year}"

    return description
