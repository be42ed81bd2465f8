# fellowship/services/occurrences.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from fellowship.services.recurrence import RecurrencePattern, normalize_days_of_week

logger = logging.getLogger(__name__)

# One year of weekly meetings.
MAX_MEETING_INSTANCES = 52

WEEKLY_SEARCH_HORIZON_WEEKS = 8


@dataclass(frozen=True)
class ProjectedMeeting:
    """
    A concrete meeting produced by the projector. ``end_time`` is derived.
    """

    meeting_date: datetime
    duration_minutes: int

    @property
    def end_time(self) -> datetime:
        return self.meeting_date + timedelta(minutes=self.duration_minutes)


def _sunday_based_weekday(value: datetime | date) -> int:
    # Python: Monday=0 .. Sunday=6  ->  Sunday=0 .. Saturday=6
    return (value.weekday() + 1) % 7


def _to_local(instant: datetime, zone: ZoneInfo) -> datetime:
    """Aware instant -> naive wall-clock time in ``zone``."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(zone).replace(tzinfo=None)


def _to_utc(wall_time: datetime, zone: ZoneInfo) -> datetime:
    """Naive wall-clock time in ``zone`` -> aware UTC instant."""
    return wall_time.replace(tzinfo=zone).astimezone(timezone.utc)


def next_weekly_day(current: datetime, days_of_week: Iterable[int], interval: int = 1) -> datetime:
    """
    Next wall-clock datetime strictly after ``current`` falling on one of
    ``days_of_week``.

    For each target day the offset is ``(day - weekday) mod 7``; a same-day
    match jumps a full ``7 * interval`` days instead of 0, so the current
    date is never returned again. The earliest candidate wins.
    """
    weekday = _sunday_based_weekday(current)
    offsets = []
    for day in normalize_days_of_week(days_of_week):
        offset = (day - weekday) % 7
        if offset == 0:
            offset = 7 * interval
        offsets.append(offset)
    return current + timedelta(days=min(offsets))


def _add_months(anchor: datetime, months: int) -> datetime:
    # relativedelta clamps to the last day of the month: Jan 31 + 1 month = Feb 28/29.
    return anchor + relativedelta(months=months)


def calculate_next_occurrence(
    anchor: datetime,
    pattern: str | RecurrencePattern,
    interval: int = 1,
    days_of_week: Iterable[int] | None = None,
    *,
    now: datetime | None = None,
    tz: str = "UTC",
) -> datetime | None:
    """
    Next firing of a recurring meeting at or after ``now``.

    Rules
    -----
    - Anchor still in the future      => anchor unchanged.
    - Daily                           => anchor + k * interval days.
    - Weekly with days                => earliest target day after now, at the
                                         anchor's wall-clock time; today never
                                         counts (same-day jumps 7 * interval).
    - Weekly without days             => anchor + k * 7 * interval days.
    - Monthly                         => anchor + k * interval calendar months.

    ``k`` is the smallest step count giving a result strictly after ``now``.
    Stepping happens in wall-clock time of ``tz``; the result is aware UTC.
    Returns None for an unknown pattern, or when the weekly search horizon is
    exhausted.
    """
    now = now or datetime.now(tz=timezone.utc)
    if anchor.tzinfo is None:
        anchor = anchor.replace(tzinfo=timezone.utc)

    if anchor > now:
        return anchor.astimezone(timezone.utc)

    parsed = RecurrencePattern.parse(pattern)
    if parsed is None:
        return None

    zone = ZoneInfo(tz)
    local_anchor = _to_local(anchor, zone)
    days = normalize_days_of_week(days_of_week)

    if parsed is RecurrencePattern.WEEKLY and days:
        local_now = _to_local(now, zone)
        base = datetime.combine(local_now.date(), local_anchor.time())
        for week in range(WEEKLY_SEARCH_HORIZON_WEEKS):
            week_start = base + timedelta(days=7 * week)
            candidate = _to_utc(next_weekly_day(week_start, days, interval), zone)
            if candidate > now:
                return candidate
        logger.warning(
            "No weekly occurrence found within %d weeks (anchor=%s, days=%s)",
            WEEKLY_SEARCH_HORIZON_WEEKS,
            anchor.isoformat(),
            days,
        )
        return None

    if parsed is RecurrencePattern.MONTHLY:
        step = 1
        candidate = _to_utc(_add_months(local_anchor, interval), zone)
        while candidate <= now:
            step += 1
            candidate = _to_utc(_add_months(local_anchor, interval * step), zone)
        return candidate

    step_days = interval if parsed is RecurrencePattern.DAILY else 7 * interval
    # Jump close to ``now`` first so long-running series don't loop day by day.
    elapsed_days = (_to_local(now, zone) - local_anchor).days
    steps = max(elapsed_days // step_days, 1)
    candidate = _to_utc(local_anchor + timedelta(days=step_days * steps), zone)
    while candidate <= now:
        steps += 1
        candidate = _to_utc(local_anchor + timedelta(days=step_days * steps), zone)
    return candidate


def project_meeting_instances(
    start_time: datetime,
    duration_minutes: int,
    pattern: str | RecurrencePattern,
    interval: int = 1,
    days_of_week: Iterable[int] | None = None,
    end_date: date | None = None,
    max_instances: int = MAX_MEETING_INSTANCES,
    tz: str = "UTC",
) -> list[ProjectedMeeting]:
    """
    Expand a recurrence definition into an ordered list of concrete meetings.

    - The first meeting is ``start_time`` itself, unconditionally.
    - Later meetings follow the per-pattern step; weekly rules with explicit
      days always move to a strictly later calendar date.
    - Generation stops after ``max_instances`` meetings, or once a meeting
      would fall after the end of ``end_date`` (inclusive, local to ``tz``).
    """
    parsed = RecurrencePattern.parse(pattern)
    if parsed is None:
        raise ValueError(f"Unsupported recurrence pattern: {pattern!r}")
    if start_time.tzinfo is None:
        start_time = start_time.replace(tzinfo=timezone.utc)

    zone = ZoneInfo(tz)
    days = normalize_days_of_week(days_of_week)
    local_start = _to_local(start_time, zone)
    local_limit = datetime.combine(end_date, time.max) if end_date is not None else None

    meetings: list[ProjectedMeeting] = []
    current = local_start
    while len(meetings) < max_instances:
        if local_limit is not None and current > local_limit:
            break

        meetings.append(
            ProjectedMeeting(
                meeting_date=_to_utc(current, zone),
                duration_minutes=duration_minutes,
            )
        )

        if parsed is RecurrencePattern.DAILY:
            current = current + timedelta(days=interval)
        elif parsed is RecurrencePattern.WEEKLY and days:
            current = next_weekly_day(current, days, interval)
        elif parsed is RecurrencePattern.WEEKLY:
            current = current + timedelta(days=7 * interval)
        else:
            # Always measured from the start so month-end days don't drift.
            current = _add_months(local_start, interval * len(meetings))

    return meetings
