# tests/test_occurrences.py
from datetime import date, datetime, timedelta, timezone

import pytest

from fellowship.services.occurrences import (
    MAX_MEETING_INSTANCES,
    calculate_next_occurrence,
    next_weekly_day,
    project_meeting_instances,
)

UTC = timezone.utc

# 2030-01-07 is a Monday.
MONDAY = datetime(2030, 1, 7, 18, 0, tzinfo=UTC)


def _sunday_based(value: datetime) -> int:
    return (value.weekday() + 1) % 7


# ---------------------------------------------------------------------------
# calculate_next_occurrence
# ---------------------------------------------------------------------------


def test_future_anchor_is_returned_unchanged():
    now = MONDAY - timedelta(days=3)
    assert calculate_next_occurrence(MONDAY, "weekly", 1, [1, 3], now=now) == MONDAY
    assert calculate_next_occurrence(MONDAY, "daily", 5, now=now) == MONDAY


def test_daily_steps_by_interval_until_after_now():
    anchor = datetime(2030, 1, 1, 9, 0, tzinfo=UTC)
    now = datetime(2030, 1, 10, 12, 0, tzinfo=UTC)
    # Jan 1, 4, 7, 10 (09:00, already past), 13
    assert calculate_next_occurrence(anchor, "daily", 3, now=now) == datetime(2030, 1, 13, 9, 0, tzinfo=UTC)


def test_daily_far_in_the_past_still_lands_on_the_series():
    anchor = datetime(2020, 1, 1, 9, 0, tzinfo=UTC)
    now = datetime(2030, 1, 10, 8, 0, tzinfo=UTC)
    result = calculate_next_occurrence(anchor, "daily", 1, now=now)
    assert result == datetime(2030, 1, 10, 9, 0, tzinfo=UTC)


def test_weekly_without_days_steps_whole_weeks():
    now = MONDAY + timedelta(days=10)
    result = calculate_next_occurrence(MONDAY, "weekly", 2, [], now=now)
    assert result == MONDAY + timedelta(weeks=2)


def test_weekly_with_days_picks_earliest_target_day_after_now():
    # Tuesday noon -> next is Wednesday at the anchor's time.
    now = datetime(2030, 1, 15, 12, 0, tzinfo=UTC)
    result = calculate_next_occurrence(MONDAY, "weekly", 1, [1, 3, 5], now=now)
    assert result == datetime(2030, 1, 16, 18, 0, tzinfo=UTC)


def test_weekly_with_days_never_returns_today():
    # It is Monday morning and Monday is a target day; today still doesn't count.
    now = datetime(2030, 1, 14, 8, 0, tzinfo=UTC)
    result = calculate_next_occurrence(MONDAY, "weekly", 1, [1], now=now)
    assert result == datetime(2030, 1, 21, 18, 0, tzinfo=UTC)
    assert result.date() != now.date()


def test_weekly_same_day_jump_uses_interval():
    now = datetime(2030, 1, 14, 8, 0, tzinfo=UTC)
    result = calculate_next_occurrence(MONDAY, "weekly", 2, [1], now=now)
    assert result == datetime(2030, 1, 28, 18, 0, tzinfo=UTC)


def test_monthly_jan_31_clamps_to_end_of_february():
    anchor = datetime(2030, 1, 31, 10, 0, tzinfo=UTC)
    now = datetime(2030, 2, 1, 0, 0, tzinfo=UTC)
    assert calculate_next_occurrence(anchor, "monthly", 1, now=now) == datetime(2030, 2, 28, 10, 0, tzinfo=UTC)


def test_monthly_jan_31_in_leap_year_clamps_to_feb_29():
    anchor = datetime(2028, 1, 31, 10, 0, tzinfo=UTC)
    now = datetime(2028, 2, 1, 0, 0, tzinfo=UTC)
    assert calculate_next_occurrence(anchor, "monthly", 1, now=now) == datetime(2028, 2, 29, 10, 0, tzinfo=UTC)


def test_monthly_does_not_drift_after_short_month():
    anchor = datetime(2030, 1, 31, 10, 0, tzinfo=UTC)
    now = datetime(2030, 3, 1, 0, 0, tzinfo=UTC)
    assert calculate_next_occurrence(anchor, "monthly", 1, now=now) == datetime(2030, 3, 31, 10, 0, tzinfo=UTC)


def test_unknown_pattern_returns_none():
    now = MONDAY + timedelta(days=1)
    assert calculate_next_occurrence(MONDAY, "hourly", 1, now=now) is None


def test_wall_clock_time_is_kept_across_dst():
    # 19:00 in New York: EST (UTC-5) in early March, EDT (UTC-4) after March 10, 2030.
    anchor = datetime(2030, 3, 4, 0, 0, tzinfo=UTC)  # Sunday Mar 3, 19:00 EST
    now = datetime(2030, 3, 12, 0, 0, tzinfo=UTC)
    result = calculate_next_occurrence(anchor, "weekly", 1, [], now=now, tz="America/New_York")
    assert result == datetime(2030, 3, 17, 23, 0, tzinfo=UTC)  # Sunday Mar 17, 19:00 EDT


def test_next_weekly_day_is_strictly_later():
    for day in range(7):
        current = MONDAY.replace(tzinfo=None)
        result = next_weekly_day(current, [day], 1)
        assert result > current
        assert _sunday_based(result) == day


# ---------------------------------------------------------------------------
# project_meeting_instances
# ---------------------------------------------------------------------------


def test_mon_wed_fri_series_end_to_end():
    meetings = project_meeting_instances(MONDAY, 60, "weekly", 1, [1, 3, 5])

    assert len(meetings) == MAX_MEETING_INSTANCES == 52
    dates = [m.meeting_date for m in meetings]
    assert dates[0] == MONDAY
    assert dates[1] == datetime(2030, 1, 9, 18, 0, tzinfo=UTC)   # Wednesday
    assert dates[2] == datetime(2030, 1, 11, 18, 0, tzinfo=UTC)  # Friday
    assert dates[3] == datetime(2030, 1, 14, 18, 0, tzinfo=UTC)  # next Monday
    assert dates[-1] == datetime(2030, 5, 6, 18, 0, tzinfo=UTC)
    assert meetings[0].end_time == MONDAY + timedelta(minutes=60)


@pytest.mark.parametrize(
    "days",
    [[1], [0, 6], [1, 3, 5], [0, 1, 2, 3, 4, 5, 6], [2, 4]],
)
@pytest.mark.parametrize("interval", [1, 2, 3])
def test_weekly_projection_never_repeats_a_calendar_date(days, interval):
    meetings = project_meeting_instances(MONDAY, 45, "weekly", interval, days)
    dates = [m.meeting_date.date() for m in meetings]

    assert len(dates) == len(set(dates))
    assert dates == sorted(dates)
    # Everything after the anchor falls on a requested weekday.
    assert all(_sunday_based(m.meeting_date) in days for m in meetings[1:])


def test_first_instance_is_the_anchor_even_off_pattern():
    # Anchor on Monday, pattern only Wednesdays: first meeting is still the Monday.
    meetings = project_meeting_instances(MONDAY, 60, "weekly", 1, [3], max_instances=3)
    assert [m.meeting_date.day for m in meetings] == [7, 9, 16]


def test_end_date_is_inclusive_through_end_of_day():
    meetings = project_meeting_instances(MONDAY, 60, "daily", 1, end_date=date(2030, 1, 10))
    assert [m.meeting_date.day for m in meetings] == [7, 8, 9, 10]


def test_end_date_uses_group_timezone():
    # 18:00 UTC is 12:00 in Chicago; Jan 10 local is still within the end date.
    meetings = project_meeting_instances(
        MONDAY, 60, "daily", 1, end_date=date(2030, 1, 10), tz="America/Chicago"
    )
    assert meetings[-1].meeting_date == datetime(2030, 1, 10, 18, 0, tzinfo=UTC)


@pytest.mark.parametrize("pattern", ["daily", "weekly", "monthly"])
def test_never_more_than_max_instances(pattern):
    meetings = project_meeting_instances(MONDAY, 30, pattern, 1, [1, 2, 3, 4, 5])
    assert len(meetings) == MAX_MEETING_INSTANCES


def test_every_instance_is_within_end_date():
    end = date(2030, 3, 15)
    meetings = project_meeting_instances(MONDAY, 30, "weekly", 1, [1, 3, 5], end_date=end)
    assert 0 < len(meetings) < MAX_MEETING_INSTANCES
    assert all(m.meeting_date.date() <= end for m in meetings)


def test_custom_max_instances():
    assert len(project_meeting_instances(MONDAY, 30, "daily", 1, max_instances=5)) == 5


def test_monthly_projection_clamps_without_drift():
    anchor = datetime(2030, 1, 31, 10, 0, tzinfo=UTC)
    meetings = project_meeting_instances(anchor, 60, "monthly", 1, max_instances=4)
    assert [m.meeting_date.date() for m in meetings] == [
        date(2030, 1, 31),
        date(2030, 2, 28),
        date(2030, 3, 31),
        date(2030, 4, 30),
    ]


def test_projection_rejects_unknown_pattern():
    with pytest.raises(ValueError):
        project_meeting_instances(MONDAY, 60, "hourly")
