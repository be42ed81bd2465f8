# fellowship/schemas/study_group.py

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


# --------------------------------------------------------------------------
# Create schemas (POST /study-groups, POST /study-groups/recurring)
# --------------------------------------------------------------------------

class GroupCreate(BaseModel):
    """
    Full create payload. Business validation (title present, scheduled time
    for recurring groups, recurrence parameters) happens in the scheduler so
    that clients receive the same error shape regardless of entry point.
    """

    title: str | None = Field(None, description="Group title.", examples=["Romans Study"])
    description: str | None = Field(None, description="Free-text description.")
    max_participants: int = Field(10, ge=1, le=500, description="Membership cap.")
    scheduled_time: datetime | None = Field(
        None,
        description=(
            "First meeting instant (ISO 8601). Naive values are interpreted in "
            "`timezone`."
        ),
        examples=["2026-11-02T19:00:00Z"],
    )
    duration_minutes: int = Field(60, ge=1, le=1440, description="Length of each meeting.")
    attendee_emails: list[str] = Field(
        default_factory=list,
        description="People to invite to the calendar event (and add as members if registered).",
    )
    is_recurring: bool = Field(False, description="Whether the meeting repeats.")
    recurrence_pattern: str = Field("weekly", description="daily, weekly or monthly.")
    recurrence_interval: int = Field(1, description="Every N days/weeks/months.")
    recurrence_days_of_week: list[int] = Field(
        default_factory=list,
        description="Weekly only: 0=Sunday ... 6=Saturday.",
        examples=[[1, 3, 5]],
    )
    recurrence_end_date: date | None = Field(
        None,
        description="Last date (inclusive) on which a meeting may occur.",
    )
    timezone: str | None = Field(
        None,
        description="Creator's IANA timezone. Defaults to the service default.",
        examples=["America/Chicago"],
    )
    requires_approval: bool = Field(True, description="Whether joining needs approval.")


class RecurringGroupCreate(BaseModel):
    """
    Simplified single-call payload for recurring groups.
    """

    title: str | None = Field(None, description="Group title.")
    description: str | None = Field(None)
    max_participants: int = Field(10, ge=1, le=500)
    start_time: datetime | None = Field(None, description="First meeting instant (ISO 8601).")
    duration_minutes: int = Field(60, ge=1, le=1440)
    attendee_emails: list[str] = Field(default_factory=list)
    frequency: str = Field("weekly", description="daily, weekly or monthly.")
    interval: int = Field(1, description="Every N days/weeks/months.")
    days_of_week: list[int] = Field(default_factory=list, description="0=Sunday ... 6=Saturday.")
    end_date: str | None = Field(
        None,
        description="Optional last date (YYYY-MM-DD); must be after today.",
        examples=["2027-06-30"],
    )
    time_zone: str | None = Field(None, description="IANA timezone of the creator.")


# --------------------------------------------------------------------------
# Update schema (PATCH /study-groups/{id})
# --------------------------------------------------------------------------

class GroupUpdate(BaseModel):
    """
    Partial update. Only fields present in the request body are written.
    """

    title: str | None = Field(default=None)
    description: str | None = Field(default=None)
    max_participants: int | None = Field(default=None, ge=1, le=500)
    scheduled_time: datetime | None = Field(default=None)
    duration_minutes: int | None = Field(default=None, ge=1, le=1440)
    requires_approval: bool | None = Field(default=None)
    recurrence_pattern: str | None = Field(default=None)
    recurrence_interval: int | None = Field(default=None)
    recurrence_days_of_week: list[int] | None = Field(default=None)
    recurrence_end_date: date | None = Field(default=None)
    timezone: str | None = Field(default=None)


# --------------------------------------------------------------------------
# Read schemas
# --------------------------------------------------------------------------

class GroupRead(BaseModel):
    """
    Hydrated representation of a study group returned by create/update/details.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., examples=[12])
    creator_id: int
    title: str
    description: str | None = None
    theme: str | None = None
    max_participants: int
    scheduled_time: datetime | None = None
    duration_minutes: int
    timezone: str
    is_recurring: bool
    recurrence_pattern: str | None = None
    recurrence_interval: int | None = None
    recurrence_days_of_week: list[int] | None = None
    recurrence_end_date: date | None = None
    recurrence_description: str | None = Field(
        None,
        description="Human-readable schedule, e.g. 'Every week on Monday and Wednesday'.",
    )
    next_occurrence: datetime | None = None
    meet_link: str | None = None
    meet_id: str | None = None
    requires_approval: bool
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    calendar_synced: bool | None = Field(
        None,
        description=(
            "Outcome of the calendar call made by this request: true when the "
            "event was created/updated, false when a tolerated calendar failure "
            "occurred, null when no calendar call was needed."
        ),
    )
    instance_count: int | None = Field(
        None,
        description="Number of meeting instances materialised by this request.",
    )


class MeetingInstanceRead(BaseModel):
    """
    One materialised meeting with its derived end time.
    """

    id: int | None = None
    group_id: int
    meeting_date: datetime
    end_time: datetime


class UpcomingMeetingRead(BaseModel):
    """
    Row of GET /study-groups/upcoming-recurring.
    """

    group_id: int
    title: str
    description: str | None = None
    theme: str | None = None
    meet_link: str | None = None
    duration_minutes: int
    recurrence_pattern: str | None = None
    recurrence_interval: int | None = None
    recurrence_days_of_week: list[int] | None = None
    next_occurrence: datetime | None = None
    meeting_id: int
    meeting_date: datetime
    end_time: datetime
    role: str


class GroupMemberRead(BaseModel):
    user_id: int
    name: str | None = None
    email: str
    role: str
    joined_at: datetime


class GroupSummaryRead(BaseModel):
    """
    Row of GET /study-groups/mine.
    """

    id: int
    title: str
    description: str | None = None
    theme: str | None = None
    meet_link: str | None = None
    max_participants: int
    scheduled_time: datetime | None = None
    duration_minutes: int
    is_recurring: bool
    next_occurrence: datetime | None = None
    created_at: datetime | None = None
    role: str
    current_members: int


class GroupDetailRead(BaseModel):
    group: GroupRead
    creator_name: str | None = None
    creator_email: str | None = None
    members: list[GroupMemberRead]
    total_members: int


class NextOccurrenceRefreshSummary(BaseModel):
    """
    Summary payload returned by /internal/refresh-next-occurrences.
    """

    groups_evaluated: int = Field(..., description="Active recurring groups inspected.")
    groups_updated: int = Field(..., description="Groups whose next_occurrence moved forward.")
    run_at: datetime = Field(..., description="Reference instant used for the projection.")
