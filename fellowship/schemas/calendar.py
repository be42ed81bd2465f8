# fellowship/schemas/calendar.py
from datetime import datetime

from pydantic import BaseModel, Field


class CalendarEventSpec(BaseModel):
    """
    Provider-neutral description of a calendar event to create or update.

    ``start_time``/``end_time`` are absolute instants; the provider renders
    them as wall-clock time in ``timezone``.
    """

    title: str = Field(..., description="Event summary shown in the calendar.")
    description: str | None = Field(None, description="Event body text.")
    start_time: datetime = Field(..., description="Aware start instant of the (first) event.")
    end_time: datetime = Field(..., description="Aware end instant of the (first) event.")
    attendee_emails: list[str] = Field(
        default_factory=list,
        description="Email addresses invited to the event.",
    )
    timezone: str = Field("UTC", description="IANA timezone label for the event.")
    recurrence_rule: str | None = Field(
        None,
        description="RFC 5545 rule in the provider's native grammar, e.g. 'RRULE:FREQ=WEEKLY;BYDAY=MO'.",
    )


class CalendarEventResult(BaseModel):
    """
    Identifiers returned by the provider after creating/updating an event.
    """

    event_id: str = Field(..., description="Provider event identifier (needed to update/delete).")
    meet_link: str | None = Field(None, description="Video-conference join URL, if provisioned.")
    meet_id: str | None = Field(None, description="Conference identifier, if provisioned.")
    raw: dict | None = Field(None, description="Raw provider payload for debugging purposes.")
