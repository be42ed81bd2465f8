# fellowship/services/group_scheduler.py
from __future__ import annotations

import logging
import random
from datetime import date, datetime, timezone
from typing import Iterable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.core.config import get_settings
from fellowship.core.exceptions import (
    CalendarIntegrationError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from fellowship.db.partial_update import collect_changes, compile_partial_update
from fellowship.db.types import utcnow
from fellowship.models.study_group import MeetingInstance, StudyGroup, StudyGroupMember
from fellowship.models.user import User
from fellowship.schemas.calendar import CalendarEventSpec
from fellowship.schemas.study_group import (
    GroupCreate,
    GroupRead,
    GroupUpdate,
    NextOccurrenceRefreshSummary,
    RecurringGroupCreate,
    UpcomingMeetingRead,
)
from fellowship.services.calendar_client import CalendarClientError, CalendarProvider
from fellowship.services.credential_store import CredentialStore
from fellowship.services.occurrences import (
    MAX_MEETING_INSTANCES,
    ProjectedMeeting,
    calculate_next_occurrence,
    project_meeting_instances,
)
from fellowship.services.recurrence import (
    RecurrencePattern,
    format_recurrence_description,
    generate_recurrence_rule,
    parse_end_date,
    validate_recurrence_params,
)

logger = logging.getLogger(__name__)

STUDY_THEMES = (
    "Mathematics & Sciences",
    "Programming & Technology",
    "Languages & Literature",
    "History & Philosophy",
    "Business & Economics",
    "Arts & Design",
    "Health & Medicine",
    "Engineering & Architecture",
    "Social Sciences",
    "Environmental Studies",
    "Computer Science",
    "Physics & Chemistry",
    "Biology & Medicine",
    "Psychology & Sociology",
    "Music & Performing Arts",
)

ROLE_ADMIN = "admin"
ROLE_MEMBER = "member"

RECURRENCE_FIELDS = frozenset(
    {
        "recurrence_pattern",
        "recurrence_interval",
        "recurrence_days_of_week",
        "recurrence_end_date",
    }
)
# Fields whose change moves the meeting dates themselves.
PROJECTION_FIELDS = RECURRENCE_FIELDS | {"scheduled_time", "timezone"}
# Fields mirrored on the calendar event.
CALENDAR_FIELDS = PROJECTION_FIELDS | {"title", "description", "duration_minutes"}

MAX_UPCOMING_LIMIT = 100


def resolve_timezone(value: str | None) -> str:
    """
    Validate an IANA timezone label, falling back to ``DEFAULT_TIMEZONE``.
    """
    label = (value or "").strip() or get_settings().DEFAULT_TIMEZONE
    try:
        ZoneInfo(label)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(
            "Invalid timezone",
            details=[f"Unknown timezone '{label}'. Use an IANA name such as 'America/Chicago'."],
            field="timezone",
        )
    return label


def localize(value: datetime, tz: str) -> datetime:
    """
    Aware UTC instant for ``value``; naive values are read as wall time in ``tz``.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=ZoneInfo(tz))
    return value.astimezone(timezone.utc)


def build_group_read(group: StudyGroup, **extra) -> GroupRead:
    read = GroupRead.model_validate(group)
    if group.is_recurring and group.recurrence_pattern:
        read.recurrence_description = format_recurrence_description(
            group.recurrence_pattern,
            group.recurrence_interval or 1,
            group.recurrence_days_of_week,
            group.recurrence_end_date,
        )
    for key, value in extra.items():
        setattr(read, key, value)
    return read


async def get_active_group(db: AsyncSession, group_id: int) -> StudyGroup:
    """
    Active (not soft-deleted) group, or ``NotFoundError``.
    """
    result = await db.execute(
        select(StudyGroup).where(StudyGroup.id == group_id, StudyGroup.is_active.is_(True))
    )
    group = result.scalar_one_or_none()
    if group is None:
        raise NotFoundError("study group", group_id)
    return group


async def get_membership(
    db: AsyncSession,
    group_id: int,
    user_id: int,
    active_only: bool = True,
) -> StudyGroupMember | None:
    stmt = select(StudyGroupMember).where(
        StudyGroupMember.group_id == group_id,
        StudyGroupMember.user_id == user_id,
    )
    if active_only:
        stmt = stmt.where(StudyGroupMember.is_active.is_(True))
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


def clip_to_end_date(
    next_occurrence: datetime | None,
    end_date: date | None,
    tz: str,
) -> datetime | None:
    """
    ``None`` when ``next_occurrence`` falls after the series' last local date.
    """
    if next_occurrence is None or end_date is None:
        return next_occurrence
    if next_occurrence.astimezone(ZoneInfo(tz)).date() > end_date:
        return None
    return next_occurrence


def _event_spec(group: StudyGroup, attendee_emails: Iterable[str] = ()) -> CalendarEventSpec:
    recurrence_rule = None
    if group.is_recurring:
        recurrence_rule = generate_recurrence_rule(
            group.recurrence_pattern,
            group.recurrence_interval or 1,
            group.recurrence_days_of_week,
            group.recurrence_end_date,
            tz=group.timezone,
        )
    projected = ProjectedMeeting(group.scheduled_time, group.duration_minutes)
    return CalendarEventSpec(
        title=group.title,
        description=group.description,
        start_time=projected.meeting_date,
        end_time=projected.end_time,
        attendee_emails=[email.strip() for email in attendee_emails if email and email.strip()],
        timezone=group.timezone,
        recurrence_rule=recurrence_rule,
    )


class StudyGroupScheduler:
    """
    Coordinates study group writes across the database and the creator's calendar.

    Consistency rules
    -----------------
    - Recurring create: calendar failure rolls everything back
      (``CalendarIntegrationError``); a recurring group without its master
      event is not a valid state.
    - One-off create: calendar failure is logged; the group is kept without a
      meet link and ``calendar_synced`` is false.
    - Delete: calendar event deletion happens first and is fatal on failure.
    - Update: calendar sync is best-effort and reported via ``calendar_synced``.

    Validation and authorisation are checked before any write.
    """

    def __init__(
        self,
        db: AsyncSession,
        calendar: CalendarProvider,
        credentials: CredentialStore | None = None,
    ) -> None:
        self.db = db
        self.calendar = calendar
        self.credentials = credentials or CredentialStore(db)

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    async def _ensure_calendar_access(self, user_id: int) -> None:
        if not await self.credentials.user_exists(user_id):
            raise NotFoundError("user", user_id)
        if not await self.credentials.has_calendar_access(user_id):
            raise PermissionDeniedError(
                "Google Calendar access not granted. Please authenticate with Google first.",
                context={"user_id": user_id},
            )

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def _validate_create(self, payload: GroupCreate, tz: str) -> tuple[str, datetime | None]:
        title = (payload.title or "").strip()
        if not title:
            raise ValidationError("Study group title is required", field="title")

        scheduled_time = localize(payload.scheduled_time, tz) if payload.scheduled_time else None
        if not payload.is_recurring:
            return title, scheduled_time

        if scheduled_time is None:
            raise ValidationError(
                "Scheduled time is required for recurring meetings",
                field="scheduled_time",
            )

        errors = validate_recurrence_params(
            payload.recurrence_pattern,
            payload.recurrence_interval,
            payload.recurrence_days_of_week,
            payload.recurrence_end_date,
        )
        if errors:
            raise ValidationError("Invalid recurrence parameters", details=errors)
        return title, scheduled_time

    async def create_group(
        self,
        creator_id: int,
        payload: GroupCreate,
        now: datetime | None = None,
    ) -> GroupRead:
        """
        Create a study group, its calendar event, meeting instances and memberships.

        Order within the transaction: group row, calendar event, instances,
        creator membership, invitee memberships. The whole sequence commits
        once at the end.
        """
        now = now or utcnow()
        tz = resolve_timezone(payload.timezone)
        title, scheduled_time = self._validate_create(payload, tz)
        await self._ensure_calendar_access(creator_id)

        is_recurring = payload.is_recurring
        pattern = RecurrencePattern.parse(payload.recurrence_pattern) if is_recurring else None

        next_occurrence = scheduled_time
        if pattern is not None:
            next_occurrence = calculate_next_occurrence(
                scheduled_time,
                pattern,
                payload.recurrence_interval,
                payload.recurrence_days_of_week,
                now=now,
                tz=tz,
            )
            next_occurrence = clip_to_end_date(next_occurrence, payload.recurrence_end_date, tz)

        group = StudyGroup(
            creator_id=creator_id,
            title=title,
            description=payload.description,
            theme=random.choice(STUDY_THEMES),
            max_participants=payload.max_participants,
            scheduled_time=scheduled_time,
            duration_minutes=payload.duration_minutes,
            timezone=tz,
            is_recurring=is_recurring,
            recurrence_pattern=pattern.value if pattern else None,
            recurrence_interval=payload.recurrence_interval if pattern else None,
            recurrence_days_of_week=(
                sorted(set(payload.recurrence_days_of_week))
                if pattern is RecurrencePattern.WEEKLY
                else None
            ),
            recurrence_end_date=payload.recurrence_end_date if pattern else None,
            next_occurrence=next_occurrence,
            requires_approval=payload.requires_approval,
            is_active=True,
        )
        self.db.add(group)
        await self.db.flush()

        calendar_synced: bool | None = None
        if scheduled_time is not None:
            try:
                result = await self.calendar.create_event(
                    creator_id, _event_spec(group, payload.attendee_emails)
                )
            except CalendarClientError as exc:
                if is_recurring:
                    await self.db.rollback()
                    logger.error(
                        "Calendar event creation failed for recurring group %r (creator=%s): %s",
                        title,
                        creator_id,
                        exc,
                    )
                    raise CalendarIntegrationError(
                        "Failed to create recurring study group: Google Calendar integration failed",
                        provider_message=str(exc),
                        context={"creator_id": creator_id},
                    ) from exc
                logger.warning(
                    "Calendar event creation failed for group %s; continuing without a meet link: %s",
                    group.id,
                    exc,
                )
                calendar_synced = False
            else:
                group.calendar_event_id = result.event_id
                group.meet_link = result.meet_link
                group.meet_id = result.meet_id
                calendar_synced = True

        instances: list[ProjectedMeeting] = []
        if is_recurring:
            instances = await self.create_recurring_meeting_instances(group)

        self.db.add(StudyGroupMember(group_id=group.id, user_id=creator_id, role=ROLE_ADMIN))
        await self.db.flush()

        invited = await self._add_invitees(group.id, creator_id, payload.attendee_emails)

        await self.db.refresh(group)
        await self.db.commit()

        logger.info(
            "Created study group %s (creator=%s, recurring=%s, instances=%d, invitees=%d, meet=%s)",
            group.id,
            creator_id,
            is_recurring,
            len(instances),
            invited,
            bool(group.meet_link),
        )
        return build_group_read(
            group,
            calendar_synced=calendar_synced,
            instance_count=len(instances) if is_recurring else None,
        )

    async def create_recurring_group(
        self,
        creator_id: int,
        payload: RecurringGroupCreate,
        now: datetime | None = None,
    ) -> GroupRead:
        """
        Simplified single-call variant of ``create_group`` for recurring groups.

        Besides the regular recurrence checks, an end date must lie strictly
        after today in the group's timezone.
        """
        now = now or utcnow()
        tz = resolve_timezone(payload.time_zone)

        if not (payload.title or "").strip() or payload.start_time is None:
            raise ValidationError("Title and start time are required")

        frequency = RecurrencePattern.parse(payload.frequency)
        if frequency is None:
            raise ValidationError(
                "Frequency must be daily, weekly, or monthly",
                field="frequency",
            )
        if frequency is RecurrencePattern.WEEKLY and not payload.days_of_week:
            raise ValidationError(
                "Weekly frequency requires specifying days of the week (0=Sunday, 1=Monday, etc.)",
                field="days_of_week",
            )
        if any(day < 0 or day > 6 for day in payload.days_of_week):
            raise ValidationError(
                "Days of week must be 0-6 (0=Sunday, 1=Monday, etc.)",
                field="days_of_week",
            )

        end_date: date | None = None
        if payload.end_date:
            try:
                end_date = parse_end_date(payload.end_date)
            except ValueError:
                raise ValidationError(
                    "Invalid end date format. Please use YYYY-MM-DD format.",
                    field="end_date",
                )
            today = now.astimezone(ZoneInfo(tz)).date()
            if end_date <= today:
                raise ValidationError("End date must be in the future.", field="end_date")

        return await self.create_group(
            creator_id,
            GroupCreate(
                title=payload.title,
                description=payload.description,
                max_participants=payload.max_participants,
                scheduled_time=payload.start_time,
                duration_minutes=payload.duration_minutes,
                attendee_emails=payload.attendee_emails,
                is_recurring=True,
                recurrence_pattern=frequency.value,
                recurrence_interval=payload.interval,
                recurrence_days_of_week=payload.days_of_week,
                recurrence_end_date=end_date,
                timezone=tz,
            ),
            now=now,
        )

    async def create_recurring_meeting_instances(
        self,
        group: StudyGroup,
        max_instances: int = MAX_MEETING_INSTANCES,
    ) -> list[ProjectedMeeting]:
        """
        Project the group's recurrence and persist one MeetingInstance per meeting.

        Runs inside the caller's transaction; nothing is committed here.
        """
        meetings = project_meeting_instances(
            start_time=group.scheduled_time,
            duration_minutes=group.duration_minutes,
            pattern=group.recurrence_pattern,
            interval=group.recurrence_interval or 1,
            days_of_week=group.recurrence_days_of_week,
            end_date=group.recurrence_end_date,
            max_instances=max_instances,
            tz=group.timezone,
        )
        self.db.add_all(
            MeetingInstance(group_id=group.id, meeting_date=meeting.meeting_date)
            for meeting in meetings
        )
        await self.db.flush()

        logger.info(
            "Materialised %d meeting instances for group %s (%s to %s)",
            len(meetings),
            group.id,
            meetings[0].meeting_date.isoformat() if meetings else None,
            meetings[-1].meeting_date.isoformat() if meetings else None,
        )
        return meetings

    async def _add_invitees(
        self,
        group_id: int,
        creator_id: int,
        attendee_emails: Iterable[str],
    ) -> int:
        """
        Add invitees who already have an account. Each insert runs in its own
        SAVEPOINT so one failure never aborts the group creation.
        """
        added = 0
        seen: set[int] = {creator_id}
        for email in attendee_emails:
            normalized = (email or "").strip().lower()
            if not normalized:
                continue
            try:
                async with self.db.begin_nested():
                    result = await self.db.execute(
                        select(User.id).where(func.lower(User.email) == normalized)
                    )
                    user_id = result.scalar_one_or_none()
                    if user_id is None:
                        logger.info("Invited user %s not found; calendar invite only", normalized)
                    elif user_id not in seen:
                        seen.add(user_id)
                        self.db.add(
                            StudyGroupMember(group_id=group_id, user_id=user_id, role=ROLE_MEMBER)
                        )
                        added += 1
            except SQLAlchemyError as exc:
                logger.warning("Failed to add invited user %s to group %s: %s", normalized, group_id, exc)
        return added

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def update_group(
        self,
        group_id: int,
        requester_id: int,
        patch: GroupUpdate,
        now: datetime | None = None,
    ) -> GroupRead:
        """
        Apply a partial update. Only group admins may update.

        When the meeting dates of a recurring group change, ``next_occurrence``
        is recomputed and the instance set is regenerated. The calendar event
        is then updated on a best-effort basis.
        """
        now = now or utcnow()
        group = await get_active_group(self.db, group_id)
        membership = await get_membership(self.db, group_id, requester_id)
        if membership is None or membership.role != ROLE_ADMIN:
            raise PermissionDeniedError(
                "Only group admins can update the group.",
                context={"group_id": group_id, "user_id": requester_id},
            )

        changes = collect_changes(patch)
        if not changes:
            return build_group_read(group)

        normalized: dict = {}
        if "title" in changes:
            title = (changes["title"] or "").strip()
            if not title:
                raise ValidationError("Study group title is required", field="title")
            normalized["title"] = title
        for field in ("max_participants", "duration_minutes", "requires_approval"):
            if field in changes and changes[field] is None:
                raise ValidationError(f"'{field}' cannot be cleared", field=field)

        tz = resolve_timezone(changes["timezone"]) if "timezone" in changes else group.timezone
        if "timezone" in changes:
            normalized["timezone"] = tz
        scheduled_time = group.scheduled_time
        if "scheduled_time" in changes:
            scheduled_time = localize(changes["scheduled_time"], tz) if changes["scheduled_time"] else None
            normalized["scheduled_time"] = scheduled_time

        extra_values: dict = {}
        regenerate = False
        if group.is_recurring:
            pattern = changes.get("recurrence_pattern", group.recurrence_pattern)
            interval = changes.get("recurrence_interval", group.recurrence_interval)
            days = changes.get("recurrence_days_of_week", group.recurrence_days_of_week)
            end_date = changes.get("recurrence_end_date", group.recurrence_end_date)

            if scheduled_time is None:
                raise ValidationError(
                    "Scheduled time is required for recurring meetings",
                    field="scheduled_time",
                )
            if changes.keys() & RECURRENCE_FIELDS:
                errors = validate_recurrence_params(pattern, interval, days, end_date)
                if errors:
                    raise ValidationError("Invalid recurrence parameters", details=errors)
                parsed = RecurrencePattern.parse(pattern)
                if "recurrence_pattern" in changes:
                    normalized["recurrence_pattern"] = parsed.value
                if parsed is not RecurrencePattern.WEEKLY:
                    days = None
                    normalized["recurrence_days_of_week"] = None
                elif "recurrence_days_of_week" in changes:
                    normalized["recurrence_days_of_week"] = sorted(set(days))

            if changes.keys() & PROJECTION_FIELDS:
                regenerate = True
                extra_values["next_occurrence"] = clip_to_end_date(
                    calculate_next_occurrence(scheduled_time, pattern, interval, days, now=now, tz=tz),
                    parse_end_date(end_date),
                    tz,
                )
        elif changes.keys() & RECURRENCE_FIELDS:
            raise ValidationError(
                "Recurrence settings can only be changed on recurring groups",
                details=sorted(changes.keys() & RECURRENCE_FIELDS),
            )
        elif "scheduled_time" in changes:
            extra_values["next_occurrence"] = scheduled_time

        if normalized:
            patch = patch.model_copy(update=normalized)
        stmt = compile_partial_update(StudyGroup, group_id, patch, extra_values=extra_values)
        if stmt is not None:
            await self.db.execute(stmt)
            await self.db.refresh(group)

        instance_count: int | None = None
        if regenerate:
            await self.db.execute(delete(MeetingInstance).where(MeetingInstance.group_id == group_id))
            instance_count = len(await self.create_recurring_meeting_instances(group))

        calendar_synced: bool | None = None
        if group.calendar_event_id and group.scheduled_time and changes.keys() & CALENDAR_FIELDS:
            try:
                await self.calendar.update_event(group.creator_id, group.calendar_event_id, _event_spec(group))
                calendar_synced = True
            except CalendarClientError as exc:
                # Tolerated: the stored schedule may now differ from the live event.
                logger.warning(
                    "Calendar event %s update failed for group %s; database changes kept: %s",
                    group.calendar_event_id,
                    group_id,
                    exc,
                )
                calendar_synced = False

        await self.db.commit()

        logger.info(
            "Updated study group %s (fields=%s, regenerated=%s, calendar_synced=%s)",
            group_id,
            sorted(changes),
            regenerate,
            calendar_synced,
        )
        return build_group_read(group, calendar_synced=calendar_synced, instance_count=instance_count)

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete_group(self, group_id: int, requester_id: int) -> None:
        """
        Soft-delete a group. Only the creator may delete.

        The calendar event goes first; if that fails nothing is changed.
        Memberships are deactivated and meeting instances removed.
        """
        group = await get_active_group(self.db, group_id)
        if group.creator_id != requester_id:
            raise PermissionDeniedError(
                "Access denied. Only the group creator can delete the group.",
                context={"group_id": group_id, "user_id": requester_id},
            )

        event_id = group.calendar_event_id
        if event_id:
            try:
                await self.calendar.delete_event(group.creator_id, event_id)
            except CalendarClientError as exc:
                logger.error(
                    "Calendar event %s deletion failed; group %s left unchanged: %s",
                    event_id,
                    group_id,
                    exc,
                )
                # Expires every loaded instance; only locals are used below.
                await self.db.rollback()
                raise CalendarIntegrationError(
                    "Failed to delete study group: Google Calendar integration failed",
                    provider_message=str(exc),
                    context={"group_id": group_id},
                ) from exc

        group.is_active = False
        group.calendar_event_id = None
        await self.db.execute(
            update(StudyGroupMember)
            .where(StudyGroupMember.group_id == group_id)
            .values(is_active=False)
        )
        result = await self.db.execute(delete(MeetingInstance).where(MeetingInstance.group_id == group_id))
        await self.db.commit()

        logger.info(
            "Deleted study group %s (creator=%s, instances removed=%s)",
            group_id,
            requester_id,
            result.rowcount,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_upcoming_recurring_meetings(
        self,
        user_id: int,
        limit: int = 10,
        now: datetime | None = None,
    ) -> list[UpcomingMeetingRead]:
        """
        Upcoming instances of active recurring groups the user belongs to, soonest first.
        """
        now = now or utcnow()
        limit = max(1, min(limit, MAX_UPCOMING_LIMIT))

        stmt = (
            select(StudyGroup, MeetingInstance, StudyGroupMember.role)
            .join(StudyGroupMember, StudyGroupMember.group_id == StudyGroup.id)
            .join(MeetingInstance, MeetingInstance.group_id == StudyGroup.id)
            .where(
                StudyGroupMember.user_id == user_id,
                StudyGroupMember.is_active.is_(True),
                StudyGroup.is_active.is_(True),
                StudyGroup.is_recurring.is_(True),
                MeetingInstance.meeting_date >= now,
            )
            .order_by(MeetingInstance.meeting_date.asc(), MeetingInstance.id.asc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)

        meetings: list[UpcomingMeetingRead] = []
        for group, instance, role in result.all():
            projected = ProjectedMeeting(instance.meeting_date, group.duration_minutes)
            meetings.append(
                UpcomingMeetingRead(
                    group_id=group.id,
                    title=group.title,
                    description=group.description,
                    theme=group.theme,
                    meet_link=group.meet_link,
                    duration_minutes=group.duration_minutes,
                    recurrence_pattern=group.recurrence_pattern,
                    recurrence_interval=group.recurrence_interval,
                    recurrence_days_of_week=group.recurrence_days_of_week,
                    next_occurrence=group.next_occurrence,
                    meeting_id=instance.id,
                    meeting_date=projected.meeting_date,
                    end_time=projected.end_time,
                    role=role,
                )
            )
        return meetings


async def refresh_next_occurrences(
    db: AsyncSession,
    now: datetime | None = None,
) -> NextOccurrenceRefreshSummary:
    """
    Roll ``next_occurrence`` forward for active recurring groups whose stored
    value is missing or already in the past.

    Intended to be triggered periodically (see /internal/refresh-next-occurrences).
    """
    now = now or utcnow()
    result = await db.execute(
        select(StudyGroup).where(
            StudyGroup.is_active.is_(True),
            StudyGroup.is_recurring.is_(True),
            StudyGroup.scheduled_time.is_not(None),
        )
    )
    groups = list(result.scalars().all())

    updated = 0
    for group in groups:
        if group.next_occurrence is not None and group.next_occurrence > now:
            continue
        next_occurrence = calculate_next_occurrence(
            group.scheduled_time,
            group.recurrence_pattern,
            group.recurrence_interval or 1,
            group.recurrence_days_of_week,
            now=now,
            tz=group.timezone,
        )
        if next_occurrence is None:
            logger.warning("Could not project next occurrence for group %s", group.id)
            continue
        next_occurrence = clip_to_end_date(next_occurrence, group.recurrence_end_date, group.timezone)
        if next_occurrence != group.next_occurrence:
            group.next_occurrence = next_occurrence
            updated += 1

    await db.commit()
    logger.info("Refreshed next occurrences: evaluated=%d updated=%d", len(groups), updated)
    return NextOccurrenceRefreshSummary(
        groups_evaluated=len(groups),
        groups_updated=updated,
        run_at=now,
    )
