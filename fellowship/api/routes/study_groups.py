# fellowship/api/routes/study_groups.py
from http import HTTPStatus

from fastapi import APIRouter, Depends, Path, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.api.dependencies.current_user import get_current_user_id
from fellowship.api.dependencies.scheduling import get_scheduler
from fellowship.db.session import get_db
from fellowship.schemas.study_group import (
    GroupCreate,
    GroupDetailRead,
    GroupMemberRead,
    GroupRead,
    GroupSummaryRead,
    GroupUpdate,
    MeetingInstanceRead,
    RecurringGroupCreate,
    UpcomingMeetingRead,
)
from fellowship.services import memberships
from fellowship.services.group_scheduler import StudyGroupScheduler

router = APIRouter(prefix="/study-groups", tags=["Study Groups"])

_ERROR_EXAMPLE = {
    "error": "validation_error",
    "message": "Invalid recurrence parameters",
    "details": ["Weekly recurrence requires at least one day of the week."],
}

GROUP_ID_PATH = Path(..., description="Numeric ID of the study group.", ge=1, examples=[12])


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=GroupRead,
    status_code=HTTPStatus.CREATED,
    summary="Create a study group",
    description=(
        "Create a one-off or recurring study group.\n\n"
        "- When `scheduled_time` is set, a Google Calendar event with a Meet link is "
        "created in the creator's calendar (with an RRULE when recurring).\n"
        "- Recurring groups get up to 52 materialised meeting instances.\n"
        "- A calendar failure aborts a **recurring** create (502) but is tolerated "
        "for a one-off group, which is then returned with `calendar_synced=false`.\n"
        "- Invitees who already have an account are added as members."
    ),
    responses={
        400: {"description": "Invalid input.", "content": {"application/json": {"example": _ERROR_EXAMPLE}}},
        403: {"description": "Creator has not granted Google Calendar access."},
        404: {"description": "Creator account not found."},
        502: {"description": "Google Calendar event creation failed for a recurring group."},
    },
)
async def create_group(
    payload: GroupCreate,
    user_id: int = Depends(get_current_user_id),
    scheduler: StudyGroupScheduler = Depends(get_scheduler),
) -> GroupRead:
    return await scheduler.create_group(user_id, payload)


@router.post(
    "/recurring",
    response_model=GroupRead,
    status_code=HTTPStatus.CREATED,
    summary="Create a recurring study group (simplified)",
    description=(
        "Single-call variant for recurring groups using `frequency`, `interval`, "
        "`days_of_week` (0=Sunday ... 6=Saturday), `end_date` (YYYY-MM-DD, must be "
        "after today) and `time_zone`."
    ),
    responses={
        400: {"description": "Invalid input."},
        403: {"description": "Creator has not granted Google Calendar access."},
        502: {"description": "Google Calendar event creation failed."},
    },
)
async def create_recurring_group(
    payload: RecurringGroupCreate,
    user_id: int = Depends(get_current_user_id),
    scheduler: StudyGroupScheduler = Depends(get_scheduler),
) -> GroupRead:
    return await scheduler.create_recurring_group(user_id, payload)


# ---------------------------------------------------------------------------
# Collection reads (declared before /{group_id})
# ---------------------------------------------------------------------------


@router.get(
    "/mine",
    response_model=list[GroupSummaryRead],
    summary="List my study groups",
    description="Active groups the caller is an active member of, newest first.",
)
async def list_my_groups(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> list[GroupSummaryRead]:
    return await memberships.list_user_groups(db, user_id)


@router.get(
    "/upcoming-recurring",
    response_model=list[UpcomingMeetingRead],
    summary="List my upcoming recurring meetings",
    description=(
        "Upcoming materialised meetings of active recurring groups the caller "
        "belongs to, ordered by meeting date."
    ),
)
async def list_upcoming_recurring(
    limit: int = Query(
        default=10,
        ge=1,
        le=100,
        description="Maximum number of meetings to return.",
        examples=[10],
    ),
    user_id: int = Depends(get_current_user_id),
    scheduler: StudyGroupScheduler = Depends(get_scheduler),
) -> list[UpcomingMeetingRead]:
    return await scheduler.list_upcoming_recurring_meetings(user_id, limit=limit)


# ---------------------------------------------------------------------------
# Single group
# ---------------------------------------------------------------------------


@router.get(
    "/{group_id}",
    response_model=GroupDetailRead,
    summary="Get study group details",
    description="Group, creator and active members. Members only.",
    responses={
        403: {"description": "Caller is not a member of the group."},
        404: {"description": "Group not found or deleted."},
    },
)
async def get_group(
    group_id: int = GROUP_ID_PATH,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> GroupDetailRead:
    return await memberships.get_group_details(db, group_id, user_id)


@router.get(
    "/{group_id}/instances",
    response_model=list[MeetingInstanceRead],
    summary="List materialised meeting instances",
    description="All stored meetings of the group in date order, with derived end times.",
)
async def list_group_instances(
    group_id: int = GROUP_ID_PATH,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> list[MeetingInstanceRead]:
    return await memberships.list_group_instances(db, group_id, user_id)


@router.patch(
    "/{group_id}",
    response_model=GroupRead,
    summary="Partially update a study group",
    description=(
        "Only fields present in the body are written. Group admins only.\n\n"
        "Changing the schedule or recurrence of a recurring group regenerates its "
        "meeting instances. The calendar event update is best-effort: on failure "
        "the database change is kept and `calendar_synced` is `false`."
    ),
    responses={
        400: {"description": "Invalid input."},
        403: {"description": "Caller is not a group admin."},
        404: {"description": "Group not found or deleted."},
    },
)
async def update_group(
    payload: GroupUpdate,
    group_id: int = GROUP_ID_PATH,
    user_id: int = Depends(get_current_user_id),
    scheduler: StudyGroupScheduler = Depends(get_scheduler),
) -> GroupRead:
    return await scheduler.update_group(group_id, user_id, payload)


@router.delete(
    "/{group_id}",
    status_code=HTTPStatus.NO_CONTENT,
    summary="Delete a study group",
    description=(
        "Creator only. The Google Calendar event is deleted first; if that fails "
        "the group is left untouched (502). Otherwise the group is soft-deleted, "
        "memberships deactivated and meeting instances removed."
    ),
    responses={
        403: {"description": "Caller is not the creator."},
        404: {"description": "Group not found or already deleted."},
        502: {"description": "Google Calendar event deletion failed."},
    },
)
async def delete_group(
    group_id: int = GROUP_ID_PATH,
    user_id: int = Depends(get_current_user_id),
    scheduler: StudyGroupScheduler = Depends(get_scheduler),
) -> Response:
    await scheduler.delete_group(group_id, user_id)
    return Response(status_code=HTTPStatus.NO_CONTENT)


@router.post(
    "/{group_id}/join",
    response_model=GroupMemberRead,
    summary="Join a study group",
    responses={
        404: {"description": "Group not found or deleted."},
        409: {"description": "Already a member, or the group is full."},
    },
)
async def join_group(
    group_id: int = GROUP_ID_PATH,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> GroupMemberRead:
    return await memberships.join_group(db, group_id, user_id)


@router.post(
    "/{group_id}/leave",
    status_code=HTTPStatus.NO_CONTENT,
    summary="Leave a study group",
    responses={
        400: {"description": "Not a member, or the caller is the group admin."},
        404: {"description": "Group not found or deleted."},
    },
)
async def leave_group(
    group_id: int = GROUP_ID_PATH,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Response:
    await memberships.leave_group(db, group_id, user_id)
    return Response(status_code=HTTPStatus.NO_CONTENT)
