# tests/test_memberships.py
from datetime import date, datetime, timedelta, timezone

import pytest

from fellowship.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from fellowship.models.study_group import StudyGroupMember
from fellowship.schemas.study_group import GroupCreate
from fellowship.services import memberships
from fellowship.services.group_scheduler import StudyGroupScheduler, get_active_group, get_membership

UTC = timezone.utc
NOW = datetime(2030, 1, 1, 12, 0, tzinfo=UTC)
MONDAY = datetime(2030, 1, 7, 18, 0, tzinfo=UTC)


async def _create_group(db, calendar, creator_id: int, **overrides):
    data = dict(title="Psalms", scheduled_time=MONDAY, duration_minutes=45, max_participants=3)
    data.update(overrides)
    return await StudyGroupScheduler(db, calendar).create_group(creator_id, GroupCreate(**data), now=NOW)


@pytest.mark.asyncio
async def test_list_user_groups_reports_role_and_member_count(db, calendar, make_user):
    creator = await make_user()
    friend = await make_user()
    first = await _create_group(db, calendar, creator.id, title="First")
    second = await _create_group(db, calendar, creator.id, title="Second")
    await memberships.join_group(db, first.id, friend.id)

    mine = await memberships.list_user_groups(db, creator.id)
    theirs = await memberships.list_user_groups(db, friend.id)

    assert [g.id for g in mine] == [second.id, first.id]
    assert {g.id: g.current_members for g in mine} == {first.id: 2, second.id: 1}
    assert all(g.role == "admin" for g in mine)

    assert [(g.id, g.role) for g in theirs] == [(first.id, "member")]


@pytest.mark.asyncio
async def test_deleted_groups_are_not_listed(db, calendar, make_user):
    creator = await make_user()
    group = await _create_group(db, calendar, creator.id)

    await StudyGroupScheduler(db, calendar).delete_group(group.id, creator.id)

    assert await memberships.list_user_groups(db, creator.id) == []


@pytest.mark.asyncio
async def test_group_details_list_members_for_members_only(db, calendar, make_user):
    creator = await make_user(name="Ruth")
    friend = await make_user()
    stranger = await make_user()
    group = await _create_group(db, calendar, creator.id)
    await memberships.join_group(db, group.id, friend.id)

    details = await memberships.get_group_details(db, group.id, friend.id)

    assert details.group.id == group.id
    assert details.creator_name == "Ruth"
    assert details.total_members == 2
    assert [(m.user_id, m.role) for m in details.members] == [
        (creator.id, "admin"),
        (friend.id, "member"),
    ]

    with pytest.raises(PermissionDeniedError):
        await memberships.get_group_details(db, group.id, stranger.id)

    with pytest.raises(NotFoundError):
        await memberships.get_group_details(db, 9999, creator.id)


@pytest.mark.asyncio
async def test_join_rejects_existing_members_and_full_groups(db, calendar, make_user):
    creator = await make_user()
    group = await _create_group(db, calendar, creator.id, max_participants=2)
    friend = await make_user()
    late = await make_user()

    joined = await memberships.join_group(db, group.id, friend.id)
    assert joined.role == "member"
    assert joined.email == friend.email

    with pytest.raises(ConflictError) as already:
        await memberships.join_group(db, group.id, friend.id)
    assert already.value.message == "You are already a member of this group."

    with pytest.raises(ConflictError) as full:
        await memberships.join_group(db, group.id, late.id)
    assert full.value.message == "This study group is full."


@pytest.mark.asyncio
async def test_join_unknown_user_or_group(db, calendar, make_user):
    creator = await make_user()
    group = await _create_group(db, calendar, creator.id)

    with pytest.raises(NotFoundError):
        await memberships.join_group(db, group.id, 4242)
    with pytest.raises(NotFoundError):
        await memberships.join_group(db, 4242, creator.id)


@pytest.mark.asyncio
async def test_leave_then_rejoin_reactivates_membership(db, calendar, make_user, count_rows):
    creator = await make_user()
    friend = await make_user()
    group = await _create_group(db, calendar, creator.id)
    await memberships.join_group(db, group.id, friend.id)

    await memberships.leave_group(db, group.id, friend.id)

    assert await count_rows(
        StudyGroupMember,
        StudyGroupMember.group_id == group.id,
        StudyGroupMember.user_id == friend.id,
        StudyGroupMember.is_active.is_(True),
    ) == 0

    await memberships.join_group(db, group.id, friend.id)

    assert await count_rows(
        StudyGroupMember,
        StudyGroupMember.group_id == group.id,
        StudyGroupMember.user_id == friend.id,
    ) == 1
    assert await count_rows(
        StudyGroupMember,
        StudyGroupMember.group_id == group.id,
        StudyGroupMember.is_active.is_(True),
    ) == 2


@pytest.mark.asyncio
async def test_admin_and_non_members_cannot_leave(db, calendar, make_user):
    creator = await make_user()
    stranger = await make_user()
    group = await _create_group(db, calendar, creator.id)

    with pytest.raises(ValidationError) as admin_exc:
        await memberships.leave_group(db, group.id, creator.id)
    assert admin_exc.value.message == (
        "Group admins cannot leave their own group. Delete the group instead."
    )

    with pytest.raises(ValidationError) as stranger_exc:
        await memberships.leave_group(db, group.id, stranger.id)
    assert stranger_exc.value.message == "You are not a member of this group."


@pytest.mark.asyncio
async def test_list_group_instances_in_date_order_with_end_times(db, calendar, make_user):
    creator = await make_user()
    stranger = await make_user()
    group = await _create_group(
        db,
        calendar,
        creator.id,
        is_recurring=True,
        recurrence_pattern="daily",
        recurrence_end_date=date(2030, 1, 9),
    )

    instances = await memberships.list_group_instances(db, group.id, creator.id)

    assert [i.meeting_date for i in instances] == [
        MONDAY,
        MONDAY + timedelta(days=1),
        MONDAY + timedelta(days=2),
    ]
    assert all(i.end_time - i.meeting_date == timedelta(minutes=45) for i in instances)
    assert all(i.group_id == group.id for i in instances)

    with pytest.raises(PermissionDeniedError):
        await memberships.list_group_instances(db, group.id, stranger.id)


@pytest.mark.asyncio
async def test_shared_lookups_ignore_inactive_rows_unless_asked(db, calendar, make_user):
    creator = await make_user()
    friend = await make_user()
    group = await _create_group(db, calendar, creator.id)
    await memberships.join_group(db, group.id, friend.id)
    await memberships.leave_group(db, group.id, friend.id)

    assert (await get_active_group(db, group.id)).id == group.id
    assert await get_membership(db, group.id, friend.id) is None
    former = await get_membership(db, group.id, friend.id, active_only=False)
    assert former is not None and former.is_active is False
    assert (await get_membership(db, group.id, creator.id)).role == "admin"

    await StudyGroupScheduler(db, calendar).delete_group(group.id, creator.id)

    with pytest.raises(NotFoundError):
        await get_active_group(db, group.id)
