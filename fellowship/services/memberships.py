# fellowship/services/memberships.py
from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from fellowship.models.study_group import MeetingInstance, StudyGroup, StudyGroupMember
from fellowship.models.user import User
from fellowship.schemas.study_group import (
    GroupDetailRead,
    GroupMemberRead,
    GroupSummaryRead,
    MeetingInstanceRead,
)
from fellowship.services.group_scheduler import (
    ROLE_ADMIN,
    ROLE_MEMBER,
    build_group_read,
    get_active_group,
    get_membership,
)
from fellowship.services.occurrences import ProjectedMeeting

logger = logging.getLogger(__name__)


async def _count_active_members(db: AsyncSession, group_id: int) -> int:
    result = await db.execute(
        select(func.count(StudyGroupMember.id)).where(
            StudyGroupMember.group_id == group_id,
            StudyGroupMember.is_active.is_(True),
        )
    )
    return int(result.scalar_one())


async def _require_member(db: AsyncSession, group_id: int, user_id: int) -> StudyGroupMember:
    membership = await get_membership(db, group_id, user_id)
    if membership is None:
        raise PermissionDeniedError(
            "Access denied. You are not a member of this group.",
            context={"group_id": group_id, "user_id": user_id},
        )
    return membership


async def list_user_groups(db: AsyncSession, user_id: int) -> list[GroupSummaryRead]:
    """
    Active groups the user belongs to, newest first, with role and member count.
    """
    member_counts = (
        select(
            StudyGroupMember.group_id.label("group_id"),
            func.count(StudyGroupMember.id).label("current_members"),
        )
        .where(StudyGroupMember.is_active.is_(True))
        .group_by(StudyGroupMember.group_id)
        .subquery()
    )
    stmt = (
        select(StudyGroup, StudyGroupMember.role, member_counts.c.current_members)
        .join(StudyGroupMember, StudyGroupMember.group_id == StudyGroup.id)
        .outerjoin(member_counts, member_counts.c.group_id == StudyGroup.id)
        .where(
            StudyGroupMember.user_id == user_id,
            StudyGroupMember.is_active.is_(True),
            StudyGroup.is_active.is_(True),
        )
        .order_by(StudyGroup.created_at.desc(), StudyGroup.id.desc())
    )
    result = await db.execute(stmt)

    return [
        GroupSummaryRead(
            id=group.id,
            title=group.title,
            description=group.description,
            theme=group.theme,
            meet_link=group.meet_link,
            max_participants=group.max_participants,
            scheduled_time=group.scheduled_time,
            duration_minutes=group.duration_minutes,
            is_recurring=group.is_recurring,
            next_occurrence=group.next_occurrence,
            created_at=group.created_at,
            role=role,
            current_members=current_members or 0,
        )
        for group, role, current_members in result.all()
    ]


async def get_group_details(db: AsyncSession, group_id: int, user_id: int) -> GroupDetailRead:
    """
    Group with creator and active members. Only members may read it.
    """
    group = await get_active_group(db, group_id)
    await _require_member(db, group_id, user_id)

    creator = await db.get(User, group.creator_id)

    result = await db.execute(
        select(StudyGroupMember, User)
        .join(User, User.id == StudyGroupMember.user_id)
        .where(
            StudyGroupMember.group_id == group_id,
            StudyGroupMember.is_active.is_(True),
        )
        .order_by(StudyGroupMember.joined_at.asc(), StudyGroupMember.id.asc())
    )
    members = [
        GroupMemberRead(
            user_id=user.id,
            name=user.name,
            email=user.email,
            role=membership.role,
            joined_at=membership.joined_at,
        )
        for membership, user in result.all()
    ]

    return GroupDetailRead(
        group=build_group_read(group),
        creator_name=creator.name if creator else None,
        creator_email=creator.email if creator else None,
        members=members,
        total_members=len(members),
    )


async def join_group(db: AsyncSession, group_id: int, user_id: int) -> GroupMemberRead:
    """
    Add the user to an active group with free capacity.

    A previously deactivated membership (the user left earlier) is reactivated.
    """
    group = await get_active_group(db, group_id)

    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("user", user_id)

    existing = await get_membership(db, group_id, user_id, active_only=False)
    if existing is not None and existing.is_active:
        raise ConflictError(
            "You are already a member of this group.",
            context={"group_id": group_id, "user_id": user_id},
        )

    if await _count_active_members(db, group_id) >= group.max_participants:
        raise ConflictError(
            "This study group is full.",
            context={"group_id": group_id, "max_participants": group.max_participants},
        )

    if existing is not None:
        existing.is_active = True
        existing.role = ROLE_MEMBER
        membership = existing
    else:
        membership = StudyGroupMember(group_id=group_id, user_id=user_id, role=ROLE_MEMBER)
        db.add(membership)

    await db.flush()
    await db.refresh(membership)
    await db.commit()
    logger.info("User %s joined study group %s", user_id, group_id)

    return GroupMemberRead(
        user_id=user.id,
        name=user.name,
        email=user.email,
        role=membership.role,
        joined_at=membership.joined_at,
    )


async def leave_group(db: AsyncSession, group_id: int, user_id: int) -> None:
    """
    Deactivate the user's membership. The group admin cannot leave their own group.
    """
    await get_active_group(db, group_id)

    membership = await get_membership(db, group_id, user_id)
    if membership is None:
        raise ValidationError("You are not a member of this group.")
    if membership.role == ROLE_ADMIN:
        raise ValidationError(
            "Group admins cannot leave their own group. Delete the group instead."
        )

    membership.is_active = False
    await db.commit()
    logger.info("User %s left study group %s", user_id, group_id)


async def list_group_instances(
    db: AsyncSession,
    group_id: int,
    user_id: int,
) -> list[MeetingInstanceRead]:
    """
    Materialised meetings of a group in date order, with derived end times.
    """
    group = await get_active_group(db, group_id)
    await _require_member(db, group_id, user_id)

    result = await db.execute(
        select(MeetingInstance)
        .where(MeetingInstance.group_id == group_id)
        .order_by(MeetingInstance.meeting_date.asc(), MeetingInstance.id.asc())
    )

    instances: list[MeetingInstanceRead] = []
    for instance in result.scalars().all():
        projected = ProjectedMeeting(instance.meeting_date, group.duration_minutes)
        instances.append(
            MeetingInstanceRead(
                id=instance.id,
                group_id=group_id,
                meeting_date=projected.meeting_date,
                end_time=projected.end_time,
            )
        )
    return instances
