# fellowship/models/study_group.py
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from fellowship.db.base import Base
from fellowship.db.types import UTCDateTime, utcnow


class StudyGroup(Base):
    """
    A study/meeting group, optionally with a recurring meeting schedule
    mirrored as a single master event in the creator's Google Calendar.

    All instants are stored as UTC; ``timezone`` is the creator's IANA zone,
    used for display and for wall-clock recurrence stepping.
    """

    __tablename__ = "study_groups"

    id = Column(Integer, primary_key=True, index=True)
    creator_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    theme = Column(String(100), nullable=True)
    max_participants = Column(Integer, nullable=False, default=10)

    scheduled_time = Column(UTCDateTime, nullable=True)
    duration_minutes = Column(Integer, nullable=False, default=60)
    timezone = Column(String(64), nullable=False, default="UTC")

    is_recurring = Column(Boolean, nullable=False, default=False)
    recurrence_pattern = Column(String(16), nullable=True)
    recurrence_interval = Column(Integer, nullable=True, default=1)
    recurrence_days_of_week = Column(JSON, nullable=True)
    recurrence_end_date = Column(Date, nullable=True)
    next_occurrence = Column(UTCDateTime, nullable=True)

    meet_link = Column(String(512), nullable=True)
    meet_id = Column(String(255), nullable=True, index=True)
    calendar_event_id = Column(String(255), nullable=True)

    requires_approval = Column(Boolean, nullable=False, default=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    creator = relationship("User")
    members = relationship(
        "StudyGroupMember",
        back_populates="group",
        cascade="all, delete-orphan",
    )
    instances = relationship(
        "MeetingInstance",
        back_populates="group",
        cascade="all, delete-orphan",
        order_by="MeetingInstance.meeting_date",
    )

    def __repr__(self) -> str:
        return (
            f"<StudyGroup id={self.id} title={self.title!r} "
            f"recurring={self.is_recurring} active={self.is_active}>"
        )


class StudyGroupMember(Base):
    """
    Membership of a user in a study group. The creator holds the ``admin`` role.
    Leaving or deleting a group deactivates rows rather than removing them.
    """

    __tablename__ = "study_group_members"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(
        Integer,
        ForeignKey("study_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role = Column(String(16), nullable=False, default="member")
    is_active = Column(Boolean, nullable=False, default=True)
    joined_at = Column(UTCDateTime, nullable=False, default=utcnow)

    group = relationship("StudyGroup", back_populates="members")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint(
            "group_id",
            "user_id",
            name="uq_study_group_members_group_user",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<StudyGroupMember group_id={self.group_id} user_id={self.user_id} "
            f"role={self.role} active={self.is_active}>"
        )


class MeetingInstance(Base):
    """
    One materialised occurrence of a recurring group's meeting.

    The end time is derived from the owning group's duration and is not stored.
    """

    __tablename__ = "meeting_instances"

    id = Column(Integer, primary_key=True, index=True)
    group_id = Column(
        Integer,
        ForeignKey("study_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    meeting_date = Column(UTCDateTime, nullable=False, index=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    group = relationship("StudyGroup", back_populates="instances")

    def __repr__(self) -> str:
        return f"<MeetingInstance id={self.id} group_id={self.group_id} date={self.meeting_date}>"
