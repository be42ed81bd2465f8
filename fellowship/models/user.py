# fellowship/models/user.py
from sqlalchemy import Boolean, Column, Integer, String, Text

from fellowship.db.base import Base
from fellowship.db.types import UTCDateTime, utcnow


class User(Base):
    """
    Application user, as far as this service needs to know about one.

    Accounts and OAuth sign-in are owned by the auth service; this service
    only reads identity, email (to resolve invitees) and the stored Google
    Calendar tokens.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)

    google_access_token = Column(Text, nullable=True)
    google_refresh_token = Column(Text, nullable=True)
    google_calendar_connected = Column(Boolean, nullable=False, default=False)
    google_email = Column(String(255), nullable=True, index=True)

    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email}>"
