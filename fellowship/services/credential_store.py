# fellowship/services/credential_store.py
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.models.user import User


@dataclass(frozen=True)
class CalendarCredentials:
    user_id: int
    access_token: str | None
    refresh_token: str | None


class CredentialStore:
    """
    Read-only view of the Google Calendar tokens stored on user rows.

    Tokens are written by the auth service when the user connects their
    calendar; refreshed tokens live in the ``AccessTokenCache`` only.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _load(self, user_id: int) -> User | None:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def user_exists(self, user_id: int) -> bool:
        return await self._load(user_id) is not None

    async def get_calendar_credentials(self, user_id: int) -> CalendarCredentials | None:
        """
        Stored tokens for ``user_id``, or None if the user does not exist.
        """
        user = await self._load(user_id)
        if user is None:
            return None
        return CalendarCredentials(
            user_id=user.id,
            access_token=user.google_access_token,
            refresh_token=user.google_refresh_token,
        )

    async def has_calendar_access(self, user_id: int) -> bool:
        """
        True when the user has granted Google Calendar access (an access token is stored).
        """
        credentials = await self.get_calendar_credentials(user_id)
        return bool(credentials and credentials.access_token)
