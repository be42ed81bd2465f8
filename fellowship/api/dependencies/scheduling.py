# fellowship/api/dependencies/scheduling.py
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from fellowship.core.config import get_settings
from fellowship.db.session import get_db
from fellowship.services.calendar_client import CalendarProvider, GoogleCalendarClient
from fellowship.services.credential_store import CredentialStore
from fellowship.services.group_scheduler import StudyGroupScheduler
from fellowship.services.token_cache import AccessTokenCache


def get_token_cache(request: Request) -> AccessTokenCache:
    """
    Process-wide token cache created by the application factory.
    """
    return request.app.state.token_cache


def get_calendar_provider(
    db: AsyncSession = Depends(get_db),
    token_cache: AccessTokenCache = Depends(get_token_cache),
) -> CalendarProvider:
    """
    Google Calendar client bound to the request's session.

    Tests replace this dependency with an in-memory provider.
    """
    settings = get_settings()
    return GoogleCalendarClient(
        credentials=CredentialStore(db),
        token_cache=token_cache,
        client_id=settings.GOOGLE_CLIENT_ID,
        client_secret=settings.GOOGLE_CLIENT_SECRET,
        base_url=settings.GOOGLE_CALENDAR_BASE_URL,
        token_url=settings.GOOGLE_TOKEN_URL,
        timeout_seconds=settings.CALENDAR_TIMEOUT_SECONDS,
    )


def get_scheduler(
    db: AsyncSession = Depends(get_db),
    calendar: CalendarProvider = Depends(get_calendar_provider),
) -> StudyGroupScheduler:
    return StudyGroupScheduler(db=db, calendar=calendar, credentials=CredentialStore(db))
