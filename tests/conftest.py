# tests/conftest.py
import itertools
import os
import tempfile

# Point the app at a throwaway SQLite file before any fellowship module reads settings.
_DB_DIR = tempfile.mkdtemp(prefix="fellowship-tests-")
os.environ["DB_URL"] = f"sqlite+aiosqlite:///{_DB_DIR}/test.db"
os.environ["APP_ENV"] = "test"
os.environ.pop("INTERNAL_API_KEY", None)

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import func, select  # noqa: E402

from fellowship.api.dependencies.scheduling import get_calendar_provider  # noqa: E402
from fellowship.db.session import AsyncSessionLocal, reset_db  # noqa: E402
from fellowship.main import create_app  # noqa: E402
from fellowship.models.user import User  # noqa: E402
from fellowship.schemas.calendar import CalendarEventResult, CalendarEventSpec  # noqa: E402
from fellowship.services.calendar_client import CalendarClientError  # noqa: E402


class FakeCalendar:
    """
    In-memory calendar provider recording every call.

    Flip ``fail_create`` / ``fail_update`` / ``fail_delete`` to make the
    matching call raise ``CalendarClientError``.
    """

    def __init__(self) -> None:
        self.fail_create = False
        self.fail_update = False
        self.fail_delete = False
        self.created: list[tuple[int, CalendarEventSpec]] = []
        self.updated: list[tuple[int, str, CalendarEventSpec]] = []
        self.deleted: list[tuple[int, str]] = []

    async def create_event(self, owner_id: int, spec: CalendarEventSpec) -> CalendarEventResult:
        if self.fail_create:
            raise CalendarClientError("Google Calendar event creation failed (status=500)", status_code=500)
        self.created.append((owner_id, spec))
        number = len(self.created)
        return CalendarEventResult(
            event_id=f"evt-{number}",
            meet_link=f"https://meet.google.com/abc-defg-{number:03d}",
            meet_id=f"abc-defg-{number:03d}",
        )

    async def update_event(self, owner_id: int, event_id: str, spec: CalendarEventSpec) -> CalendarEventResult:
        if self.fail_update:
            raise CalendarClientError("Google Calendar event update failed (status=503)", status_code=503)
        self.updated.append((owner_id, event_id, spec))
        return CalendarEventResult(event_id=event_id)

    async def delete_event(self, owner_id: int, event_id: str) -> None:
        if self.fail_delete:
            raise CalendarClientError("Google Calendar event deletion failed (status=500)", status_code=500)
        self.deleted.append((owner_id, event_id))


@pytest.fixture
def calendar() -> FakeCalendar:
    return FakeCalendar()


@pytest_asyncio.fixture
async def db():
    """
    Fresh schema and an open session for each test.
    """
    await reset_db()
    async with AsyncSessionLocal() as session:
        yield session


@pytest_asyncio.fixture
async def make_user(db):
    """
    Factory creating committed users; by default with Google Calendar tokens.
    """
    counter = itertools.count(1)

    async def _make(email: str | None = None, name: str | None = None, calendar: bool = True) -> User:
        number = next(counter)
        user = User(
            email=email or f"user{number}@example.com",
            name=name or f"User {number}",
            google_access_token=f"access-{number}" if calendar else None,
            google_refresh_token=f"refresh-{number}" if calendar else None,
            google_calendar_connected=calendar,
        )
        db.add(user)
        await db.commit()
        return user

    return _make


@pytest.fixture
def count_rows():
    """
    Count rows of ``model`` matching ``criteria`` using a separate session,
    so the result reflects what was actually committed.
    """

    async def _count(model, *criteria) -> int:
        async with AsyncSessionLocal() as session:
            stmt = select(func.count()).select_from(model)
            if criteria:
                stmt = stmt.where(*criteria)
            result = await session.execute(stmt)
            return int(result.scalar_one())

    return _count


@pytest_asyncio.fixture
async def api(db, calendar):
    """
    Async HTTP client against the app, with the calendar provider replaced.
    """
    app = create_app()
    app.dependency_overrides[get_calendar_provider] = lambda: calendar
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def client() -> TestClient:
    """
    Synchronous TestClient running the full lifespan (logging, schema bootstrap).
    """
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
