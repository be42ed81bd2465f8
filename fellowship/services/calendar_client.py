# fellowship/services/calendar_client.py
from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, Optional, Protocol
from zoneinfo import ZoneInfo

import httpx

from fellowship.schemas.calendar import CalendarEventResult, CalendarEventSpec
from fellowship.services.credential_store import CalendarCredentials, CredentialStore
from fellowship.services.token_cache import AccessTokenCache

logger = logging.getLogger(__name__)


class CalendarClientError(RuntimeError):
    """
    Raised when the calendar client cannot obtain a usable access token or
    when a Calendar API call fails.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class CalendarProvider(Protocol):
    """
    Contract the scheduler relies on. ``owner_id`` is the user whose calendar
    holds the master event.
    """

    async def create_event(self, owner_id: int, spec: CalendarEventSpec) -> CalendarEventResult: ...

    async def update_event(
        self, owner_id: int, event_id: str, spec: CalendarEventSpec
    ) -> CalendarEventResult: ...

    async def delete_event(self, owner_id: int, event_id: str) -> None: ...


class GoogleCalendarClient:
    """
    Minimal Google Calendar v3 client acting on behalf of individual users.

    Responsibilities
    ----------------
    - Create/update/delete events (with a Google Meet conference) in the
      owner's primary calendar.
    - Use the stored access token, and on a 401 refresh it with the stored
      refresh token, caching the result in the injected ``AccessTokenCache``.
    - Avoid leaking HTTP client details into the rest of the codebase.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        token_cache: AccessTokenCache,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        base_url: str = "https://www.googleapis.com/calendar/v3",
        token_url: str = "https://oauth2.googleapis.com/token",
        timeout_seconds: float = 10.0,
        calendar_id: str = "primary",
    ) -> None:
        self._credentials = credentials
        self._token_cache = token_cache
        self._client_id = client_id
        self._client_secret = client_secret
        self._base_url = base_url.rstrip("/")
        self._token_url = token_url
        self._timeout_seconds = timeout_seconds
        self._calendar_id = calendar_id

    @property
    def events_path(self) -> str:
        return f"/calendars/{self._calendar_id}/events"

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    async def _load_credentials(self, owner_id: int) -> CalendarCredentials:
        credentials = await self._credentials.get_calendar_credentials(owner_id)
        if credentials is None or not (credentials.access_token or credentials.refresh_token):
            raise CalendarClientError(
                f"No Google Calendar credentials stored for user {owner_id}"
            )
        return credentials

    async def _refresh_access_token(self, owner_id: int, refresh_token: str) -> str:
        """
        Exchange the refresh token for a new access token and cache it.
        """
        if not self._client_id or not self._client_secret:
            raise CalendarClientError(
                "GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET must be configured to refresh tokens"
            )

        data = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
            resp = await client.post(self._token_url, data=data)

        if resp.status_code != 200:
            raise CalendarClientError(
                f"Failed to refresh Google token (status={resp.status_code}): {resp.text}",
                status_code=resp.status_code,
            )

        try:
            payload = resp.json()
        except ValueError as exc:
            raise CalendarClientError(
                "Invalid token response from Google (body is not JSON)",
                status_code=resp.status_code,
            ) from exc
        access_token = payload.get("access_token")
        expires_in = payload.get("expires_in")
        if not access_token or not isinstance(expires_in, (int, float)):
            raise CalendarClientError(
                "Invalid token response from Google (missing access_token/expires_in)"
            )

        self._token_cache.put(owner_id, access_token, expires_in)
        logger.info("Refreshed Google access token for user %s", owner_id)
        return access_token

    async def get_access_token(self, owner_id: int) -> str:
        """
        Cached token if still valid, else the stored one, else a refreshed one.
        """
        cached = self._token_cache.get(owner_id)
        if cached:
            return cached

        credentials = await self._load_credentials(owner_id)
        if credentials.access_token:
            return credentials.access_token
        return await self._refresh_access_token(owner_id, credentials.refresh_token)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    async def _send(
        self,
        method: str,
        url: str,
        token: str,
        params: Optional[Dict[str, Any]],
        json: Any,
    ) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
            return await client.request(
                method=method.upper(),
                url=url,
                headers=headers,
                params=params,
                json=json,
            )

    async def _request(
        self,
        owner_id: int,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> httpx.Response:
        """
        Issue an authenticated request, refreshing the token once on 401.
        """
        url = f"{self._base_url}/{path.lstrip('/')}"
        token = await self.get_access_token(owner_id)
        try:
            resp = await self._send(method, url, token, params, json)
            if resp.status_code == 401:
                self._token_cache.invalidate(owner_id)
                credentials = await self._load_credentials(owner_id)
                if not credentials.refresh_token:
                    return resp
                logger.info("Google access token rejected for user %s, refreshing", owner_id)
                token = await self._refresh_access_token(owner_id, credentials.refresh_token)
                resp = await self._send(method, url, token, params, json)
        except httpx.HTTPError as exc:
            raise CalendarClientError(f"Google Calendar request failed: {exc}") from exc

        return resp

    @staticmethod
    def _raise_for_status(resp: httpx.Response, action: str) -> None:
        if resp.status_code // 100 != 2:
            raise CalendarClientError(
                f"Google Calendar {action} failed (status={resp.status_code}): {resp.text}",
                status_code=resp.status_code,
            )

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    @staticmethod
    def build_event_body(spec: CalendarEventSpec, *, with_conference: bool = True) -> Dict[str, Any]:
        """
        Translate a CalendarEventSpec into a Calendar API event resource.

        Start/end are rendered as wall-clock time in the event's timezone,
        which is how Google interprets BYDAY/UNTIL of the recurrence rule.
        """
        zone = ZoneInfo(spec.timezone)
        body: Dict[str, Any] = {
            "summary": spec.title,
            "description": spec.description or f"Study group: {spec.title}",
            "start": {
                "dateTime": spec.start_time.astimezone(zone).replace(tzinfo=None).isoformat(),
                "timeZone": spec.timezone,
            },
            "end": {
                "dateTime": spec.end_time.astimezone(zone).replace(tzinfo=None).isoformat(),
                "timeZone": spec.timezone,
            },
            "guestsCanModify": False,
            "guestsCanInviteOthers": False,
            "guestsCanSeeOtherGuests": True,
        }
        # An empty list on PATCH would remove every existing guest.
        if spec.attendee_emails:
            body["attendees"] = [{"email": email} for email in spec.attendee_emails]
        if spec.recurrence_rule:
            body["recurrence"] = [spec.recurrence_rule]
        if with_conference:
            body["conferenceData"] = {
                "createRequest": {
                    "requestId": f"study-group-{uuid.uuid4().hex}",
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            }
        return body

    @staticmethod
    def _parse_event(resp: httpx.Response, action: str) -> CalendarEventResult:
        """
        Read the event resource from a 2xx reply; a malformed body is a client error.
        """
        try:
            payload = resp.json()
            conference = payload.get("conferenceData") or {}
            return CalendarEventResult(
                event_id=payload["id"],
                meet_link=payload.get("hangoutLink"),
                meet_id=conference.get("conferenceId"),
                raw=payload,
            )
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise CalendarClientError(
                f"Google Calendar {action} returned an unreadable event: {exc!r}",
                status_code=resp.status_code,
            ) from exc

    async def create_event(self, owner_id: int, spec: CalendarEventSpec) -> CalendarEventResult:
        """
        Create an event with a Meet conference and notify attendees.
        """
        resp = await self._request(
            owner_id,
            "POST",
            self.events_path,
            params={"conferenceDataVersion": 1, "sendUpdates": "all"},
            json=self.build_event_body(spec),
        )
        self._raise_for_status(resp, "event creation")

        result = self._parse_event(resp, "event creation")
        logger.info(
            "Created Google Calendar event %s for user %s (recurring=%s, meet=%s)",
            result.event_id,
            owner_id,
            bool(spec.recurrence_rule),
            result.meet_id,
        )
        return result

    async def update_event(
        self, owner_id: int, event_id: str, spec: CalendarEventSpec
    ) -> CalendarEventResult:
        """
        Patch an existing event; the existing conference is kept.
        """
        resp = await self._request(
            owner_id,
            "PATCH",
            f"{self.events_path}/{event_id}",
            params={"sendUpdates": "all"},
            json=self.build_event_body(spec, with_conference=False),
        )
        self._raise_for_status(resp, "event update")
        return self._parse_event(resp, "event update")

    async def delete_event(self, owner_id: int, event_id: str) -> None:
        """
        Delete an event. An event that is already gone (404/410) counts as deleted.
        """
        resp = await self._request(
            owner_id,
            "DELETE",
            f"{self.events_path}/{event_id}",
            params={"sendUpdates": "all"},
        )
        if resp.status_code in (404, 410):
            logger.info("Google Calendar event %s already deleted", event_id)
            return
        self._raise_for_status(resp, "event deletion")
