# fellowship/services/token_cache.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Hashable, Optional


@dataclass
class _TokenState:
    access_token: str
    expires_at: datetime


class AccessTokenCache:
    """
    In-memory cache of OAuth access tokens keyed by owner (e.g. user id).

    One instance is created per process (see ``fellowship.main.create_app``)
    and injected into calendar clients, so its lifetime and reset behaviour
    are explicit rather than hidden in module state.

    A safety margin is subtracted from the provider's ``expires_in`` so a
    token is refreshed slightly before it really expires.
    """

    def __init__(
        self,
        safety_margin_seconds: int = 60,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._safety_margin = timedelta(seconds=safety_margin_seconds)
        self._clock = clock or (lambda: datetime.now(tz=timezone.utc))
        self._tokens: Dict[Hashable, _TokenState] = {}

    def get(self, key: Hashable) -> Optional[str]:
        """
        Return the cached token for ``key`` if it has not expired yet.
        """
        state = self._tokens.get(key)
        if state is None:
            return None
        if state.expires_at <= self._clock():
            del self._tokens[key]
            return None
        return state.access_token

    def put(self, key: Hashable, access_token: str, expires_in: float) -> None:
        expires_at = self._clock() + timedelta(seconds=float(expires_in)) - self._safety_margin
        self._tokens[key] = _TokenState(access_token=access_token, expires_at=expires_at)

    def invalidate(self, key: Hashable) -> None:
        self._tokens.pop(key, None)

    def clear(self) -> None:
        self._tokens.clear()

    def __len__(self) -> int:
        return len(self._tokens)
