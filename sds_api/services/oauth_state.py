from __future__ import annotations

import secrets
import threading
import time
from typing import Callable, Optional

from ..config import settings


class OAuthStateStore:
    """Process-local cache of pending OAuth state values.

    Each value lives for a fixed TTL and can be consumed exactly once. Entries
    are lost on restart, which only forces the user to start the sign-in again.
    Expired entries are swept whenever a state is issued or consumed.
    """

    def __init__(self, ttl_seconds: Optional[int] = None, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.oauth_state_ttl_seconds
        self._clock = clock
        self._entries: dict[str, float] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def issue(self) -> str:
        state = secrets.token_urlsafe(24)
        with self._lock:
            self._sweep_locked()
            self._entries[state] = self._clock() + self.ttl_seconds
        return state

    def consume(self, state: str) -> bool:
        with self._lock:
            self._sweep_locked()
            expires_at = self._entries.pop(state, None)
        return expires_at is not None and expires_at > self._clock()

    def sweep(self) -> int:
        with self._lock:
            return self._sweep_locked()

    def _sweep_locked(self) -> int:
        now = self._clock()
        expired = [key for key, expires_at in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)


_store = OAuthStateStore()


def get_oauth_state_store() -> OAuthStateStore:
    return _store
