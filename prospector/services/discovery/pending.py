"""In-flight search tracking and idempotency-key outcome cache."""

from __future__ import annotations

import time
from collections.abc import Callable
from threading import Lock
from typing import Generic, TypeVar

from prospector.config import settings

_T = TypeVar("_T")


class PendingSearchStore(Generic[_T]):
    """Lock-guarded map of running contact searches and finished outcomes by key."""

    def __init__(
        self,
        ttl_seconds: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = settings.idempotency_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._lock = Lock()
        self._in_flight: set[str] = set()
        self._outcomes: dict[str, tuple[float, _T]] = {}

    def try_begin(self, contact_id: str) -> bool:
        """Mark a contact as searching; False when a search is already running."""
        with self._lock:
            if contact_id in self._in_flight:
                return False
            self._in_flight.add(contact_id)
            return True

    def finish(self, contact_id: str) -> None:
        with self._lock:
            self._in_flight.discard(contact_id)

    def is_pending(self, contact_id: str) -> bool:
        with self._lock:
            return contact_id in self._in_flight

    def cached(self, key: str | None) -> _T | None:
        if not key:
            return None
        with self._lock:
            self._evict_expired()
            entry = self._outcomes.get(key)
            return entry[1] if entry else None

    def remember(self, key: str | None, outcome: _T) -> None:
        if not key:
            return
        with self._lock:
            self._evict_expired()
            self._outcomes[key] = (self._clock() + self.ttl_seconds, outcome)

    def reset(self) -> None:
        with self._lock:
            self._in_flight.clear()
            self._outcomes.clear()

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._outcomes.items() if expires_at <= now]
        for key in expired:
            del self._outcomes[key]
