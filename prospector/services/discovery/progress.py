"""Progress events emitted while a contact search runs."""

from __future__ import annotations

import logging
from collections import OrderedDict, deque
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any

logger = logging.getLogger(__name__)

SEARCH_STARTED = "search_started"
PROVIDER_STARTED = "provider_started"
PROVIDER_FINISHED = "provider_finished"
EMAIL_FOUND = "email_found"
SEARCH_EXHAUSTED = "search_exhausted"
SEARCH_REJECTED = "search_rejected"

HISTORY_LIMIT = 50
MAX_TRACKED_CONTACTS = 1000


@dataclass(frozen=True)
class ProgressEvent:
    contact_id: str
    event: str
    provider: str | None = None
    detail: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["timestamp"] = self.timestamp.isoformat()
        return payload


Subscriber = Callable[[ProgressEvent], None]


class ProgressChannel:
    """Fan-out of progress events with a bounded per-contact history for polling.

    Only the most recently active `max_contacts` contacts keep a history.
    """

    def __init__(
        self,
        history_limit: int = HISTORY_LIMIT,
        max_contacts: int = MAX_TRACKED_CONTACTS,
    ) -> None:
        self._subscribers: list[Subscriber] = []
        self._history: OrderedDict[str, deque[ProgressEvent]] = OrderedDict()
        self._history_limit = history_limit
        self._max_contacts = max_contacts
        self._lock = Lock()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback; the returned function unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def publish(
        self,
        contact_id: str,
        event: str,
        *,
        provider: str | None = None,
        **detail: Any,
    ) -> ProgressEvent:
        item = ProgressEvent(contact_id=contact_id, event=event, provider=provider, detail=detail)
        with self._lock:
            events = self._history.get(contact_id)
            if events is None:
                events = self._history[contact_id] = deque(maxlen=self._history_limit)
            else:
                self._history.move_to_end(contact_id)
            events.append(item)
            while len(self._history) > self._max_contacts:
                self._history.popitem(last=False)
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(item)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "discovery.progress.subscriber_failed",
                    extra={"contact_id": contact_id, "event": event},
                )
        return item

    def history(self, contact_id: str) -> list[ProgressEvent]:
        with self._lock:
            return list(self._history.get(contact_id, ()))
