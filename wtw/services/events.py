"""Per-session publish/subscribe used to push state changes to connected clients.

Delivery is best-effort: every event also has an authoritative fetch
(``GET /sessions/{id}`` and friends), so a client that misses events simply
re-polls after resubscribing. A slow subscriber whose queue is full loses the
event; it never blocks the publisher.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from wtw.core.config import settings

logger = logging.getLogger(__name__)

PARTICIPANT_JOINED = "participant_joined"
PARTICIPANT_UPDATED = "participant_updated"
SESSION_UPDATED = "session_updated"
VOTE_ADDED = "vote_added"
FINAL_VOTE_CAST = "final_vote_cast"
VOTING_COMPLETE = "voting_complete"


@dataclass(frozen=True)
class Event:
    session_id: str
    name: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_message(self) -> dict[str, Any]:
        return {"type": "event", "event": self.name, "data": self.data}


class Subscription:
    """Handle for one client's view of one session's events."""

    def __init__(self, bus: EventBus, session_id: str, participant_id: str | None, maxsize: int) -> None:
        self.id = uuid.uuid4().hex
        self.session_id = session_id
        self.participant_id = participant_id
        self._bus = bus
        self._queue: asyncio.Queue[Event | None] = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def deliver(self, event: Event) -> None:
        if self.closed:
            raise RuntimeError("subscription is closed")
        self._queue.put_nowait(event)

    async def get(self) -> Event | None:
        """Next event, or None once the subscription has been closed."""
        if self.closed and self._queue.empty():
            return None
        return await self._queue.get()

    def get_nowait(self) -> Event | None:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def pending(self) -> list[Event]:
        events: list[Event] = []
        while (event := self.get_nowait()) is not None:
            events.append(event)
        return events

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._bus.unsubscribe(self)
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> Event:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def __aenter__(self) -> Subscription:
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()


class EventBus:
    def __init__(self, *, queue_size: int | None = None) -> None:
        self._queue_size = queue_size or settings.event_queue_size
        self._subscriptions: dict[str, dict[str, Subscription]] = defaultdict(dict)

    def subscribe(self, session_id: uuid.UUID | str, participant_id: uuid.UUID | str | None = None) -> Subscription:
        key = str(session_id)
        sub = Subscription(
            self,
            key,
            str(participant_id) if participant_id is not None else None,
            self._queue_size,
        )
        self._subscriptions[key][sub.id] = sub
        logger.debug("Subscribed %s to session %s", sub.id, key)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        subs = self._subscriptions.get(sub.session_id)
        if not subs:
            return
        subs.pop(sub.id, None)
        if not subs:
            self._subscriptions.pop(sub.session_id, None)

    def subscriber_count(self, session_id: uuid.UUID | str) -> int:
        return len(self._subscriptions.get(str(session_id), {}))

    def publish(self, session_id: uuid.UUID | str, name: str, data: dict[str, Any] | None = None) -> int:
        """Fan an event out to the session's subscribers; returns how many got it."""
        key = str(session_id)
        event = Event(session_id=key, name=name, data=data or {})
        delivered = 0
        for sub in list(self._subscriptions.get(key, {}).values()):
            try:
                sub.deliver(event)
            except asyncio.QueueFull:
                logger.warning("Dropping %s for subscriber %s in session %s: queue full", name, sub.id, key)
            except Exception:
                logger.exception("Failed to deliver %s to subscriber %s in session %s", name, sub.id, key)
            else:
                delivered += 1
        return delivered


event_bus = EventBus()
