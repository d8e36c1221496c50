"""Event system — append-only log of engine activity with streaming support."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

from nodeflow.models import Event

logger = logging.getLogger(__name__)


class EventBus:
    """Append-only event log with subscription support."""

    def __init__(self, log_file: Path | None = None, max_history: int = 5000):
        self._log_file = log_file
        self._max_history = max_history
        self._subscribers: list[asyncio.Queue] = []
        self._history: list[Event] = []

        if log_file:
            log_file.parent.mkdir(parents=True, exist_ok=True)

    def emit(self, event: Event):
        """Emit an event — log and notify subscribers."""
        self._history.append(event)
        if len(self._history) > self._max_history:
            del self._history[: len(self._history) - self._max_history]
        self._persist(event)
        self._notify(event)
        logger.debug(f"Event: {event.type} [{event.conversation_id}] {event.data}")

    def emit_simple(self, type: str, conversation_id: str, **data):
        """Convenience: emit with keyword args."""
        self.emit(Event(type=type, conversation_id=conversation_id, data=data))

    def recent(self, limit: int = 50, offset: int = 0, conversation_id: str | None = None) -> list[Event]:
        """Get recent events (paginated), optionally for one conversation."""
        history = self._history
        if conversation_id is not None:
            history = [e for e in history if e.conversation_id == conversation_id]
        start = max(0, len(history) - offset - limit)
        end = max(0, len(history) - offset)
        return history[start:end]

    def subscribe(self) -> asyncio.Queue:
        """Subscribe to live events."""
        q: asyncio.Queue = asyncio.Queue(maxsize=1000)
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue):
        if q in self._subscribers:
            self._subscribers.remove(q)

    def _persist(self, event: Event):
        if self._log_file:
            with open(self._log_file, "a") as f:
                f.write(json.dumps(event.to_dict(), default=str) + "\n")

    def _notify(self, event: Event):
        for q in self._subscribers:
            try:
                q.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning(f"Event subscriber queue full, dropping {event.type}")
