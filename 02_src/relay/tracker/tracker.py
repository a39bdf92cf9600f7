"""Tracker implementation for recording TraceEvents."""

import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Protocol

from ..logging_config import get_logger
from ..models import TraceEvent

logger = get_logger(__name__)


class ITracker(Protocol):
    """Recording TraceEvents for the observability API."""

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        """Create a TraceEvent."""
        ...

    def get_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Recent events, newest first."""
        ...


class Tracker:
    """Keeps the most recent TraceEvents in memory."""

    def __init__(self, capacity: int = 1000):
        self._events: deque[TraceEvent] = deque(maxlen=capacity)

    async def track(self, event_type: str, actor: str, data: dict) -> None:
        """Create TraceEvent and keep it in the ring."""
        trace_event = TraceEvent(
            id=str(uuid.uuid4()),
            event_type=event_type,
            actor=actor,
            data=data,
            timestamp=datetime.now(timezone.utc),
        )
        self._events.append(trace_event)
        logger.debug(
            "trace %s from %s", event_type, actor, extra={"context": data}
        )

    def get_events(
        self,
        after: datetime | None = None,
        event_types: list[str] | None = None,
        actor: str | None = None,
        limit: int = 100,
    ) -> list[TraceEvent]:
        """Get trace events with optional filters (newest first)."""
        result = []
        for event in reversed(self._events):
            if after and event.timestamp <= after:
                continue
            if event_types and event.event_type not in event_types:
                continue
            if actor and event.actor != actor:
                continue
            result.append(event)
            if len(result) >= limit:
                break
        return result

    def clear(self) -> None:
        self._events.clear()
