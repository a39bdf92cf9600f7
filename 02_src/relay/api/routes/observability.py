"""Observability API routes."""

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from ...app import Application


class TraceEventResponse(BaseModel):
    id: str
    event_type: str
    actor: str
    data: dict[str, Any]
    timestamp: datetime


def _parse_after(after: str | None) -> datetime | None:
    if not after:
        return None
    try:
        parsed = datetime.fromisoformat(after)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid after timestamp format")
    # Tracker timestamps are UTC-aware.
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def create_observability_router(app: Application) -> APIRouter:
    """Create observability router."""
    router = APIRouter(prefix="/api", tags=["observability"])

    @router.get("/trace-events", response_model=list[TraceEventResponse])
    async def get_trace_events(
        after: str | None = Query(None, description="Only events after this ISO timestamp"),
        limit: int = Query(100, ge=1, le=1000),
        event_type: list[str] | None = Query(None, description="Repeat to match several types"),
        actor: str | None = Query(None, description="Component that recorded the event"),
    ) -> list[dict]:
        """Recent trace events, newest first."""
        events = app.tracker.get_events(
            after=_parse_after(after),
            event_types=event_type or None,
            actor=actor,
            limit=limit,
        )
        return [asdict(event) for event in events]

    return router
