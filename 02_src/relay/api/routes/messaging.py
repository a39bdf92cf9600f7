"""Inbound messaging API routes."""

from datetime import datetime, timezone
from typing import Literal

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ...app import Application
from ...models import InboundMessage, MessageType


class InboundMessageRequest(BaseModel):
    """Normalized inbound message, already decrypted/transcribed upstream."""

    correspondent_id: str = Field(min_length=1)
    type: MessageType = MessageType.TEXT
    text: str | None = None
    media_url: str | None = None
    timestamp: datetime | None = None
    message_id: str | None = None
    sender_name: str | None = None


class InboundMessageResponse(BaseModel):
    """Whether the message joined a batch."""

    status: Literal["queued", "duplicate"]


def create_messaging_router(app: Application) -> APIRouter:
    """Create messaging router."""
    router = APIRouter(prefix="/api", tags=["messaging"])

    @router.post("/messages", response_model=InboundMessageResponse)
    async def receive_message(request: InboundMessageRequest) -> dict:
        """Hand an inbound message to the batch coalescer."""
        if not request.text and not request.media_url:
            raise HTTPException(status_code=422, detail="text or media_url required")

        timestamp = request.timestamp or datetime.now(timezone.utc)
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        message = InboundMessage(
            correspondent_id=request.correspondent_id,
            type=request.type,
            text=request.text,
            media_url=request.media_url,
            timestamp=timestamp,
            message_id=request.message_id,
            sender_name=request.sender_name,
        )
        try:
            queued = await app.coalescer.on_incoming(request.correspondent_id, message)
        except RuntimeError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return {"status": "queued" if queued else "duplicate"}

    return router
