"""Conversation state API routes."""

from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel

from ...app import Application


class TurnResponse(BaseModel):
    role: str
    content: str
    timestamp: datetime
    media_refs: list[str] = []


class ConversationResponse(BaseModel):
    correspondent_id: str
    turns: list[TurnResponse]
    pending: int


def create_conversations_router(app: Application) -> APIRouter:
    """Create conversations router."""
    router = APIRouter(prefix="/api/conversations", tags=["conversations"])

    @router.get("/{correspondent_id}", response_model=ConversationResponse)
    async def get_conversation(correspondent_id: str) -> dict:
        """Current stored log and pending batch size."""
        log = await app.store.get_log(correspondent_id)
        return {
            "correspondent_id": correspondent_id,
            "turns": [
                {
                    "role": turn.role.value,
                    "content": turn.content,
                    "timestamp": turn.timestamp,
                    "media_refs": list(turn.media_refs),
                }
                for turn in log
            ],
            "pending": len(app.coalescer.pending(correspondent_id)),
        }

    @router.delete("/{correspondent_id}")
    async def clear_conversation(correspondent_id: str) -> dict:
        """Forget a correspondent's conversation log."""
        await app.store.clear_log(correspondent_id)
        return {"status": "ok"}

    return router
