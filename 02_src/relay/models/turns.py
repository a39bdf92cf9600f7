"""Dialogue turn models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class Role(str, Enum):
    """Who authored a turn."""

    CORRESPONDENT = "correspondent"
    AGENT = "agent"


class MessageType(str, Enum):
    """Kind of inbound message, as reported by the transport."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"
    DOCUMENT = "document"
    STICKER = "sticker"


@dataclass(frozen=True)
class Turn:
    """One immutable entry of a Conversation Log."""

    role: Role
    content: str
    timestamp: datetime
    media_refs: tuple[str, ...] = ()  # media ids delivered with this turn

    def to_dict(self) -> dict:
        data = {
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.media_refs:
            data["media_refs"] = list(self.media_refs)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Turn":
        ts = datetime.fromisoformat(data["timestamp"])
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return cls(
            role=Role(data["role"]),
            content=data.get("content", ""),
            timestamp=ts,
            media_refs=tuple(str(ref) for ref in data.get("media_refs", ())),
        )


@dataclass
class InboundMessage:
    """A normalized inbound message, already decrypted/transcribed upstream."""

    correspondent_id: str
    type: MessageType = MessageType.TEXT
    text: str | None = None
    media_url: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    message_id: str | None = None
    sender_name: str | None = None

    @property
    def is_media(self) -> bool:
        return self.type is not MessageType.TEXT or bool(self.media_url)
