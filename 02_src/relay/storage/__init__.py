"""Storage module."""

from .conversation_store import ConversationStore, IConversationStore
from .kv import IKeyValueStore, RedisKeyValueStore, SqliteKeyValueStore

__all__ = [
    "IKeyValueStore",
    "SqliteKeyValueStore",
    "RedisKeyValueStore",
    "IConversationStore",
    "ConversationStore",
]
