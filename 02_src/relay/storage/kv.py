"""Key-value backends with per-key expiry (SQLite and Redis)."""

import time
from pathlib import Path
from typing import Protocol

import aiosqlite
import redis.asyncio as redis

from ..config import resolve_db_path
from ..errors import StoreUnavailableError
from ..logging_config import get_logger

logger = get_logger(__name__)


class IKeyValueStore(Protocol):
    """String key-value store with expiry."""

    async def init(self) -> None:
        """Open connections / create tables."""
        ...

    async def close(self) -> None:
        """Release connections."""
        ...

    async def get(self, key: str) -> str | None:
        """Get a value, or None if absent or expired."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Set a value that expires after ttl_seconds."""
        ...

    async def delete(self, key: str) -> None:
        """Delete a key (no-op if absent)."""
        ...

    async def clear(self) -> None:
        """Delete all keys owned by this store."""
        ...


class SqliteKeyValueStore:
    """SQLite-backed key-value store."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            self._db_path = resolve_db_path()
        else:
            self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        """Initialize database and create tables."""
        self._conn = await aiosqlite.connect(self._db_path)

        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()
        await self._conn.executescript(schema_sql)
        await self._conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if not self._conn:
            raise StoreUnavailableError("Storage not initialized")
        return self._conn

    async def get(self, key: str) -> str | None:
        conn = self._require_conn()
        try:
            cursor = await conn.execute(
                "SELECT value, expires_at FROM kv WHERE key = ?",
                (key,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StoreUnavailableError(f"SQLite read failed: {e}") from e

        if not row:
            return None

        value, expires_at = row
        if expires_at is not None and expires_at <= time.time():
            await self.delete(key)
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        conn = self._require_conn()
        expires_at = time.time() + ttl_seconds if ttl_seconds > 0 else None
        try:
            await conn.execute(
                """
                INSERT OR REPLACE INTO kv (key, value, expires_at, updated_at)
                VALUES (?, ?, ?, CURRENT_TIMESTAMP)
                """,
                (key, value, expires_at),
            )
            await conn.commit()
        except aiosqlite.Error as e:
            raise StoreUnavailableError(f"SQLite write failed: {e}") from e

    async def delete(self, key: str) -> None:
        conn = self._require_conn()
        try:
            await conn.execute("DELETE FROM kv WHERE key = ?", (key,))
            await conn.commit()
        except aiosqlite.Error as e:
            raise StoreUnavailableError(f"SQLite delete failed: {e}") from e

    async def purge_expired(self) -> int:
        """Remove expired rows. Returns number of rows deleted."""
        conn = self._require_conn()
        cursor = await conn.execute(
            "DELETE FROM kv WHERE expires_at IS NOT NULL AND expires_at <= ?",
            (time.time(),),
        )
        await conn.commit()
        return cursor.rowcount

    async def clear(self) -> None:
        conn = self._require_conn()
        await conn.execute("DELETE FROM kv")
        await conn.commit()


class RedisKeyValueStore:
    """Redis-backed key-value store (GET / SETEX / DEL)."""

    def __init__(self, url: str, prefix: str = "relay:"):
        self._url = url
        self._prefix = prefix
        self._client: redis.Redis | None = None

    async def init(self) -> None:
        self._client = redis.Redis.from_url(
            self._url,
            decode_responses=True,
            socket_timeout=5,
            socket_connect_timeout=5,
            retry_on_timeout=True,
        )
        try:
            await self._client.ping()
            logger.info("Redis connected")
        except redis.RedisError as e:
            # The conversation store degrades to memory while Redis is down.
            logger.error("Redis ping failed: %s", e)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _require_client(self) -> redis.Redis:
        if not self._client:
            raise StoreUnavailableError("Redis client not initialized")
        return self._client

    async def get(self, key: str) -> str | None:
        client = self._require_client()
        try:
            return await client.get(self._prefix + key)
        except redis.RedisError as e:
            raise StoreUnavailableError(f"Redis read failed: {e}") from e

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        client = self._require_client()
        try:
            if ttl_seconds > 0:
                await client.setex(self._prefix + key, ttl_seconds, value)
            else:
                await client.set(self._prefix + key, value)
        except redis.RedisError as e:
            raise StoreUnavailableError(f"Redis write failed: {e}") from e

    async def delete(self, key: str) -> None:
        client = self._require_client()
        try:
            await client.delete(self._prefix + key)
        except redis.RedisError as e:
            raise StoreUnavailableError(f"Redis delete failed: {e}") from e

    async def clear(self) -> None:
        client = self._require_client()
        keys = [key async for key in client.scan_iter(match=self._prefix + "*")]
        if keys:
            await client.delete(*keys)
