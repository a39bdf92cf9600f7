"""Durable per-correspondent conversation logs with an in-memory fallback."""

import json
from typing import Iterable, Protocol

from ..errors import StoreUnavailableError
from ..logging_config import context, get_logger
from ..models import CorrespondentProfile, Role, Turn
from .kv import IKeyValueStore

logger = get_logger(__name__)


def conversation_key(correspondent_id: str) -> str:
    return f"conv:{correspondent_id}"


def profile_key(correspondent_id: str) -> str:
    return f"profile:{correspondent_id}"


def sent_media_refs(log: Iterable[Turn]) -> set[str]:
    """Media ids already delivered, according to the agent turns in `log`."""
    sent: set[str] = set()
    for turn in log:
        if turn.role is Role.AGENT:
            sent.update(turn.media_refs)
    return sent


class IConversationStore(Protocol):
    """Ordered, capped conversation logs and correspondent profiles."""

    async def get_log(self, correspondent_id: str) -> list[Turn]:
        """Return the correspondent's log, oldest first."""
        ...

    async def append_turn(self, correspondent_id: str, turn: Turn) -> None:
        """Append one turn, enforcing the length cap."""
        ...

    async def append_turns(self, correspondent_id: str, turns: list[Turn]) -> None:
        """Append several turns in a single read-modify-write."""
        ...

    async def clear_log(self, correspondent_id: str) -> None:
        """Forget the correspondent's log."""
        ...

    async def get_profile(self, correspondent_id: str) -> CorrespondentProfile | None:
        """Return the cached profile, or None."""
        ...

    async def save_profile(
        self, correspondent_id: str, profile: CorrespondentProfile
    ) -> None:
        """Persist a profile (best effort)."""
        ...


class ConversationStore:
    """Conversation State Store on top of a key-value backend.

    Every read and write goes to the key-value backend first. When the
    backend fails, the store keeps working from process memory:

    - a failed read returns the last copy this process saw for that call
      only; inside an append it degrades the correspondent instead, so a
      partial log never overwrites the backend one;
    - a failed write moves the correspondent to memory for the rest of the
      process lifetime, so later reads cannot return a stale backend copy.

    `kv=None` runs fully in memory.
    """

    def __init__(
        self,
        kv: IKeyValueStore | None,
        max_turns: int = 30,
        log_ttl_seconds: int = 7 * 24 * 60 * 60,
        profile_ttl_seconds: int = 365 * 24 * 60 * 60,
    ):
        if max_turns < 1:
            raise ValueError("max_turns must be at least 1")
        self._kv = kv
        self._max_turns = max_turns
        self._log_ttl = log_ttl_seconds
        self._profile_ttl = profile_ttl_seconds

        # Process-wide fallback state, lives as long as this store.
        self._memory_logs: dict[str, list[Turn]] = {}
        self._memory_profiles: dict[str, CorrespondentProfile] = {}
        self._degraded: set[str] = set()
        # Last log read from or written to the backend, per correspondent.
        self._last_seen: dict[str, list[Turn]] = {}

    @property
    def max_turns(self) -> int:
        return self._max_turns

    def is_degraded(self, correspondent_id: str) -> bool:
        """True once an append for this correspondent fell back to memory."""
        return correspondent_id in self._degraded

    def _uses_memory(self, correspondent_id: str) -> bool:
        return self._kv is None or correspondent_id in self._degraded

    # Logs
    async def _read_backend(self, correspondent_id: str) -> list[Turn] | None:
        """Backend copy of the log, None when absent. Raises StoreUnavailableError."""
        data = await self._kv.get(conversation_key(correspondent_id))
        if data is None:
            return None

        try:
            log = [Turn.from_dict(item) for item in json.loads(data)]
        except (ValueError, KeyError, TypeError) as e:
            logger.error(
                "Corrupt conversation log, starting fresh: %s",
                e,
                extra=context(correspondent_id),
            )
            log = []
        self._last_seen[correspondent_id] = log
        return list(log)

    async def get_log(self, correspondent_id: str) -> list[Turn]:
        if self._uses_memory(correspondent_id):
            return list(self._memory_logs.get(correspondent_id, []))

        try:
            log = await self._read_backend(correspondent_id)
        except StoreUnavailableError as e:
            logger.warning(
                "Store read failed, using last known copy: %s",
                e,
                extra=context(correspondent_id),
            )
            return list(self._last_seen.get(correspondent_id, []))

        if log is None:
            return list(self._memory_logs.get(correspondent_id, []))
        return log

    async def append_turn(self, correspondent_id: str, turn: Turn) -> None:
        await self.append_turns(correspondent_id, [turn])

    async def append_turns(self, correspondent_id: str, turns: list[Turn]) -> None:
        if not turns:
            return

        if self._uses_memory(correspondent_id):
            log = list(self._memory_logs.get(correspondent_id, []))
        else:
            try:
                log = await self._read_backend(correspondent_id)
            except StoreUnavailableError as e:
                # Writing now would replace the backend log with a partial one.
                logger.warning(
                    "Store read failed before append, using memory: %s",
                    e,
                    extra=context(correspondent_id),
                )
                self._degraded.add(correspondent_id)
                log = list(self._last_seen.get(correspondent_id, []))
            if log is None:
                log = list(self._memory_logs.get(correspondent_id, []))

        log.extend(turns)
        # Oldest turns are evicted first; order is never changed.
        if len(log) > self._max_turns:
            log = log[-self._max_turns :]

        if not self._uses_memory(correspondent_id):
            payload = json.dumps([t.to_dict() for t in log], ensure_ascii=False)
            try:
                await self._kv.set(
                    conversation_key(correspondent_id), payload, self._log_ttl
                )
                self._last_seen[correspondent_id] = log
                return
            except StoreUnavailableError as e:
                logger.warning(
                    "Store write failed, using memory: %s",
                    e,
                    extra=context(correspondent_id),
                )
                self._degraded.add(correspondent_id)

        self._memory_logs[correspondent_id] = log

    async def clear_log(self, correspondent_id: str) -> None:
        if self._kv is not None:
            try:
                await self._kv.delete(conversation_key(correspondent_id))
            except StoreUnavailableError as e:
                logger.warning(
                    "Store delete failed: %s", e, extra=context(correspondent_id)
                )
        self._memory_logs.pop(correspondent_id, None)
        self._last_seen.pop(correspondent_id, None)
        self._degraded.discard(correspondent_id)

    async def sent_media_refs(self, correspondent_id: str) -> set[str]:
        """Media ids recorded as delivered in the current log."""
        return sent_media_refs(await self.get_log(correspondent_id))

    # Profiles
    async def get_profile(self, correspondent_id: str) -> CorrespondentProfile | None:
        if self._kv is not None:
            try:
                data = await self._kv.get(profile_key(correspondent_id))
                if data:
                    return CorrespondentProfile.from_dict(json.loads(data))
            except (StoreUnavailableError, ValueError, TypeError) as e:
                logger.warning(
                    "Failed to get profile: %s", e, extra=context(correspondent_id)
                )

        return self._memory_profiles.get(correspondent_id)

    async def save_profile(
        self, correspondent_id: str, profile: CorrespondentProfile
    ) -> None:
        if self._kv is not None:
            try:
                await self._kv.set(
                    profile_key(correspondent_id),
                    json.dumps(profile.to_dict(), ensure_ascii=False),
                    self._profile_ttl,
                )
                return
            except StoreUnavailableError as e:
                logger.warning(
                    "Failed to save profile: %s", e, extra=context(correspondent_id)
                )

        self._memory_profiles[correspondent_id] = profile

    async def reset(self) -> None:
        """Drop all in-memory fallback state and backend keys."""
        self._memory_logs.clear()
        self._memory_profiles.clear()
        self._last_seen.clear()
        self._degraded.clear()
        if self._kv is not None:
            await self._kv.clear()
