"""Short-lived memory of inbound message ids."""

import time
from typing import Callable


class RecentIds:
    """Remembers ids for `ttl_seconds` to drop redelivered webhooks.

    The whole set is dropped once it reaches `max_size`.
    """

    def __init__(
        self,
        ttl_seconds: float = 60.0,
        max_size: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttl = ttl_seconds
        self._max_size = max_size
        self._clock = clock
        self._expires: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._expires)

    def check_and_add(self, message_id: str) -> bool:
        """Return True if `message_id` was already seen; remember it otherwise."""
        now = self._clock()
        expires_at = self._expires.get(message_id)
        if expires_at is not None and expires_at > now:
            return True

        if len(self._expires) >= self._max_size:
            self._expires.clear()
        self._expires[message_id] = now + self._ttl
        return False

    def clear(self) -> None:
        self._expires.clear()
