"""Outbound delivery with pacing and rate-limit backoff."""

import asyncio
import random
from typing import Awaitable, Callable, Protocol

from ..errors import RateLimitedError
from ..logging_config import context, get_logger
from ..models import MediaDescriptor
from ..transport import ITransport

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class IDispatcher(Protocol):
    """Outbound delivery. Never raises; every send reports success as a bool."""

    async def send_text(self, correspondent_id: str, text: str) -> bool:
        ...

    async def send_media(
        self, correspondent_id: str, item: MediaDescriptor, caption: str | None = None
    ) -> bool:
        ...

    async def send_media_sequence(
        self,
        correspondent_id: str,
        items: list[tuple[MediaDescriptor, str | None]],
    ) -> list[bool]:
        ...

    async def send_voice(self, correspondent_id: str, audio: bytes) -> bool:
        ...


class Dispatcher:
    """Shared send discipline for text, media and voice.

    Each send waits a short randomized pacing delay, then calls the
    transport. A rate-limit signal is retried with linearly increasing
    backoff (backoff, 2*backoff, ...) up to max_retries; any other failure
    gives up immediately.
    """

    def __init__(
        self,
        transport: ITransport,
        pacing: tuple[float, float] = (1.5, 3.0),
        media_gap: float = 0.5,
        max_retries: int = 3,
        backoff: float = 5.0,
        sleep: Sleep = asyncio.sleep,
    ):
        self._transport = transport
        self._pacing = pacing
        self._media_gap = media_gap
        self._max_retries = max_retries
        self._backoff = backoff
        self._sleep = sleep

    async def _pace(self) -> None:
        low, high = self._pacing
        if high > 0:
            await self._sleep(random.uniform(low, high))

    async def _deliver(
        self,
        correspondent_id: str,
        kind: str,
        call: Callable[[], Awaitable[bool]],
    ) -> bool:
        await self._pace()

        attempt = 0
        while True:
            try:
                sent = await call()
            except RateLimitedError:
                if attempt >= self._max_retries:
                    logger.error(
                        "Rate limit exceeded after %d retries",
                        self._max_retries,
                        extra=context(correspondent_id, kind=kind),
                    )
                    return False
                attempt += 1
                wait = self._backoff * attempt
                logger.warning(
                    "Rate limited, retrying in %.1fs (attempt %d/%d)",
                    wait,
                    attempt,
                    self._max_retries,
                    extra=context(correspondent_id, kind=kind),
                )
                await self._sleep(wait)
                continue
            except Exception as e:
                logger.error(
                    "Send error: %s", e, extra=context(correspondent_id, kind=kind)
                )
                return False

            if not sent:
                logger.warning("Send failed", extra=context(correspondent_id, kind=kind))
            return bool(sent)

    async def send_text(self, correspondent_id: str, text: str) -> bool:
        return await self._deliver(
            correspondent_id,
            "text",
            lambda: self._transport.send_text(correspondent_id, text),
        )

    async def send_media(
        self, correspondent_id: str, item: MediaDescriptor, caption: str | None = None
    ) -> bool:
        return await self._deliver(
            correspondent_id,
            "media",
            lambda: self._transport.send_media(
                correspondent_id, item.url, item.type, caption or item.caption
            ),
        )

    async def send_media_sequence(
        self,
        correspondent_id: str,
        items: list[tuple[MediaDescriptor, str | None]],
    ) -> list[bool]:
        """Send items strictly in order with a fixed gap between them."""
        results = []
        for index, (item, caption) in enumerate(items):
            if index > 0 and self._media_gap > 0:
                await self._sleep(self._media_gap)
            results.append(await self.send_media(correspondent_id, item, caption))
        return results

    async def send_voice(self, correspondent_id: str, audio: bytes) -> bool:
        return await self._deliver(
            correspondent_id,
            "voice",
            lambda: self._transport.send_voice(correspondent_id, audio),
        )
