"""BatchCoalescer: per-correspondent debounce of inbound messages."""

import asyncio
from typing import Any, Awaitable, Callable

from ..logging_config import context, get_logger
from ..models import InboundMessage
from ..tracker import ITracker
from .dedup import RecentIds

logger = get_logger(__name__)

FlushHandler = Callable[[str, list[InboundMessage]], Awaitable[Any]]


class BatchCoalescer:
    """Accumulates bursts of inbound messages into one flush per correspondent.

    The first message of a burst starts a timer of `window_seconds`; later
    messages join the pending batch without restarting it (fixed window).
    With `sliding=True` every message restarts the timer instead.

    When the timer fires, the pending batch is taken and removed before
    anything is awaited, so messages arriving during the flush start the
    next batch. If the previous flush for the same correspondent is still
    running, the new one waits for it; batches are therefore flushed and
    persisted in arrival order. A failing flush is logged and not retried.
    """

    def __init__(
        self,
        flush_handler: FlushHandler,
        window_seconds: float = 8.0,
        sliding: bool = False,
        recent_ids: RecentIds | None = None,
        tracker: ITracker | None = None,
    ):
        self._flush_handler = flush_handler
        self._window = window_seconds
        self._sliding = sliding
        self._recent_ids = recent_ids
        self._tracker = tracker

        self._pending: dict[str, list[InboundMessage]] = {}
        self._timers: dict[str, asyncio.Task] = {}
        self._inflight: dict[str, asyncio.Task] = {}
        self._running = False

    async def start(self) -> None:
        logger.info("Starting BatchCoalescer")
        self._running = True

    async def stop(self, flush_pending: bool = False) -> None:
        """Stop accepting messages.

        Pending batches are flushed immediately when `flush_pending` is set,
        otherwise dropped. In-flight flushes always run to completion.
        """
        logger.info("Stopping BatchCoalescer")
        self._running = False

        final_flushes = []
        for correspondent_id, timer in list(self._timers.items()):
            timer.cancel()
            batch = self._pending.pop(correspondent_id, [])
            if flush_pending and batch:
                final_flushes.append(
                    asyncio.create_task(self._flush_in_order(correspondent_id, batch))
                )
            elif batch:
                logger.warning(
                    "Dropping %d pending messages on shutdown",
                    len(batch),
                    extra=context(correspondent_id),
                )
        self._timers.clear()
        self._pending.clear()

        inflight = [*self._inflight.values(), *final_flushes]
        if inflight:
            await asyncio.gather(*inflight, return_exceptions=True)

    def pending(self, correspondent_id: str) -> list[InboundMessage]:
        """Messages waiting for the correspondent's next flush."""
        return list(self._pending.get(correspondent_id, []))

    def has_timer(self, correspondent_id: str) -> bool:
        return correspondent_id in self._timers

    async def on_incoming(self, correspondent_id: str, message: InboundMessage) -> bool:
        """Add a message to the correspondent's pending batch.

        Returns False when the message id was already seen.
        """
        if not self._running:
            raise RuntimeError("BatchCoalescer not started")

        if (
            self._recent_ids is not None
            and message.message_id
            and self._recent_ids.check_and_add(message.message_id)
        ):
            logger.info("Duplicate inbound message ignored", extra=context(correspondent_id))
            await self._track("message_duplicate", correspondent_id, message_id=message.message_id)
            return False

        self._pending.setdefault(correspondent_id, []).append(message)

        timer = self._timers.get(correspondent_id)
        if timer is None:
            self._timers[correspondent_id] = asyncio.create_task(
                self._wait_and_flush(correspondent_id)
            )
        elif self._sliding:
            timer.cancel()
            self._timers[correspondent_id] = asyncio.create_task(
                self._wait_and_flush(correspondent_id)
            )

        await self._track(
            "message_buffered",
            correspondent_id,
            pending=len(self._pending[correspondent_id]),
        )
        return True

    async def _wait_and_flush(self, correspondent_id: str) -> None:
        try:
            await asyncio.sleep(self._window)
        except asyncio.CancelledError:
            return

        # Take ownership of the batch; nothing is awaited until it is captured.
        batch = self._pending.pop(correspondent_id, [])
        self._timers.pop(correspondent_id, None)
        if not batch:
            return

        await self._flush_in_order(correspondent_id, batch)

    async def _flush_in_order(
        self, correspondent_id: str, batch: list[InboundMessage]
    ) -> None:
        previous = self._inflight.get(correspondent_id)
        self._inflight[correspondent_id] = asyncio.current_task()
        if previous is not None and not previous.done():
            await asyncio.wait([previous])

        await self._run_flush(correspondent_id, batch)

    async def _run_flush(self, correspondent_id: str, batch: list[InboundMessage]) -> None:
        try:
            await self._flush_handler(correspondent_id, batch)
        except Exception as e:
            logger.error(
                "Flush conversation failed: %s",
                e,
                exc_info=True,
                extra=context(correspondent_id, batch_size=len(batch)),
            )
            await self._track("flush_failed", correspondent_id, error=str(e))
        finally:
            if self._inflight.get(correspondent_id) is asyncio.current_task():
                del self._inflight[correspondent_id]

    async def _track(self, event_type: str, correspondent_id: str, **data) -> None:
        if self._tracker:
            await self._tracker.track(
                event_type=event_type,
                actor="batch_coalescer",
                data={"correspondent_id": correspondent_id, **data},
            )
