"""Idle-timer conversation summaries posted to a webhook."""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx

from ..llm import ILLMProvider
from ..logging_config import context, get_logger
from ..models import Role
from ..storage import IConversationStore
from ..tracker import ITracker

logger = get_logger(__name__)

SUMMARY_PROMPT = (
    "Summarize this customer conversation for the sales team in a few short "
    "bullet points: who the customer is, what they asked about, what was "
    "offered or sent, and any agreed next step."
)


@dataclass
class _Entry:
    timer: asyncio.Task
    exchanges: int


class SummaryScheduler:
    """Sends one summary per conversation once it has gone quiet.

    Each flush calls `touch()`, which restarts the correspondent's idle
    timer. When the timer fires and enough exchanges happened, the stored
    log is summarized and posted to the webhook. Disabled without a
    webhook URL.
    """

    def __init__(
        self,
        store: IConversationStore,
        llm_provider: ILLMProvider,
        webhook_url: str | None,
        delay_seconds: float = 30 * 60,
        min_exchanges: int = 4,
        tracker: ITracker | None = None,
        http_timeout: float = 10.0,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._store = store
        self._llm = llm_provider
        self._webhook_url = webhook_url
        self._delay = delay_seconds
        self._min_exchanges = min_exchanges
        self._tracker = tracker
        self._http_timeout = http_timeout
        self._http_transport = http_transport
        self._entries: dict[str, _Entry] = {}

    @property
    def enabled(self) -> bool:
        return bool(self._webhook_url)

    def pending(self, correspondent_id: str) -> int | None:
        """Exchanges counted since the last summary, or None if idle."""
        entry = self._entries.get(correspondent_id)
        return entry.exchanges if entry else None

    def touch(self, correspondent_id: str) -> None:
        """Record an exchange and restart the idle timer."""
        if not self.enabled:
            return

        entry = self._entries.get(correspondent_id)
        exchanges = 1
        if entry:
            entry.timer.cancel()
            exchanges = entry.exchanges + 1

        self._entries[correspondent_id] = _Entry(
            timer=asyncio.create_task(self._fire_later(correspondent_id)),
            exchanges=exchanges,
        )

    async def stop(self) -> None:
        for entry in self._entries.values():
            entry.timer.cancel()
        self._entries.clear()

    async def _fire_later(self, correspondent_id: str) -> None:
        try:
            await asyncio.sleep(self._delay)
        except asyncio.CancelledError:
            return

        # Detach first so a touch() during the summary starts a new cycle.
        entry = self._entries.pop(correspondent_id, None)
        if not entry or entry.exchanges < self._min_exchanges:
            return

        try:
            await self.send_summary(correspondent_id)
        except Exception as e:
            logger.error(
                "Summary failed: %s", e, exc_info=True, extra=context(correspondent_id)
            )

    async def generate_summary(self, correspondent_id: str) -> str | None:
        """Summarize the stored log through the completion service."""
        log = await self._store.get_log(correspondent_id)
        if not log:
            return None

        transcript = "\n".join(
            f"{'Customer' if turn.role is Role.CORRESPONDENT else 'Agent'}: {turn.content}"
            for turn in log
        )
        summary = await self._llm.complete(
            messages=[{"role": "user", "content": transcript}],
            system=SUMMARY_PROMPT,
        )
        return summary.strip() or None

    async def send_summary(self, correspondent_id: str) -> bool:
        summary = await self.generate_summary(correspondent_id)
        if not summary:
            logger.warning("Nothing to summarize", extra=context(correspondent_id))
            return False

        profile = await self._store.get_profile(correspondent_id)
        payload = {
            "name": profile.name if profile and profile.name else "unknown",
            "phone": correspondent_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "summary": summary,
        }

        async with httpx.AsyncClient(
            timeout=self._http_timeout, transport=self._http_transport
        ) as client:
            response = await client.post(self._webhook_url, json=payload)
            response.raise_for_status()

        logger.info("Summary sent", extra=context(correspondent_id))
        if self._tracker:
            await self._tracker.track(
                event_type="summary_sent",
                actor="summary_scheduler",
                data={"correspondent_id": correspondent_id},
            )
        return True
