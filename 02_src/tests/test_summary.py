"""Tests for SummaryScheduler."""

import asyncio
import json

import httpx
import pytest

from relay.models import CorrespondentProfile, Role, Turn
from relay.summary import SummaryScheduler


class Webhook:
    """Captures POSTed summaries."""

    def __init__(self, status: int = 200):
        self.payloads = []
        self.status = status

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.payloads.append(json.loads(request.content))
        return httpx.Response(self.status)


async def seed_log(store, correspondent_id="c1"):
    from conftest import make_message

    ts = make_message().timestamp
    await store.append_turns(
        correspondent_id,
        [
            Turn(Role.CORRESPONDENT, "Do you do botox?", ts),
            Turn(Role.AGENT, "Yes, from 150 EUR.", ts),
        ],
    )


def make_scheduler(store, llm, webhook, **kwargs) -> SummaryScheduler:
    kwargs.setdefault("delay_seconds", 0.05)
    kwargs.setdefault("min_exchanges", 2)
    return SummaryScheduler(
        store=store,
        llm_provider=llm,
        webhook_url="https://hooks.example.com/summary",
        http_transport=httpx.MockTransport(webhook),
        **kwargs,
    )


class TestSummaryScheduler:
    """Tests for idle-timer summaries."""

    @pytest.mark.asyncio
    async def test_summary_sent_after_idle(self, store, mock_llm, tracker):
        """Test that enough exchanges followed by silence post one summary."""
        await seed_log(store)
        await store.save_profile("c1", CorrespondentProfile(name="Maria"))
        mock_llm.complete.return_value = "- Asked about botox"
        webhook = Webhook()
        scheduler = make_scheduler(store, mock_llm, webhook, tracker=tracker)

        scheduler.touch("c1")
        scheduler.touch("c1")
        assert scheduler.pending("c1") == 2
        await asyncio.sleep(0.2)

        assert len(webhook.payloads) == 1
        payload = webhook.payloads[0]
        assert payload["name"] == "Maria"
        assert payload["phone"] == "c1"
        assert payload["summary"] == "- Asked about botox"
        assert "timestamp" in payload
        assert scheduler.pending("c1") is None
        assert tracker.get_events(event_types=["summary_sent"])

        transcript = mock_llm.complete.call_args.kwargs["messages"][0]["content"]
        assert transcript == "Customer: Do you do botox?\nAgent: Yes, from 150 EUR."

    @pytest.mark.asyncio
    async def test_too_few_exchanges(self, store, mock_llm):
        """Test that short conversations are not summarized."""
        await seed_log(store)
        webhook = Webhook()
        scheduler = make_scheduler(store, mock_llm, webhook)

        scheduler.touch("c1")
        await asyncio.sleep(0.2)

        assert webhook.payloads == []
        mock_llm.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_touch_restarts_timer(self, store, mock_llm):
        """Test that activity postpones the summary."""
        await seed_log(store)
        webhook = Webhook()
        scheduler = make_scheduler(store, mock_llm, webhook, delay_seconds=0.15)

        scheduler.touch("c1")
        await asyncio.sleep(0.1)
        scheduler.touch("c1")
        await asyncio.sleep(0.1)
        assert webhook.payloads == []

        await asyncio.sleep(0.15)
        assert len(webhook.payloads) == 1

    @pytest.mark.asyncio
    async def test_webhook_failure_is_logged(self, store, mock_llm):
        """Test that a failing webhook does not raise out of the timer."""
        await seed_log(store)
        webhook = Webhook(status=500)
        scheduler = make_scheduler(store, mock_llm, webhook, min_exchanges=1)

        scheduler.touch("c1")
        await asyncio.sleep(0.2)

        assert len(webhook.payloads) == 1
        assert scheduler.pending("c1") is None

    @pytest.mark.asyncio
    async def test_disabled_without_webhook(self, store, mock_llm):
        """Test that touch() is a no-op without a webhook URL."""
        scheduler = SummaryScheduler(store, mock_llm, webhook_url=None)

        scheduler.touch("c1")

        assert scheduler.enabled is False
        assert scheduler.pending("c1") is None

    @pytest.mark.asyncio
    async def test_stop_cancels_timers(self, store, mock_llm):
        """Test that stop() prevents pending summaries."""
        await seed_log(store)
        webhook = Webhook()
        scheduler = make_scheduler(store, mock_llm, webhook, min_exchanges=1)

        scheduler.touch("c1")
        await scheduler.stop()
        await asyncio.sleep(0.1)

        assert webhook.payloads == []
