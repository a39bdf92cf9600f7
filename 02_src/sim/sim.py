"""SIM implementation - hardcoded burst scenario for manual testing."""

import asyncio
import random
import uuid
from typing import Protocol

import httpx

from relay.logging_config import get_logger
from relay.tracker import ITracker

logger = get_logger(__name__)


class ISim(Protocol):
    """Generate inbound traffic against a running relay."""

    async def start(self) -> None:
        """Start hardcoded scenario."""
        ...

    async def stop(self) -> None:
        """Stop scenario."""
        ...


class Sim:
    """Sends short bursts of messages, the way people actually type."""

    def __init__(
        self,
        api_url: str = "http://localhost:8000",
        tracker: ITracker | None = None,
        burst_gap: tuple[float, float] = (0.5, 2.0),
        pause_between_bursts: float = 15.0,
    ):
        self._api_url = api_url
        self._tracker = tracker
        self._burst_gap = burst_gap
        self._pause = pause_between_bursts
        self._running = False
        self._task: asyncio.Task | None = None
        self._client: httpx.AsyncClient | None = None

    def set_tracker(self, tracker: ITracker) -> None:
        """Inject tracker for SIM trace events."""
        self._tracker = tracker

    async def start(self) -> None:
        """Start hardcoded scenario."""
        if self._running:
            return

        self._running = True
        self._client = httpx.AsyncClient()
        self._task = asyncio.create_task(self._run_scenario())

    async def stop(self) -> None:
        """Stop scenario."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        if self._client:
            await self._client.aclose()
            self._client = None

    async def _run_scenario(self) -> None:
        """Run hardcoded scenario."""
        correspondents = [
            {"id": "15550000001", "name": "Alice Martin"},
            {"id": "15550000002", "name": "Bob Stone"},
        ]

        # Each inner list is one burst, sent within the debounce window.
        bursts = [
            [["Hi!", "Do you have photos of the product?"], ["hello"]],
            [["great", "and a video?"], ["What sizes are available?", "and prices"]],
            [["thanks, that's all"], ["ok thanks"]],
        ]

        try:
            if self._tracker:
                await self._tracker.track(
                    "sim_started",
                    "sim",
                    {"scenario": "bursts", "correspondent_count": len(correspondents)},
                )

            for round_bursts in bursts:
                if not self._running:
                    break

                for correspondent, burst in zip(correspondents, round_bursts):
                    for text in burst:
                        if not self._running:
                            break
                        await self._send_message(correspondent, text)
                        await asyncio.sleep(random.uniform(*self._burst_gap))

                await asyncio.sleep(self._pause)

        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error("SIM scenario error: %s", e)
        finally:
            if self._tracker:
                await self._tracker.track(
                    "sim_completed",
                    "sim",
                    {"scenario": "bursts", "correspondent_count": len(correspondents)},
                )

    async def _send_message(self, correspondent: dict, text: str) -> None:
        """Send a message via HTTP API."""
        if not self._client:
            return

        try:
            response = await self._client.post(
                f"{self._api_url}/api/messages",
                json={
                    "correspondent_id": correspondent["id"],
                    "type": "text",
                    "text": text,
                    "message_id": str(uuid.uuid4()),
                    "sender_name": correspondent["name"],
                },
                timeout=10.0,
            )

            if response.status_code == 200:
                logger.info(
                    "SIM: %s -> %s (%s)",
                    correspondent["id"],
                    text,
                    response.json().get("status"),
                )
            else:
                logger.error("SIM: Error sending message: %s", response.status_code)

        except Exception as e:
            logger.error("SIM: Failed to send message: %s", e)
