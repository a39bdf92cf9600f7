"""Pytest configuration and fixtures."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from relay.models import InboundMessage, MediaDescriptor, MediaType, MessageType  # noqa: E402


class FakeTransport:
    """Records every send; results and errors can be scripted per call."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.results: list = []  # bool or Exception, consumed in order

    def _next(self):
        if self.results:
            outcome = self.results.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        return True

    async def send_text(self, correspondent_id, text):
        self.calls.append(("text", correspondent_id, text))
        return self._next()

    async def send_media(self, correspondent_id, url, media_type, caption=None):
        self.calls.append(("media", correspondent_id, url, media_type, caption))
        return self._next()

    async def send_voice(self, correspondent_id, audio):
        self.calls.append(("voice", correspondent_id, audio))
        return self._next()

    @property
    def texts(self) -> list[str]:
        return [call[2] for call in self.calls if call[0] == "text"]

    @property
    def media_urls(self) -> list[str]:
        return [call[2] for call in self.calls if call[0] == "media"]


def make_message(
    text: str | None = "Hello",
    correspondent_id: str = "15550001",
    type: MessageType = MessageType.TEXT,
    media_url: str | None = None,
    message_id: str | None = None,
    sender_name: str | None = None,
    offset: int = 0,
) -> InboundMessage:
    """Build an inbound message; `offset` shifts the timestamp in seconds."""
    return InboundMessage(
        correspondent_id=correspondent_id,
        type=type,
        text=text,
        media_url=media_url,
        timestamp=datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        + timedelta(seconds=offset),
        message_id=message_id,
        sender_name=sender_name,
    )


CATALOG_ITEMS = [
    MediaDescriptor(
        key="clinic/lips_before_after_ab12cd",
        url="https://cdn.example.com/lips.jpg",
        type=MediaType.IMAGE,
        description="lips_before-after",
    ),
    MediaDescriptor(
        key="clinic/botox_result",
        url="https://cdn.example.com/botox.jpg",
        type=MediaType.IMAGE,
        description="botox result",
    ),
    MediaDescriptor(
        key="clinic/tour",
        url="https://cdn.example.com/tour.mp4",
        type=MediaType.VIDEO,
        description="clinic tour",
        caption="Our clinic",
    ),
]


@pytest_asyncio.fixture
async def kv():
    """Create in-memory SQLite key-value store for testing."""
    from relay.storage import SqliteKeyValueStore

    store = SqliteKeyValueStore(":memory:")
    await store.init()
    yield store
    await store.close()


@pytest.fixture
def store(kv):
    """Create ConversationStore on top of the in-memory backend."""
    from relay.storage import ConversationStore

    return ConversationStore(kv, max_turns=30)


@pytest.fixture
def tracker():
    from relay.tracker import Tracker

    return Tracker()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def sleeps():
    """Collects the delays passed to the dispatcher's sleep function."""
    return []


@pytest.fixture
def dispatcher(transport, sleeps):
    """Dispatcher that records delays instead of sleeping."""
    from relay.dispatch import Dispatcher

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    return Dispatcher(transport, pacing=(0.0, 0.0), media_gap=0.5, sleep=fake_sleep)


@pytest.fixture
def mock_llm():
    """Create mock LLM provider."""
    llm = Mock()
    llm.complete = AsyncMock(return_value="Test response")
    return llm


@pytest.fixture
def catalog():
    from relay.catalog import MediaCatalog, StaticCatalogSource

    return MediaCatalog(StaticCatalogSource(CATALOG_ITEMS))


@pytest.fixture
def assembler(store, catalog, mock_llm):
    from relay.prompt import ContextAssembler
    from relay.retrieval import NullRetriever

    return ContextAssembler(
        system_prompt="You are a helpful assistant.",
        store=store,
        catalog=catalog,
        retriever=NullRetriever(),
        llm_provider=mock_llm,
    )


@pytest.fixture
def orchestrator(store, assembler, mock_llm, catalog, dispatcher, tracker):
    """Create FlushOrchestrator wired to fakes."""
    from relay.flush import FlushOrchestrator

    return FlushOrchestrator(
        store=store,
        assembler=assembler,
        llm_provider=mock_llm,
        catalog=catalog,
        dispatcher=dispatcher,
        tracker=tracker,
        apology_text="Sorry, try again later.",
        completion_timeout=5.0,
    )
