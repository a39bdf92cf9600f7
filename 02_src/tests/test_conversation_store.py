"""Tests for ConversationStore."""

from datetime import datetime, timedelta, timezone

import pytest

from relay.errors import StoreUnavailableError
from relay.models import CorrespondentProfile, Gender, Role, Turn
from relay.storage import ConversationStore
from relay.storage.conversation_store import conversation_key, sent_media_refs


def turn(content: str, role: Role = Role.CORRESPONDENT, index: int = 0, refs=()) -> Turn:
    return Turn(
        role=role,
        content=content,
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=index),
        media_refs=tuple(refs),
    )


class FlakyKeyValueStore:
    """In-memory backend whose reads and writes can be switched off."""

    def __init__(self):
        self.data: dict[str, str] = {}
        self.fail_reads = False
        self.fail_writes = False
        self.failing_gets = 0  # number of upcoming reads that fail

    async def init(self):
        pass

    async def close(self):
        pass

    async def get(self, key):
        if self.failing_gets:
            self.failing_gets -= 1
            raise StoreUnavailableError("down")
        if self.fail_reads:
            raise StoreUnavailableError("down")
        return self.data.get(key)

    async def set(self, key, value, ttl_seconds):
        if self.fail_writes:
            raise StoreUnavailableError("down")
        self.data[key] = value

    async def delete(self, key):
        if self.fail_writes:
            raise StoreUnavailableError("down")
        self.data.pop(key, None)

    async def clear(self):
        self.data.clear()


class TestConversationLog:
    """Tests for log reads, appends and truncation."""

    @pytest.mark.asyncio
    async def test_empty_log(self, store):
        """Test that an unknown correspondent has an empty log."""
        assert await store.get_log("c1") == []

    @pytest.mark.asyncio
    async def test_append_preserves_order(self, store):
        """Test that turns come back oldest first."""
        await store.append_turn("c1", turn("first", index=0))
        await store.append_turn("c1", turn("second", Role.AGENT, index=1))

        log = await store.get_log("c1")

        assert [t.content for t in log] == ["first", "second"]
        assert log[1].role is Role.AGENT

    @pytest.mark.asyncio
    async def test_media_refs_survive_round_trip(self, store):
        """Test that media refs are persisted with the agent turn."""
        await store.append_turn("c1", turn("here", Role.AGENT, refs=["2", "3"]))

        log = await store.get_log("c1")

        assert log[0].media_refs == ("2", "3")

    @pytest.mark.asyncio
    async def test_truncation_keeps_most_recent(self, kv):
        """Test that the log never exceeds the cap and evicts oldest first."""
        store = ConversationStore(kv, max_turns=5)

        for i in range(12):
            await store.append_turn("c1", turn(f"m{i}", index=i))
            log = await store.get_log("c1")
            assert len(log) == min(i + 1, 5)

        log = await store.get_log("c1")
        assert [t.content for t in log] == ["m7", "m8", "m9", "m10", "m11"]

    @pytest.mark.asyncio
    async def test_append_turns_truncates_once(self, kv):
        """Test that a multi-turn append is capped as a whole."""
        store = ConversationStore(kv, max_turns=3)
        await store.append_turns("c1", [turn(f"m{i}", index=i) for i in range(4)])

        log = await store.get_log("c1")

        assert [t.content for t in log] == ["m1", "m2", "m3"]

    @pytest.mark.asyncio
    async def test_logs_are_per_correspondent(self, store):
        """Test that correspondents never see each other's turns."""
        await store.append_turn("c1", turn("for c1"))
        await store.append_turn("c2", turn("for c2"))

        assert [t.content for t in await store.get_log("c1")] == ["for c1"]
        assert [t.content for t in await store.get_log("c2")] == ["for c2"]

    @pytest.mark.asyncio
    async def test_clear_log(self, store):
        """Test that clear_log forgets the correspondent's log."""
        await store.append_turn("c1", turn("hello"))
        await store.clear_log("c1")

        assert await store.get_log("c1") == []

    @pytest.mark.asyncio
    async def test_corrupt_log_starts_fresh(self, kv, store):
        """Test that unreadable stored JSON is treated as an empty log."""
        await kv.set(conversation_key("c1"), "{not json", ttl_seconds=60)

        assert await store.get_log("c1") == []

    def test_max_turns_must_be_positive(self):
        """Test that a zero cap is rejected."""
        with pytest.raises(ValueError):
            ConversationStore(None, max_turns=0)


class TestStoreFallback:
    """Tests for degradation to process memory."""

    @pytest.mark.asyncio
    async def test_memory_only_store(self):
        """Test that kv=None keeps everything in memory."""
        store = ConversationStore(None, max_turns=2)
        await store.append_turns("c1", [turn("a"), turn("b"), turn("c")])

        assert [t.content for t in await store.get_log("c1")] == ["b", "c"]

    @pytest.mark.asyncio
    async def test_read_failure_falls_back(self):
        """Test that a failed read returns the memory copy instead of raising."""
        kv = FlakyKeyValueStore()
        store = ConversationStore(kv)
        kv.fail_reads = True

        assert await store.get_log("c1") == []
        assert not store.is_degraded("c1")

    @pytest.mark.asyncio
    async def test_read_failure_returns_last_known_log(self):
        """Test that a failed read serves the log this process last saw."""
        kv = FlakyKeyValueStore()
        store = ConversationStore(kv)
        await store.append_turns("c1", [turn("photo?"), turn("here", Role.AGENT, 1, ["1"])])

        kv.failing_gets = 1

        assert [t.content for t in await store.get_log("c1")] == ["photo?", "here"]
        assert not store.is_degraded("c1")

    @pytest.mark.asyncio
    async def test_read_failure_during_append_keeps_history(self):
        """Test that a failed read inside an append never truncates the stored log."""
        kv = FlakyKeyValueStore()
        store = ConversationStore(kv)
        await store.append_turns(
            "c1", [turn("photo?", index=0), turn("here", Role.AGENT, 1, ["1"])]
        )
        stored = kv.data[conversation_key("c1")]

        kv.failing_gets = 1
        await store.append_turns(
            "c1", [turn("thanks", index=2), turn("ok", Role.AGENT, 3)]
        )

        assert kv.data[conversation_key("c1")] == stored
        assert store.is_degraded("c1")
        log = await store.get_log("c1")
        assert [t.content for t in log] == ["photo?", "here", "thanks", "ok"]
        assert sent_media_refs(log) == {"1"}

    @pytest.mark.asyncio
    async def test_write_failure_degrades_correspondent(self):
        """Test that a failed write keeps the turn in memory for later reads."""
        kv = FlakyKeyValueStore()
        store = ConversationStore(kv)
        await store.append_turn("c1", turn("stored", index=0))

        kv.fail_writes = True
        await store.append_turn("c1", turn("in memory", index=1))
        kv.fail_writes = False

        assert store.is_degraded("c1")
        log = await store.get_log("c1")
        assert [t.content for t in log] == ["stored", "in memory"]

        # Later appends stay in memory even though the backend is back.
        await store.append_turn("c1", turn("later", index=2))
        assert [t.content for t in await store.get_log("c1")] == [
            "stored",
            "in memory",
            "later",
        ]

    @pytest.mark.asyncio
    async def test_degradation_is_per_correspondent(self):
        """Test that one correspondent's fallback does not affect another."""
        kv = FlakyKeyValueStore()
        store = ConversationStore(kv)
        kv.fail_writes = True
        await store.append_turn("c1", turn("x"))
        kv.fail_writes = False
        await store.append_turn("c2", turn("y"))

        assert store.is_degraded("c1")
        assert not store.is_degraded("c2")
        assert "conv:c2" in kv.data

    @pytest.mark.asyncio
    async def test_clear_log_lifts_degradation(self):
        """Test that an explicit reset returns the correspondent to the backend."""
        kv = FlakyKeyValueStore()
        store = ConversationStore(kv)
        kv.fail_writes = True
        await store.append_turn("c1", turn("x"))
        kv.fail_writes = False

        await store.clear_log("c1")

        assert not store.is_degraded("c1")
        assert await store.get_log("c1") == []

    @pytest.mark.asyncio
    async def test_reset_clears_everything(self):
        """Test that reset drops memory state and backend keys."""
        kv = FlakyKeyValueStore()
        store = ConversationStore(kv)
        await store.append_turn("c1", turn("x"))
        await store.save_profile("c1", CorrespondentProfile(name="Ann"))

        await store.reset()

        assert kv.data == {}
        assert await store.get_log("c1") == []
        assert await store.get_profile("c1") is None


class TestProfiles:
    """Tests for correspondent profiles."""

    @pytest.mark.asyncio
    async def test_save_and_get(self, store):
        """Test that a saved profile is returned."""
        await store.save_profile("c1", CorrespondentProfile(name="Maria", gender=Gender.FEMALE))

        profile = await store.get_profile("c1")

        assert profile.name == "Maria"
        assert profile.gender is Gender.FEMALE

    @pytest.mark.asyncio
    async def test_missing_profile(self, store):
        """Test that an unknown correspondent has no profile."""
        assert await store.get_profile("c1") is None

    @pytest.mark.asyncio
    async def test_profile_failures_are_best_effort(self):
        """Test that backend failures never raise out of profile calls."""
        kv = FlakyKeyValueStore()
        store = ConversationStore(kv)
        kv.fail_writes = True
        kv.fail_reads = True

        await store.save_profile("c1", CorrespondentProfile(name="Ann"))
        profile = await store.get_profile("c1")

        assert profile.name == "Ann"


class TestSentMediaRefs:
    """Tests for the sent-media ledger derived from the log."""

    def test_only_agent_turns_count(self):
        """Test that refs on correspondent turns are ignored."""
        log = [
            turn("q", Role.CORRESPONDENT, refs=["9"]),
            turn("a", Role.AGENT, refs=["1", "2"]),
            turn("b", Role.AGENT, refs=["3"]),
        ]

        assert sent_media_refs(log) == {"1", "2", "3"}

    @pytest.mark.asyncio
    async def test_eviction_forgets_refs(self, kv):
        """Test that refs disappear once their turn is truncated away."""
        store = ConversationStore(kv, max_turns=2)
        await store.append_turn("c1", turn("sent", Role.AGENT, index=0, refs=["1"]))
        assert await store.sent_media_refs("c1") == {"1"}

        await store.append_turns("c1", [turn("x", index=1), turn("y", index=2)])

        assert await store.sent_media_refs("c1") == set()
