"""Tests for ContextAssembler and batch formatting."""

import asyncio

import pytest

from conftest import make_message
from relay.catalog import MediaCatalog, StaticCatalogSource
from relay.models import CorrespondentProfile, Gender, MessageType, Role, Turn
from relay.prompt import ContextAssembler, format_batch, history_content
from relay.prompt.assembler import extract_first_name


class FakeRetriever:
    def __init__(self, snippets=None, error: Exception | None = None):
        self.snippets = snippets or []
        self.error = error
        self.queries = []

    async def search(self, query):
        self.queries.append(query)
        if self.error:
            raise self.error
        return self.snippets


class TestFormatBatch:
    """Tests for format_batch()."""

    def test_single_message(self):
        """Test that a lone text message is passed through."""
        assert format_batch([make_message("hello")], None) == "hello"

    def test_multiple_messages_are_numbered(self):
        """Test the numbered layout for bursts."""
        text = format_batch([make_message("hi"), make_message("price?")], None)

        assert text == (
            "The customer sent several messages in a row:\n\n"
            "Message 1:\nhi\n\n"
            "Message 2:\nprice?"
        )

    def test_media_label_suffix(self):
        """Test that non-text input is tagged with its media type."""
        message = make_message(
            "Transcribed: do you work weekends?",
            type=MessageType.AUDIO,
            media_url="https://in/a.ogg",
        )

        text = format_batch([message], None)

        assert text == "Transcribed: do you work weekends?\n\n[voice message: https://in/a.ogg]"

    def test_profile_prefix(self):
        """Test the name and gender hint."""
        profile = CorrespondentProfile(name="Maria", gender=Gender.FEMALE)

        text = format_batch([make_message("hi")], profile)

        assert text == '[Customer name: "Maria" (female)]\n\nhi'

    def test_unknown_gender_omitted(self):
        """Test that an unknown gender is not mentioned."""
        profile = CorrespondentProfile(name="Sam")

        assert format_batch([make_message("hi")], profile).startswith('[Customer name: "Sam"]')


class TestHistoryContent:
    """Tests for history_content()."""

    def test_text_preferred(self):
        message = make_message("  caption  ", type=MessageType.IMAGE, media_url="https://x")
        assert history_content(message) == "caption"

    def test_media_without_text(self):
        message = make_message(None, type=MessageType.VIDEO, media_url="https://x/v.mp4")
        assert history_content(message) == "[video: https://x/v.mp4]"


class TestBuildContext:
    """Tests for ContextAssembler.build_context()."""

    @pytest.mark.asyncio
    async def test_ordering(self, store, catalog, mock_llm):
        """Test system, knowledge, history and batch ordering."""
        retriever = FakeRetriever(["Open 9-18 on weekdays."])
        assembler = ContextAssembler("Be nice.", store, catalog, retriever, mock_llm)
        log = [
            Turn(Role.CORRESPONDENT, "hello", make_message().timestamp),
            Turn(Role.AGENT, "hi! how can I help?", make_message().timestamp),
        ]

        messages = await assembler.build_context(log, [make_message("hours?")], "c1")

        assert [m["role"] for m in messages] == ["system", "system", "user", "assistant", "user"]
        assert messages[0]["content"].startswith("Be nice.")
        assert "1. [image] lips before after" in messages[0]["content"]
        assert "3. [video] clinic tour" in messages[0]["content"]
        assert "**[1]** Open 9-18 on weekdays." in messages[1]["content"]
        assert messages[-1]["content"] == "hours?"
        assert retriever.queries == ["hours?"]

    @pytest.mark.asyncio
    async def test_empty_catalog_keeps_plain_prompt(self, store, mock_llm):
        """Test that no media section is added without catalog items."""
        assembler = ContextAssembler(
            "Be nice.", store, MediaCatalog(StaticCatalogSource()), FakeRetriever(), mock_llm
        )

        messages = await assembler.build_context([], [make_message("hi")], "c1")

        assert messages[0] == {"role": "system", "content": "Be nice."}

    @pytest.mark.asyncio
    async def test_no_retrieval_without_text(self, store, catalog, mock_llm):
        """Test that media-only batches skip the retriever."""
        retriever = FakeRetriever(["irrelevant"])
        assembler = ContextAssembler("p", store, catalog, retriever, mock_llm)

        messages = await assembler.build_context(
            [], [make_message(None, type=MessageType.IMAGE, media_url="https://x")], "c1"
        )

        assert retriever.queries == []
        assert [m["role"] for m in messages] == ["system", "user"]

    @pytest.mark.asyncio
    async def test_retriever_failure_ignored(self, store, catalog, mock_llm):
        """Test that a failing retriever yields no knowledge block."""
        assembler = ContextAssembler(
            "p", store, catalog, FakeRetriever(error=ConnectionError("down")), mock_llm
        )

        messages = await assembler.build_context([], [make_message("hi")], "c1")

        assert [m["role"] for m in messages] == ["system", "user"]


class TestProfileResolution:
    """Tests for lazy profile creation."""

    def test_extract_first_name(self):
        assert extract_first_name("  Maria  Lopez ") == "Maria"
        assert extract_first_name("   ") is None
        assert extract_first_name(None) is None

    @pytest.mark.asyncio
    async def test_profile_created_on_first_turn(self, assembler, store, mock_llm):
        """Test that the first turn classifies and stores the profile."""
        mock_llm.complete.return_value = "Female."

        messages = await assembler.build_context(
            [], [make_message("hi", sender_name="Maria Lopez")], "c1"
        )

        profile = await store.get_profile("c1")
        assert profile.name == "Maria"
        assert profile.gender is Gender.FEMALE
        assert messages[-1]["content"].startswith('[Customer name: "Maria" (female)]')
        assert mock_llm.complete.call_args.kwargs["messages"] == [
            {"role": "user", "content": "Maria"}
        ]

    @pytest.mark.asyncio
    async def test_no_profile_after_first_turn(self, assembler, store, mock_llm):
        """Test that an existing conversation never triggers classification."""
        log = [Turn(Role.CORRESPONDENT, "hello", make_message().timestamp)]

        await assembler.build_context(log, [make_message("hi", sender_name="Maria")], "c1")

        mock_llm.complete.assert_not_called()
        assert await store.get_profile("c1") is None

    @pytest.mark.asyncio
    async def test_classification_failure_gives_unknown(self, assembler, store, mock_llm):
        """Test that a failed side call still stores the name."""
        mock_llm.complete.side_effect = RuntimeError("LLM API error: down")

        await assembler.build_context([], [make_message("hi", sender_name="Alex")], "c1")

        profile = await store.get_profile("c1")
        assert profile.name == "Alex"
        assert profile.gender is Gender.UNKNOWN

    @pytest.mark.asyncio
    async def test_classification_timeout_gives_unknown(self, store, catalog, mock_llm):
        """Test that a slow side call does not block the turn."""

        async def slow(**kwargs):
            await asyncio.sleep(1)
            return "male"

        mock_llm.complete.side_effect = slow
        assembler = ContextAssembler(
            "p", store, catalog, FakeRetriever(), mock_llm, side_call_timeout=0.05
        )

        await assembler.build_context([], [make_message("hi", sender_name="Alex")], "c1")

        assert (await store.get_profile("c1")).gender is Gender.UNKNOWN
