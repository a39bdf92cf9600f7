"""Context assembly: turns stored state plus the current batch into a prompt."""

import asyncio
from typing import Protocol

from ..catalog import MediaCatalog
from ..llm import ILLMProvider
from ..logging_config import context, get_logger
from ..models import CorrespondentProfile, Gender, InboundMessage, Role, Turn
from ..retrieval import IRetriever, format_snippets
from ..storage import IConversationStore

logger = get_logger(__name__)

MEDIA_LABELS = {
    "image": "image",
    "video": "video",
    "audio": "voice message",
    "document": "document",
    "sticker": "sticker",
}

GENDER_PROMPT = (
    "Classify the grammatical gender usually associated with the given first "
    "name. Answer with exactly one word: male, female, or unknown."
)

_ROLE_MAP = {Role.CORRESPONDENT: "user", Role.AGENT: "assistant"}


def _media_label(message: InboundMessage) -> str:
    return MEDIA_LABELS.get(message.type.value, "media")


def format_single_message(message: InboundMessage) -> str:
    content = message.text or ""
    if message.is_media:
        label = _media_label(message)
        suffix = f"[{label}: {message.media_url}]" if message.media_url else f"[{label}]"
        content = f"{content}\n\n{suffix}"
    return content.strip()


def format_batch(batch: list[InboundMessage], profile: CorrespondentProfile | None) -> str:
    """The current batch as one combined correspondent turn."""
    prefix = ""
    if profile and profile.is_known:
        gender = f" ({profile.gender.value})" if profile.gender is not Gender.UNKNOWN else ""
        prefix = f'[Customer name: "{profile.name}"{gender}]\n\n'

    if len(batch) == 1:
        return prefix + format_single_message(batch[0])

    combined = "\n\n".join(
        f"Message {i}:\n{format_single_message(message)}"
        for i, message in enumerate(batch, start=1)
    )
    return f"{prefix}The customer sent several messages in a row:\n\n{combined}"


def history_content(message: InboundMessage) -> str:
    """What an inbound message looks like once stored as a Turn."""
    text = (message.text or "").strip()
    if text:
        return text
    if message.media_url:
        return f"[{_media_label(message)}: {message.media_url}]"
    return ""


def extract_first_name(full_name: str | None) -> str | None:
    if not full_name or not full_name.strip():
        return None
    return full_name.split()[0]


class IContextAssembler(Protocol):
    """Builds the ordered message list sent to the completion service."""

    async def build_context(
        self,
        log: list[Turn],
        batch: list[InboundMessage],
        correspondent_id: str,
    ) -> list[dict]:
        ...


class ContextAssembler:
    """Builds prompts in a fixed order.

    1. system instructions plus the enumerated media catalog
    2. retrieval snippets (only when the batch has text and something matched)
    3. the stored log, turn by turn
    4. the current batch as a single correspondent turn
    """

    def __init__(
        self,
        system_prompt: str,
        store: IConversationStore,
        catalog: MediaCatalog,
        retriever: IRetriever,
        llm_provider: ILLMProvider,
        side_call_timeout: float = 15.0,
    ):
        self._system_prompt = system_prompt
        self._store = store
        self._catalog = catalog
        self._retriever = retriever
        self._llm = llm_provider
        self._side_call_timeout = side_call_timeout

    async def build_context(
        self,
        log: list[Turn],
        batch: list[InboundMessage],
        correspondent_id: str,
    ) -> list[dict]:
        messages = [{"role": "system", "content": await self._system_content()}]

        knowledge = await self._knowledge(batch, correspondent_id)
        if knowledge:
            messages.append({"role": "system", "content": knowledge})

        for turn in log:
            if turn.content:
                messages.append({"role": _ROLE_MAP[turn.role], "content": turn.content})

        profile = await self.resolve_profile(correspondent_id, log, batch)
        messages.append({"role": "user", "content": format_batch(batch, profile)})
        return messages

    async def _system_content(self) -> str:
        listing = await self._catalog.render()
        if not listing:
            return self._system_prompt

        return (
            f"{self._system_prompt}\n\n---\n\n"
            "### Available media library\n\n"
            "These are the media items you can send. Refer to them by number:\n\n"
            f"{listing}\n\n"
            "**Important:** to send an item write [MEDIA: <number>] on its own "
            "line. Never invent links."
        )

    async def _knowledge(self, batch: list[InboundMessage], correspondent_id: str) -> str | None:
        query = " ".join(m.text for m in batch if m.text and m.text.strip())
        if not query.strip():
            return None

        try:
            snippets = await self._retriever.search(query)
        except Exception as e:
            logger.warning("Retrieval failed: %s", e, extra=context(correspondent_id))
            return None

        if not snippets:
            return None
        return format_snippets(snippets)

    async def resolve_profile(
        self,
        correspondent_id: str,
        log: list[Turn],
        batch: list[InboundMessage],
    ) -> CorrespondentProfile | None:
        """Cached profile, created lazily on a correspondent's first turn."""
        existing = await self._store.get_profile(correspondent_id)
        if existing:
            return existing

        if log or not batch:
            return None

        name = extract_first_name(batch[0].sender_name)
        if not name:
            return None

        profile = CorrespondentProfile(name=name, gender=await self._classify_gender(name))
        await self._store.save_profile(correspondent_id, profile)
        return profile

    async def _classify_gender(self, name: str) -> Gender:
        try:
            answer = await asyncio.wait_for(
                self._llm.complete(
                    messages=[{"role": "user", "content": name}],
                    system=GENDER_PROMPT,
                    max_tokens=5,
                ),
                timeout=self._side_call_timeout,
            )
        except (RuntimeError, asyncio.TimeoutError) as e:
            logger.warning("Gender classification failed: %s", e)
            return Gender.UNKNOWN
        return Gender.parse(answer)
