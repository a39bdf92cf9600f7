"""LLM Provider implementation using Anthropic Claude API."""

import os
from typing import Protocol

import anthropic

from ..logging_config import get_logger

logger = get_logger(__name__)


class ILLMProvider(Protocol):
    """Abstraction for completion access."""

    async def complete(
        self,
        messages: list[dict],  # [{"role": "system" | "user" | "assistant", "content": "..."}]
        system: str | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Generate completion. Raises on failure."""
        ...


def to_anthropic_messages(
    messages: list[dict], system: str | None = None
) -> tuple[str | None, list[dict]]:
    """Split ordered messages into Anthropic's (system, messages) pair.

    System entries are collected into the system prompt in order. The rest
    are role-merged so that user and assistant strictly alternate, starting
    with a user turn.
    """
    system_parts = [system] if system else []
    chat: list[dict] = []

    for message in messages:
        role = message["role"]
        content = message["content"]
        if role == "system":
            system_parts.append(content)
            continue
        if chat and chat[-1]["role"] == role:
            chat[-1] = {"role": role, "content": f"{chat[-1]['content']}\n\n{content}"}
        else:
            chat.append({"role": role, "content": content})

    # A truncated log can start mid-exchange.
    while chat and chat[0]["role"] != "user":
        logger.debug("Dropping leading %s turn", chat[0]["role"])
        chat.pop(0)

    return ("\n\n".join(system_parts) or None), chat


class LLMProvider:
    """Anthropic Claude API provider."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-3-5-sonnet-20241022",
        max_tokens: int = 1024,
        timeout: float = 60.0,
    ):
        self._api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not self._api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable not set")

        self._model = model
        self._max_tokens = max_tokens
        self._client = anthropic.AsyncAnthropic(
            api_key=self._api_key, timeout=timeout, max_retries=2
        )

    async def complete(
        self,
        messages: list[dict],
        system: str | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """Generate completion using Claude API."""
        system_prompt, chat = to_anthropic_messages(messages, system)
        if not chat:
            raise RuntimeError("LLM API error: no user content to complete")

        kwargs = {
            "model": self._model,
            "messages": chat,
            "max_tokens": max_tokens or self._max_tokens,
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        try:
            response = await self._client.messages.create(**kwargs)
        except Exception as e:
            # Re-raise for handling by caller
            raise RuntimeError(f"LLM API error: {e}") from e

        return "".join(
            block.text
            for block in response.content
            if isinstance(getattr(block, "text", None), str)
        )

    async def close(self) -> None:
        await self._client.close()
