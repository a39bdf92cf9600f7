"""LLM module."""

from .llm_provider import ILLMProvider, LLMProvider, to_anthropic_messages

__all__ = ["ILLMProvider", "LLMProvider", "to_anthropic_messages"]
