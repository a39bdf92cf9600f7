"""Prompt assembly module."""

from .assembler import ContextAssembler, IContextAssembler, format_batch, history_content

__all__ = ["IContextAssembler", "ContextAssembler", "format_batch", "history_content"]
