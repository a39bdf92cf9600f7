"""Retrieval collaborator module."""

from .retriever import IRetriever, NullRetriever, format_snippets

__all__ = ["IRetriever", "NullRetriever", "format_snippets"]
