"""Batching module."""

from .coalescer import BatchCoalescer, FlushHandler
from .dedup import RecentIds

__all__ = ["BatchCoalescer", "FlushHandler", "RecentIds"]
