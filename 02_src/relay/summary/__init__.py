"""Conversation summary module."""

from .scheduler import SummaryScheduler

__all__ = ["SummaryScheduler"]
