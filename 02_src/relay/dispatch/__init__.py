"""Dispatch module."""

from .dispatcher import Dispatcher, IDispatcher

__all__ = ["IDispatcher", "Dispatcher"]
