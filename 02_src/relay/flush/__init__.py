"""Flush orchestration module."""

from .orchestrator import FlushOrchestrator, FlushResult, FlushState, IVoiceResponder

__all__ = ["FlushOrchestrator", "FlushResult", "FlushState", "IVoiceResponder"]
