"""Core data models for the conversation relay."""

from .turns import InboundMessage, MessageType, Role, Turn
from .profile import CorrespondentProfile, Gender
from .media import Directive, MediaDescriptor, MediaType, ParsedResponse
from .tracing import TraceEvent

__all__ = [
    # Turns
    "Role",
    "Turn",
    "MessageType",
    "InboundMessage",
    # Profiles
    "CorrespondentProfile",
    "Gender",
    # Media
    "MediaType",
    "MediaDescriptor",
    "Directive",
    "ParsedResponse",
    # Tracing
    "TraceEvent",
]
