"""Conversation relay: batched inbound chat turned into paced replies."""

from .app import Application, IApplication
from .batching import BatchCoalescer, RecentIds
from .catalog import HttpCatalogSource, ICatalogSource, MediaCatalog, StaticCatalogSource
from .config import Settings
from .directives import filter_unsent, parse_directives
from .dispatch import Dispatcher, IDispatcher
from .flush import FlushOrchestrator, FlushResult, FlushState
from .llm import ILLMProvider, LLMProvider
from .models import (
    CorrespondentProfile,
    Directive,
    Gender,
    InboundMessage,
    MediaDescriptor,
    MessageType,
    ParsedResponse,
    Role,
    TraceEvent,
    Turn,
)
from .prompt import ContextAssembler, IContextAssembler
from .storage import (
    ConversationStore,
    IConversationStore,
    IKeyValueStore,
    RedisKeyValueStore,
    SqliteKeyValueStore,
)
from .summary import SummaryScheduler
from .tracker import ITracker, Tracker
from .transport import HttpTransport, ITransport

__all__ = [
    # Application
    "Application",
    "IApplication",
    "Settings",
    # Models
    "Role",
    "Turn",
    "MessageType",
    "InboundMessage",
    "CorrespondentProfile",
    "Gender",
    "MediaDescriptor",
    "Directive",
    "ParsedResponse",
    "TraceEvent",
    # Components
    "IKeyValueStore",
    "SqliteKeyValueStore",
    "RedisKeyValueStore",
    "IConversationStore",
    "ConversationStore",
    "ICatalogSource",
    "StaticCatalogSource",
    "HttpCatalogSource",
    "MediaCatalog",
    "parse_directives",
    "filter_unsent",
    "IContextAssembler",
    "ContextAssembler",
    "ILLMProvider",
    "LLMProvider",
    "ITransport",
    "HttpTransport",
    "IDispatcher",
    "Dispatcher",
    "FlushOrchestrator",
    "FlushResult",
    "FlushState",
    "BatchCoalescer",
    "RecentIds",
    "SummaryScheduler",
    "ITracker",
    "Tracker",
]
