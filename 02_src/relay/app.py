"""Application bootstrap and lifecycle management."""

from typing import Protocol

from .batching import BatchCoalescer, RecentIds
from .catalog import HttpCatalogSource, ICatalogSource, MediaCatalog, StaticCatalogSource
from .config import Settings
from .dispatch import Dispatcher
from .flush import FlushOrchestrator, IVoiceResponder
from .llm import ILLMProvider, LLMProvider
from .logging_config import get_logger
from .prompt import ContextAssembler
from .retrieval import IRetriever, NullRetriever
from .storage import (
    ConversationStore,
    IKeyValueStore,
    RedisKeyValueStore,
    SqliteKeyValueStore,
)
from .summary import SummaryScheduler
from .tracker import Tracker
from .transport import HttpTransport, ITransport

logger = get_logger(__name__)


class IApplication(Protocol):
    """Bootstrap and lifecycle."""

    async def start(self) -> None:
        """Initialize components in dependency order."""
        ...

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        ...

    async def reset(self) -> None:
        """Reset data between test runs."""
        ...


def create_kv_store(settings: Settings) -> IKeyValueStore | None:
    """Key-value backend selected by STORE_BACKEND (None means memory only)."""
    if settings.store_backend == "redis":
        return RedisKeyValueStore(settings.redis_url)
    if settings.store_backend == "memory":
        return None
    return SqliteKeyValueStore(settings.database_url)


class Application:
    """Main application bootstrap.

    Collaborators that talk to the outside world (completion service,
    transport, catalog source, retriever, voice) can be injected; by default
    they are built from settings.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        llm_provider: ILLMProvider | None = None,
        transport: ITransport | None = None,
        catalog_source: ICatalogSource | None = None,
        retriever: IRetriever | None = None,
        voice_responder: IVoiceResponder | None = None,
    ):
        self._settings = settings or Settings.from_env()
        self._llm = llm_provider
        self._transport = transport
        self._catalog_source = catalog_source
        self._retriever = retriever or NullRetriever()
        self._voice = voice_responder

        # Components (will be initialized in start())
        self._kv: IKeyValueStore | None = None
        self._store: ConversationStore | None = None
        self._tracker: Tracker | None = None
        self._catalog: MediaCatalog | None = None
        self._dispatcher: Dispatcher | None = None
        self._assembler: ContextAssembler | None = None
        self._summary: SummaryScheduler | None = None
        self._orchestrator: FlushOrchestrator | None = None
        self._coalescer: BatchCoalescer | None = None

    async def start(self) -> None:
        """Initialize components in dependency order."""
        logger.info("Starting application")
        s = self._settings

        # 1. Key-value backend + conversation store
        self._kv = create_kv_store(s)
        if self._kv is not None:
            await self._kv.init()
        self._store = ConversationStore(
            self._kv,
            max_turns=s.max_history_messages,
            log_ttl_seconds=s.conversation_ttl_seconds,
            profile_ttl_seconds=s.profile_ttl_seconds,
        )
        logger.info("Conversation store initialized (%s)", s.store_backend)

        # 2. Tracker
        self._tracker = Tracker()

        # 3. Media catalog
        if self._catalog_source is None:
            self._catalog_source = (
                HttpCatalogSource(s.catalog_url, timeout=s.catalog_timeout)
                if s.catalog_url
                else StaticCatalogSource()
            )
        self._catalog = MediaCatalog(self._catalog_source, ttl_seconds=s.catalog_ttl_seconds)

        # 4. Completion service
        if self._llm is None:
            self._llm = LLMProvider(
                model=s.anthropic_model,
                max_tokens=s.max_tokens,
                timeout=s.completion_timeout,
            )
        logger.info("LLM provider initialized")

        # 5. Transport + dispatcher
        if self._transport is None:
            self._transport = HttpTransport(
                s.transport_base_url, s.transport_api_key, timeout=s.transport_timeout
            )
        self._dispatcher = Dispatcher(
            self._transport,
            pacing=(s.pacing_min_seconds, s.pacing_max_seconds),
            media_gap=s.media_gap_seconds,
            max_retries=s.rate_limit_retries,
            backoff=s.rate_limit_backoff_seconds,
        )

        # 6. Prompt assembly, summaries, flush orchestration
        self._assembler = ContextAssembler(
            system_prompt=s.system_prompt,
            store=self._store,
            catalog=self._catalog,
            retriever=self._retriever,
            llm_provider=self._llm,
        )
        self._summary = SummaryScheduler(
            store=self._store,
            llm_provider=self._llm,
            webhook_url=s.summary_webhook_url,
            delay_seconds=s.summary_delay_minutes * 60,
            min_exchanges=s.summary_min_messages,
            tracker=self._tracker,
        )
        self._orchestrator = FlushOrchestrator(
            store=self._store,
            assembler=self._assembler,
            llm_provider=self._llm,
            catalog=self._catalog,
            dispatcher=self._dispatcher,
            tracker=self._tracker,
            apology_text=s.apology_text,
            completion_timeout=s.completion_timeout,
            summary_scheduler=self._summary,
            voice_responder=self._voice,
        )

        # 7. Coalescer (entry point for inbound messages)
        self._coalescer = BatchCoalescer(
            flush_handler=self._orchestrator.flush,
            window_seconds=s.debounce_seconds,
            sliding=s.sliding_debounce,
            recent_ids=RecentIds(ttl_seconds=s.inbound_dedup_ttl_seconds),
            tracker=self._tracker,
        )
        await self._coalescer.start()
        logger.info("All components initialized successfully")

    async def stop(self) -> None:
        """Shutdown in reverse order."""
        if self._coalescer:
            await self._coalescer.stop(flush_pending=True)
        if self._summary:
            await self._summary.stop()
        if isinstance(self._transport, HttpTransport):
            await self._transport.close()
        if isinstance(self._llm, LLMProvider):
            await self._llm.close()
        if self._kv:
            await self._kv.close()
            logger.info("Storage closed")

    async def reset(self) -> None:
        """Reset data between test runs."""
        # 1. Pause intake
        if self._coalescer:
            await self._coalescer.stop()
        if self._summary:
            await self._summary.stop()

        # 2. Clear state
        if self._store:
            await self._store.reset()
            logger.info("Storage cleared")
        if self._tracker:
            self._tracker.clear()

        # 3. Resume intake
        if self._coalescer:
            await self._coalescer.start()
            logger.info("Reset complete")

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def store(self) -> ConversationStore:
        """Get conversation store instance."""
        if not self._store:
            raise RuntimeError("Application not started")
        return self._store

    @property
    def tracker(self) -> Tracker:
        if not self._tracker:
            raise RuntimeError("Application not started")
        return self._tracker

    @property
    def coalescer(self) -> BatchCoalescer:
        """Get batch coalescer instance."""
        if not self._coalescer:
            raise RuntimeError("Application not started")
        return self._coalescer

    @property
    def orchestrator(self) -> FlushOrchestrator:
        if not self._orchestrator:
            raise RuntimeError("Application not started")
        return self._orchestrator
