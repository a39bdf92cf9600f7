"""FlushOrchestrator: one accumulated batch in, one persisted exchange out."""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Protocol

from ..catalog import MediaCatalog
from ..directives import filter_unsent, media_marker, parse_directives
from ..dispatch import IDispatcher
from ..llm import ILLMProvider
from ..logging_config import context, get_logger
from ..models import (
    Directive,
    InboundMessage,
    MediaDescriptor,
    MessageType,
    Role,
    Turn,
)
from ..prompt import IContextAssembler, history_content
from ..storage import IConversationStore
from ..storage.conversation_store import sent_media_refs
from ..summary import SummaryScheduler
from ..tracker import ITracker

logger = get_logger(__name__)


class FlushState(str, Enum):
    """Stages of a flush, in order."""

    IDLE = "idle"
    CONTEXT_BUILDING = "context_building"
    COMPLETING = "completing"
    DIRECTIVE_RESOLVING = "directive_resolving"
    PERSISTING = "persisting"
    DISPATCHING = "dispatching"


@dataclass
class FlushResult:
    """Outcome of one flush."""

    correspondent_id: str
    state: FlushState = FlushState.IDLE  # stage reached when the flush ended
    completed: bool = False
    media_sent: list[str] = field(default_factory=list)
    media_failed: list[str] = field(default_factory=list)
    media_skipped: list[str] = field(default_factory=list)
    media_unresolved: list[str] = field(default_factory=list)
    text_sent: bool | None = None
    voice_sent: bool = False


class IVoiceResponder(Protocol):
    """Decides on and delivers a voice reply instead of text."""

    async def maybe_reply(
        self,
        correspondent_id: str,
        text: str,
        incoming_type: MessageType,
        log: list[Turn],
    ) -> bool:
        """Return True if the reply went out as voice."""
        ...


def agent_history_content(
    prose: str, delivered: list[tuple[Directive, MediaDescriptor]]
) -> str:
    markers = [media_marker(d.ref, item.description) for d, item in delivered]
    return "\n".join([*markers, prose]).strip()


class FlushOrchestrator:
    """Runs the flush sequence for one correspondent batch.

    context building -> completion -> directive resolution -> persisting
    -> dispatching. Persisting happens before any send, so media is marked
    as delivered before it is dispatched and a failed send is never retried
    on a later turn. A failed completion sends the apology text and
    persists nothing.
    """

    def __init__(
        self,
        store: IConversationStore,
        assembler: IContextAssembler,
        llm_provider: ILLMProvider,
        catalog: MediaCatalog,
        dispatcher: IDispatcher,
        tracker: ITracker,
        apology_text: str,
        completion_timeout: float = 60.0,
        summary_scheduler: SummaryScheduler | None = None,
        voice_responder: IVoiceResponder | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._store = store
        self._assembler = assembler
        self._llm = llm_provider
        self._catalog = catalog
        self._dispatcher = dispatcher
        self._tracker = tracker
        self._apology_text = apology_text
        self._completion_timeout = completion_timeout
        self._summary = summary_scheduler
        self._voice = voice_responder
        self._clock = clock

    async def flush(
        self, correspondent_id: str, batch: list[InboundMessage]
    ) -> FlushResult:
        result = FlushResult(correspondent_id=correspondent_id)
        if not batch:
            return result

        result.state = FlushState.CONTEXT_BUILDING
        log = await self._store.get_log(correspondent_id)
        messages = await self._assembler.build_context(log, batch, correspondent_id)

        result.state = FlushState.COMPLETING
        response = await self._complete(correspondent_id, messages)
        if response is None:
            await self._tracker.track(
                event_type="completion_failed",
                actor="flush_orchestrator",
                data={"correspondent_id": correspondent_id, "batch_size": len(batch)},
            )
            await self._dispatcher.send_text(correspondent_id, self._apology_text)
            return result

        result.state = FlushState.DIRECTIVE_RESOLVING
        parsed = parse_directives(response)
        delivered = await self._resolve(correspondent_id, parsed.directives, log, result)

        result.state = FlushState.PERSISTING
        turns = [
            Turn(
                role=Role.CORRESPONDENT,
                content=history_content(message),
                timestamp=message.timestamp,
            )
            for message in batch
        ]
        turns.append(
            Turn(
                role=Role.AGENT,
                content=agent_history_content(parsed.prose, delivered),
                timestamp=self._clock(),
                media_refs=tuple(d.ref for d, _ in delivered),
            )
        )
        await self._store.append_turns(correspondent_id, turns)
        if self._summary:
            self._summary.touch(correspondent_id)

        result.state = FlushState.DISPATCHING
        await self._dispatch(correspondent_id, parsed.prose, delivered, batch, log, result)

        result.state = FlushState.IDLE
        result.completed = True
        await self._tracker.track(
            event_type="batch_flushed",
            actor="flush_orchestrator",
            data={
                "correspondent_id": correspondent_id,
                "batch_size": len(batch),
                "media_sent": result.media_sent,
                "text_sent": result.text_sent,
                "voice_sent": result.voice_sent,
            },
        )
        return result

    async def _complete(self, correspondent_id: str, messages: list[dict]) -> str | None:
        try:
            response = await asyncio.wait_for(
                self._llm.complete(messages=messages),
                timeout=self._completion_timeout,
            )
        except asyncio.TimeoutError:
            logger.error("Completion timed out", extra=context(correspondent_id))
            return None
        except Exception as e:
            logger.error("AI response failed: %s", e, extra=context(correspondent_id))
            return None

        if not response or not response.strip():
            logger.error("AI response empty", extra=context(correspondent_id))
            return None
        return response

    async def _resolve(
        self,
        correspondent_id: str,
        directives: list[Directive],
        log: list[Turn],
        result: FlushResult,
    ) -> list[tuple[Directive, MediaDescriptor]]:
        # Dedup runs on canonical catalog ids, so "01", "#1" and "1" are one item.
        resolved: dict[str, MediaDescriptor] = {}
        canonical: list[Directive] = []
        for directive in directives:
            found = await self._catalog.resolve(directive.ref)
            if found is None:
                logger.warning(
                    "Media not found for reference %s",
                    directive.ref,
                    extra=context(correspondent_id),
                )
                result.media_unresolved.append(directive.ref)
                await self._tracker.track(
                    event_type="media_unresolved",
                    actor="flush_orchestrator",
                    data={"correspondent_id": correspondent_id, "ref": directive.ref},
                )
                continue
            media_id, item = found
            if media_id in resolved:
                continue
            resolved[media_id] = item
            canonical.append(Directive(ref=media_id, caption=directive.caption))

        pending, skipped = filter_unsent(canonical, sent_media_refs(log))
        for directive in skipped:
            result.media_skipped.append(directive.ref)
            await self._tracker.track(
                event_type="media_skipped",
                actor="flush_orchestrator",
                data={"correspondent_id": correspondent_id, "ref": directive.ref},
            )
        return [(directive, resolved[directive.ref]) for directive in pending]

    async def _dispatch(
        self,
        correspondent_id: str,
        prose: str,
        delivered: list[tuple[Directive, MediaDescriptor]],
        batch: list[InboundMessage],
        log: list[Turn],
        result: FlushResult,
    ) -> None:
        if delivered:
            outcomes = await self._dispatcher.send_media_sequence(
                correspondent_id, [(item, d.caption) for d, item in delivered]
            )
            for (directive, item), ok in zip(delivered, outcomes):
                if ok:
                    result.media_sent.append(directive.ref)
                else:
                    # Already marked as delivered; it will not be retried.
                    result.media_failed.append(directive.ref)
                    logger.error(
                        "Failed to send media %s",
                        directive.ref,
                        extra=context(correspondent_id, url=item.url),
                    )
                await self._tracker.track(
                    event_type="media_dispatched",
                    actor="flush_orchestrator",
                    data={
                        "correspondent_id": correspondent_id,
                        "ref": directive.ref,
                        "success": ok,
                    },
                )

        if not prose:
            return

        if self._voice and not delivered:
            try:
                result.voice_sent = await self._voice.maybe_reply(
                    correspondent_id, prose, batch[0].type, log
                )
            except Exception as e:
                logger.warning("Voice reply failed: %s", e, extra=context(correspondent_id))
            if result.voice_sent:
                return

        result.text_sent = await self._dispatcher.send_text(correspondent_id, prose)
        if not result.text_sent:
            logger.error("Failed to send message", extra=context(correspondent_id))
        await self._tracker.track(
            event_type="text_dispatched",
            actor="flush_orchestrator",
            data={"correspondent_id": correspondent_id, "success": result.text_sent},
        )
