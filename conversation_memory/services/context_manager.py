# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Conversation context manager.

Owns one in-memory context per conversation id: the live turn window, the
running summary and lifetime totals. Contexts are loaded from the durable
store on first use, compacted when the window outgrows its budget, and
evicted after an idle period.

Concurrency:
  - A registry lock guards insertion and eviction of entries.
  - Each entry has its own lock. Everything that mutates a conversation
    (append, compaction, id reconciliation, configuration, load, explicit
    eviction) runs under it, so turns are applied in invocation order and a
    conversation is never compacted twice at once.
  - Compaction results are applied without any suspension point in
    between, so ``assemble`` can read a resident context without the lock
    and always sees either the pre- or post-compaction state.
  - An entry evicted while a caller waited on its lock is marked
    ``evicted``; the caller then resolves the entry again, so two live
    contexts for one id never coexist.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional, Union

from conversation_memory.config import settings
from conversation_memory.exceptions import CompactionError
from conversation_memory.models import (
    ContextAssembly,
    ContextStats,
    StoredConversation,
    Turn,
    TurnRole,
    utcnow,
)
from conversation_memory.services.assembler import ContextAssembler
from conversation_memory.services.compaction.buffer import TurnBuffer
from conversation_memory.services.compaction.settings import CompactionSettings
from conversation_memory.services.compaction.summarizer import CompactionEngine
from conversation_memory.services.compaction.tokens import TokenEstimator, default_estimator
from conversation_memory.services.providers.summarization import (
    LLMSummarizationProvider,
    SummarizationProvider,
)
from conversation_memory.services.store.base import ConversationStore
from conversation_memory.services.store.memory import InMemoryConversationStore

logger = logging.getLogger(__name__)

# Minimum gap between consecutive turn timestamps of one conversation.
_TURN_TIME_STEP = timedelta(milliseconds=1)


@dataclass
class ConversationContext:
    """Mutable in-memory state of one conversation.

    Attributes:
        conversation_id (str): Conversation key.
        buffer (TurnBuffer): Live window and lifetime totals.
        settings (CompactionSettings): Budgets of this conversation.
        summary (str): Running summary of retired turns.
        summary_tokens (int): Estimated tokens of ``summary``.
        last_compaction_at (Optional[datetime]): Time of the last
            successful compaction.
        compaction_failures (int): Consecutive failed compaction attempts.
        skip_compactions (int): Compaction opportunities still to skip
            before the next attempt.
        pending_persist (bool): Summary computed but not yet written to the
            durable store.
        summarized_through (Optional[Turn]): Newest turn folded into
            ``summary``.
        last_turn_at (Optional[datetime]): Timestamp of the newest turn
            ever appended.
        turn_seq (int): Counter for provisional turn ids.
    """

    conversation_id: str
    buffer: TurnBuffer
    settings: CompactionSettings
    summary: str = ""
    summary_tokens: int = 0
    last_compaction_at: Optional[datetime] = None
    compaction_failures: int = 0
    skip_compactions: int = 0
    pending_persist: bool = False
    summarized_through: Optional[Turn] = None
    last_turn_at: Optional[datetime] = None
    turn_seq: int = 0


@dataclass
class _ContextEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    context: Optional[ConversationContext] = None
    last_access: float = field(default_factory=time.monotonic)
    evicted: bool = False


def _coerce_role(role: Union[TurnRole, str]) -> TurnRole:
    try:
        return TurnRole(role)
    except ValueError:
        raise ValueError(f"Unsupported turn role: {role!r}") from None


def _metadata_weight(metadata: Mapping[str, Any]) -> float:
    raw = metadata.get("weight", metadata.get("context_weight"))
    if not raw:
        return 1.0
    weight = float(raw)
    if weight < 0:
        raise ValueError(f"Turn weight must be non-negative, got {weight}")
    return weight


def _metadata_image_refs(metadata: Mapping[str, Any]) -> List[str]:
    refs = metadata.get("image_refs") or metadata.get("image_references") or []
    if isinstance(refs, str):
        return [refs]
    return [str(ref) for ref in refs]


def _after_watermark(turns: List[Turn], stored: Optional[StoredConversation]) -> List[Turn]:
    """Drop turns already folded into the stored summary.

    The id watermark is exact; the timestamp is the fallback when the
    watermark turn itself is no longer among the loaded turns. Turn
    timestamps within a conversation are strictly increasing, so no live
    turn shares the watermark's timestamp.
    """
    if stored is None:
        return turns
    if stored.summarized_through_id:
        for i, turn in enumerate(turns):
            if turn.id == stored.summarized_through_id:
                return turns[i + 1:]
    if stored.summarized_through_at is not None:
        return [t for t in turns if t.created_at > stored.summarized_through_at]
    return turns


def _reaches_watermark(turns: List[Turn], stored: Optional[StoredConversation]) -> bool:
    """Whether the newest *turns* already cover everything after the watermark."""
    if stored is None:
        return False
    if stored.summarized_through_id and any(t.id == stored.summarized_through_id for t in turns):
        return True
    through_at = stored.summarized_through_at
    return through_at is not None and any(t.created_at <= through_at for t in turns)


class ConversationContextManager:
    """Per-conversation memory: live window, running summary, assembly."""

    def __init__(
        self,
        store: Optional[ConversationStore] = None,
        provider: Optional[SummarizationProvider] = None,
        estimator: Optional[TokenEstimator] = None,
        default_settings: Optional[CompactionSettings] = None,
        *,
        persist_turns: Optional[bool] = None,
        idle_ttl_seconds: Optional[float] = None,
        max_contexts: Optional[int] = None,
    ) -> None:
        """Initialize the manager.

        Args:
            store (Optional[ConversationStore]): Durable store. Defaults to a
                process-local ``InMemoryConversationStore``.
            provider (Optional[SummarizationProvider]): Summarization
                backend. Defaults to ``LLMSummarizationProvider()``.
            estimator (Optional[TokenEstimator]): Token estimator. Defaults
                to the process-wide estimator.
            default_settings (Optional[CompactionSettings]): Budgets for
                new contexts. Defaults to values from ``settings``.
            persist_turns (Optional[bool]): Write every turn to the store
                with ``append_turn`` and adopt the durable id. Defaults to
                ``True`` when the manager creates its own store and
                ``False`` otherwise.
            idle_ttl_seconds (Optional[float]): Idle time before a resident
                context is evicted. Defaults to ``CONTEXT_IDLE_TTL_SECONDS``.
            max_contexts (Optional[int]): Maximum resident contexts.
                Defaults to ``MAX_CONTEXTS``.
        """
        self.store = store if store is not None else InMemoryConversationStore()
        self.estimator = estimator or default_estimator
        self.engine = CompactionEngine(
            provider if provider is not None else LLMSummarizationProvider(),
            estimator=self.estimator,
        )
        self.assembler = ContextAssembler()
        self.default_settings = default_settings or CompactionSettings.from_settings(settings)
        self.persist_turns = store is None if persist_turns is None else persist_turns
        self.idle_ttl_seconds = (
            settings.CONTEXT_IDLE_TTL_SECONDS if idle_ttl_seconds is None else idle_ttl_seconds
        )
        self.max_contexts = settings.MAX_CONTEXTS if max_contexts is None else max_contexts

        self._entries: Dict[str, _ContextEntry] = {}
        self._registry_lock = asyncio.Lock()
        self._overrides: Dict[str, CompactionSettings] = {}

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    @property
    def resident_conversations(self) -> List[str]:
        """Ids of the conversations currently held in memory."""
        return [cid for cid, entry in self._entries.items() if entry.context is not None]

    def _drop_entry(self, conversation_id: str, entry: _ContextEntry) -> None:
        """Remove *entry* from the registry and mark it evicted.

        Must be called with the registry lock held.
        """
        if self._entries.get(conversation_id) is entry:
            del self._entries[conversation_id]
        entry.evicted = True
        if entry.context is not None and entry.context.pending_persist:
            logger.warning(
                "Evicting %s with an unpersisted summary; the store copy is older",
                conversation_id,
            )
        entry.context = None

    def _cleanup_idle_contexts(self, keep: Optional[str] = None) -> None:
        """Evict contexts idle longer than the TTL, then the oldest over the cap.

        Never evicts an entry whose lock is held, nor the entry for *keep*.
        """
        now = time.monotonic()
        expired = [
            (cid, entry)
            for cid, entry in self._entries.items()
            if cid != keep
            and now - entry.last_access > self.idle_ttl_seconds
            and not entry.lock.locked()
        ]
        for cid, entry in expired:
            self._drop_entry(cid, entry)
        if expired:
            logger.info("Evicted %d idle conversation context(s)", len(expired))

        if len(self._entries) > self.max_contexts:
            evictable = [
                (cid, entry)
                for cid, entry in self._entries.items()
                if cid != keep and not entry.lock.locked()
            ]
            evictable.sort(key=lambda item: item[1].last_access)
            to_evict = len(self._entries) - self.max_contexts
            for cid, entry in evictable[:to_evict]:
                self._drop_entry(cid, entry)
            logger.info(
                "Evicted %d conversation context(s) over MAX_CONTEXTS limit",
                min(to_evict, len(evictable)),
            )

    async def _get_entry(self, conversation_id: str) -> _ContextEntry:
        """Return the registry entry for *conversation_id*, creating it if needed."""
        async with self._registry_lock:
            entry = self._entries.get(conversation_id)
            if entry is None:
                entry = _ContextEntry()
                self._entries[conversation_id] = entry
            entry.last_access = time.monotonic()
            self._cleanup_idle_contexts(keep=conversation_id)
            return entry

    @asynccontextmanager
    async def _locked_context(self, conversation_id: str) -> AsyncIterator[ConversationContext]:
        """Hold the conversation's lock and yield its loaded context."""
        while True:
            entry = await self._get_entry(conversation_id)
            async with entry.lock:
                if entry.evicted:
                    continue
                if entry.context is None:
                    entry.context = await self._load_context(conversation_id)
                entry.last_access = time.monotonic()
                yield entry.context
                return

    # ------------------------------------------------------------------
    # Load / persist
    # ------------------------------------------------------------------

    def _new_context(self, conversation_id: str) -> ConversationContext:
        ctx_settings = self._overrides.get(conversation_id, self.default_settings)
        return ConversationContext(
            conversation_id=conversation_id,
            buffer=TurnBuffer(ctx_settings),
            settings=ctx_settings,
        )

    async def _load_unsummarized_turns(
        self,
        conversation_id: str,
        stored: Optional[StoredConversation],
        ctx_settings: CompactionSettings,
    ) -> List[Turn]:
        """Fetch the newest turns, widening the page until the watermark is covered.

        Without a watermark nothing is summarized yet, so the whole log is
        read. Turns at or before the watermark are filtered by the caller.
        """
        recent = list(stored.recent_turns) if stored is not None else []
        if recent and _reaches_watermark(recent, stored):
            return recent

        limit = max(ctx_settings.max_recent_turns * 2, 1)
        while True:
            turns = await self.store.load_recent_turns(conversation_id, limit)
            if len(turns) < limit or _reaches_watermark(turns, stored):
                return turns or recent
            logger.debug(
                "Backlog of %s exceeds %d turns, widening the page", conversation_id, limit
            )
            limit *= 2

    async def _load_context(self, conversation_id: str) -> ConversationContext:
        """Build the context from the durable store, or empty if it has none.

        A store failure is logged and the context starts empty.
        """
        ctx_settings = self._overrides.get(conversation_id, self.default_settings)
        try:
            stored = await self.store.load_conversation(conversation_id)
            turns = await self._load_unsummarized_turns(conversation_id, stored, ctx_settings)
        except Exception:
            logger.warning(
                "Failed to load conversation %s, starting fresh", conversation_id, exc_info=True,
            )
            return self._new_context(conversation_id)

        if stored is None and not turns:
            return self._new_context(conversation_id)

        turns = _after_watermark(sorted(turns, key=lambda t: t.created_at), stored)
        for turn in turns:
            if not turn.estimated_tokens and turn.content:
                turn.estimated_tokens = self.estimator.estimate(turn.content)

        summary = stored.summary if stored is not None else ""
        summary_tokens = 0
        if summary:
            summary_tokens = stored.summary_tokens or self.estimator.estimate(summary)
            if summary_tokens > ctx_settings.max_summary_tokens:
                summary = self.engine.fit_summary(summary, ctx_settings)
                summary_tokens = self.estimator.estimate(summary)

        if stored is not None:
            total_messages, total_tokens = stored.total_messages, stored.total_tokens
        else:
            total_messages = len(turns)
            total_tokens = sum(t.estimated_tokens for t in turns)

        context = ConversationContext(
            conversation_id=conversation_id,
            buffer=TurnBuffer(ctx_settings, turns, total_messages, total_tokens),
            settings=ctx_settings,
            summary=summary,
            summary_tokens=summary_tokens,
            last_compaction_at=stored.last_compaction_at if stored is not None else None,
            last_turn_at=turns[-1].created_at if turns else (
                stored.summarized_through_at if stored is not None else None
            ),
        )
        logger.info(
            "Loaded conversation %s (%d live turns, %d summary tokens, %d total messages)",
            conversation_id,
            len(context.buffer),
            summary_tokens,
            context.buffer.total_messages,
        )
        return context

    async def _persist_summary(self, context: ConversationContext) -> None:
        """Write summary and totals to the store; on failure keep them pending."""
        context.pending_persist = True
        try:
            await self.store.persist_summary(
                context.conversation_id,
                context.summary,
                context.summary_tokens,
                context.buffer.total_messages,
                context.buffer.total_tokens,
                summarized_through=context.summarized_through,
            )
        except Exception:
            logger.warning(
                "Failed to persist summary for %s, will retry on next turn",
                context.conversation_id,
                exc_info=True,
            )
            return
        context.pending_persist = False

    # ------------------------------------------------------------------
    # Compaction
    # ------------------------------------------------------------------

    async def _compact(self, context: ConversationContext) -> bool:
        """Run one compaction cycle unless backing off after failures.

        Returns:
            bool: ``True`` if the window was compacted.
        """
        if context.skip_compactions > 0:
            context.skip_compactions -= 1
            logger.debug(
                "Skipping compaction of %s (backoff, %d more to skip)",
                context.conversation_id,
                context.skip_compactions,
            )
            return False

        to_retire, to_keep = context.buffer.select_for_retirement(context.settings.overlap_turns)
        if not to_retire:
            return False

        try:
            result = await self.engine.compact(context.summary, to_retire, context.settings)
        except CompactionError as e:
            context.compaction_failures += 1
            context.skip_compactions = min(
                2 ** (context.compaction_failures - 1) - 1,
                context.settings.max_backoff_turns,
            )
            logger.warning(
                "Compaction of %s failed (%d consecutive, skipping next %d): %s",
                context.conversation_id,
                context.compaction_failures,
                context.skip_compactions,
                e,
            )
            return False

        # No await below: readers see the whole update or none of it.
        context.buffer.replace_window(to_keep)
        context.summary = result.summary
        context.summary_tokens = result.summary_tokens
        context.summarized_through = to_retire[-1]
        context.last_compaction_at = utcnow()
        context.compaction_failures = 0
        context.skip_compactions = 0

        logger.info(
            "Compacted %s: retired %d turn(s), kept %d, summary %d tokens",
            context.conversation_id,
            result.retired_count,
            len(to_keep),
            result.summary_tokens,
        )
        return True

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def _build_turn(
        self,
        context: ConversationContext,
        role: TurnRole,
        content: str,
        metadata: Mapping[str, Any],
    ) -> Turn:
        created_at = utcnow()
        if context.last_turn_at is not None and created_at <= context.last_turn_at:
            created_at = context.last_turn_at + _TURN_TIME_STEP
        context.last_turn_at = created_at
        context.turn_seq += 1
        return Turn(
            id=f"temp_{int(created_at.timestamp() * 1000)}_{role.value}_{context.turn_seq}",
            role=role,
            content=content,
            image_refs=_metadata_image_refs(metadata),
            message_type=metadata.get("message_type") or role.value,
            created_at=created_at,
            estimated_tokens=self.estimator.estimate(content),
            weight=_metadata_weight(metadata),
        )

    async def add_turn(
        self,
        conversation_id: str,
        role: Union[TurnRole, str],
        content: str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Turn:
        """Append a turn and compact the window if it is over budget.

        Compaction and persistence failures are logged and never raised;
        the turn is always appended.

        Args:
            conversation_id (str): Conversation key.
            role (Union[TurnRole, str]): ``"user"`` or ``"assistant"``.
            content (str): Turn text.
            metadata (Optional[Mapping[str, Any]]): Optional ``weight`` /
                ``context_weight``, ``image_refs`` / ``image_references``
                and ``message_type``.

        Returns:
            Turn: A copy of the appended turn, carrying its provisional (or
                durable, with ``persist_turns``) id.

        Raises:
            ValueError: If *role* is not a known role or the weight is
                negative.
        """
        turn_role = _coerce_role(role)
        metadata = metadata or {}
        _metadata_weight(metadata)

        async with self._locked_context(conversation_id) as context:
            turn = self._build_turn(context, turn_role, content, metadata)
            if self.persist_turns:
                try:
                    turn.id = await self.store.append_turn(conversation_id, turn)
                except Exception:
                    logger.warning(
                        "Failed to persist turn of %s, keeping provisional id %s",
                        conversation_id,
                        turn.id,
                        exc_info=True,
                    )

            needs_compaction = context.buffer.append(turn)
            logger.debug(
                "Appended %s turn to %s (%d live, %d window tokens)",
                turn_role.value,
                conversation_id,
                len(context.buffer),
                context.buffer.window_tokens,
            )

            compacted = await self._compact(context) if needs_compaction else False
            if compacted or context.pending_persist:
                await self._persist_summary(context)
            return turn.model_copy()

    async def assemble(self, conversation_id: str) -> ContextAssembly:
        """Build the prompt-ready context of a conversation.

        Reads a resident context without waiting for its lock; loads it
        under the lock otherwise.

        Args:
            conversation_id (str): Conversation key.

        Returns:
            ContextAssembly: Summary block, live messages, token estimate
                and strategy.
        """
        entry = await self._get_entry(conversation_id)
        context = entry.context
        if context is not None and not entry.evicted:
            return self.assembler.assemble(context)
        async with self._locked_context(conversation_id) as context:
            return self.assembler.assemble(context)

    async def update_turn_id(self, conversation_id: str, temp_id: str, real_id: str) -> bool:
        """Replace a provisional turn id with the durable one.

        Args:
            conversation_id (str): Conversation key.
            temp_id (str): Provisional id returned by ``add_turn``.
            real_id (str): Id assigned by the durable store.

        Returns:
            bool: ``True`` if a resident turn (or the summary watermark)
                carried *temp_id*.

        Raises:
            ValueError: If *real_id* is empty.
        """
        if not real_id:
            raise ValueError("real_id must not be empty")
        entry = self._entries.get(conversation_id)
        if entry is None:
            return False
        async with entry.lock:
            context = entry.context
            if entry.evicted or context is None:
                return False
            updated = False
            turn = context.buffer.find(temp_id)
            if turn is not None:
                turn.id = real_id
                updated = True
            watermark = context.summarized_through
            if watermark is not None and watermark.id == temp_id:
                watermark.id = real_id
                updated = True
            if updated:
                logger.debug("Turn %s of %s is now %s", temp_id, conversation_id, real_id)
            return updated

    async def evict(self, conversation_id: str) -> bool:
        """Drop a conversation from memory.

        A pending summary gets one more write attempt first. The next access
        reloads the conversation from the store.

        Args:
            conversation_id (str): Conversation key.

        Returns:
            bool: ``True`` if a resident entry was evicted.
        """
        async with self._registry_lock:
            entry = self._entries.get(conversation_id)
        if entry is None:
            return False
        async with entry.lock:
            if entry.evicted:
                return False
            if entry.context is not None and entry.context.pending_persist:
                await self._persist_summary(entry.context)
            async with self._registry_lock:
                self._drop_entry(conversation_id, entry)
        logger.info("Evicted conversation context %s", conversation_id)
        return True

    def stats(self, conversation_id: str) -> Optional[ContextStats]:
        """Observability snapshot of a resident context.

        Args:
            conversation_id (str): Conversation key.

        Returns:
            Optional[ContextStats]: Snapshot, or ``None`` if the
                conversation is not resident.
        """
        entry = self._entries.get(conversation_id)
        if entry is None or entry.context is None:
            return None
        context = entry.context
        return ContextStats(
            conversation_id=conversation_id,
            recent_turns=len(context.buffer),
            recent_tokens=context.buffer.window_tokens,
            summary_tokens=context.summary_tokens,
            total_messages=context.buffer.total_messages,
            total_tokens=context.buffer.total_tokens,
            last_compaction_at=context.last_compaction_at,
            compaction_failures=context.compaction_failures,
            pending_persist=context.pending_persist,
        )

    async def configure(self, conversation_id: str, compaction_settings: CompactionSettings) -> None:
        """Override the budgets of one conversation.

        Applied immediately when the conversation is resident, otherwise on
        its next load. A summary over the new budget is shortened; a window
        over the new budget is compacted on the next ``add_turn``.

        Args:
            conversation_id (str): Conversation key.
            compaction_settings (CompactionSettings): New budgets.
        """
        if not isinstance(compaction_settings, CompactionSettings):
            raise ValueError("compaction_settings must be a CompactionSettings instance")
        self._overrides[conversation_id] = compaction_settings
        entry = self._entries.get(conversation_id)
        if entry is None:
            return
        async with entry.lock:
            context = entry.context
            if entry.evicted or context is None:
                return
            context.settings = compaction_settings
            context.buffer.settings = compaction_settings
            if context.summary_tokens > compaction_settings.max_summary_tokens:
                context.summary = self.engine.fit_summary(context.summary, compaction_settings)
                context.summary_tokens = self.estimator.estimate(context.summary)
                await self._persist_summary(context)

    async def close(self) -> None:
        """Flush pending summaries and drop every resident context."""
        async with self._registry_lock:
            entries = list(self._entries.items())
        for cid, entry in entries:
            async with entry.lock:
                if entry.evicted:
                    continue
                if entry.context is not None and entry.context.pending_persist:
                    await self._persist_summary(entry.context)
                async with self._registry_lock:
                    self._drop_entry(cid, entry)
        self._overrides.clear()
        logger.info("Closed conversation context manager (%d context(s) dropped)", len(entries))
