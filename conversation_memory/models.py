# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Shared models for the conversation memory services."""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class TurnRole(str, Enum):
    """Speaker of a turn.

    Attributes:
        USER (str): The person chatting.
        ASSISTANT (str): The assistant's reply.
    """

    USER = "user"
    ASSISTANT = "assistant"


class ContextStrategy(str, Enum):
    """Advisory classification of how much context is in play.

    Attributes:
        FULL (str): Small context; callers may add long-term profile data.
        SUMMARIZED (str): Medium context carried mostly by the summary.
        MINIMAL (str): Large context; callers should add nothing else.
    """

    FULL = "full"
    SUMMARIZED = "summarized"
    MINIMAL = "minimal"


class Turn(BaseModel):
    """One utterance in a conversation.

    Attributes:
        id (str): Opaque identifier. Provisional until the durable store
            acknowledges the turn, then replaced via ``update_turn_id``.
        role (TurnRole): Who spoke.
        content (str): Text of the turn.
        image_refs (List[str]): References to attached media, rendered as
            inline markers but never counted as tokens.
        message_type (Optional[str]): Caller-defined message kind.
        created_at (datetime): Creation time, non-decreasing per session.
        estimated_tokens (int): Token estimate computed once at append time.
        weight (float): Retention priority; lower weights get a smaller
            share of the summarization request.
    """

    id: str
    role: TurnRole
    content: str
    image_refs: List[str] = Field(default_factory=list)
    message_type: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    estimated_tokens: int = Field(default=0, ge=0)
    weight: float = 1.0


class ContextAssembly(BaseModel):
    """Prompt-ready context for the generation step. Derived, never stored.

    Attributes:
        summary_text (str): Labeled prior-context block, or ``""`` when the
            conversation has no summary yet.
        recent_messages (List[Dict[str, str]]): Live turns as
            ``{"role", "content"}`` dicts, oldest first.
        estimated_total_tokens (int): Summary tokens plus live turn tokens.
        strategy (ContextStrategy): Advisory size tier.
    """

    summary_text: str = ""
    recent_messages: List[Dict[str, str]] = Field(default_factory=list)
    estimated_total_tokens: int = 0
    strategy: ContextStrategy = ContextStrategy.FULL


class ContextStats(BaseModel):
    """Read-only observability snapshot of one resident context.

    Attributes:
        conversation_id (str): Conversation key.
        recent_turns (int): Number of live turns.
        recent_tokens (int): Estimated tokens of the live window.
        summary_tokens (int): Estimated tokens of the summary.
        total_messages (int): Lifetime message count.
        total_tokens (int): Lifetime estimated tokens.
        last_compaction_at (Optional[datetime]): Time of the last successful
            compaction, if any.
        compaction_failures (int): Consecutive failed compaction attempts.
        pending_persist (bool): Whether a summary is waiting to be written
            to the durable store.
    """

    conversation_id: str
    recent_turns: int
    recent_tokens: int
    summary_tokens: int
    total_messages: int
    total_tokens: int
    last_compaction_at: Optional[datetime] = None
    compaction_failures: int = 0
    pending_persist: bool = False


class StoredConversation(BaseModel):
    """Durable state of a conversation as returned by the store.

    Attributes:
        summary (str): Last persisted summary.
        summary_tokens (int): Token estimate of ``summary``.
        recent_turns (List[Turn]): Recent turns, oldest first. May be empty
            when the store serves turns through ``load_recent_turns`` only.
        total_messages (int): Lifetime message count at last persist.
        total_tokens (int): Lifetime token count at last persist.
        last_compaction_at (Optional[datetime]): Time of the last persisted
            compaction.
        summarized_through_id (Optional[str]): Id of the newest turn already
            folded into ``summary``.
        summarized_through_at (Optional[datetime]): Timestamp of that turn.
    """

    summary: str = ""
    summary_tokens: int = 0
    recent_turns: List[Turn] = Field(default_factory=list)
    total_messages: int = 0
    total_tokens: int = 0
    last_compaction_at: Optional[datetime] = None
    summarized_through_id: Optional[str] = None
    summarized_through_at: Optional[datetime] = None
