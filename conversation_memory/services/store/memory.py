# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Process-local conversation store.

Keeps turn logs and summary records in dicts. Useful as the default store
for single-process deployments and as the store in tests.
"""

from __future__ import annotations

import uuid
from typing import Dict, List, Optional

from conversation_memory.models import StoredConversation, Turn, utcnow
from conversation_memory.services.store.base import ConversationStore


class InMemoryConversationStore(ConversationStore):
    """Dict-backed ``ConversationStore``."""

    def __init__(self) -> None:
        self._turns: Dict[str, List[Turn]] = {}
        self._records: Dict[str, StoredConversation] = {}

    async def load_conversation(self, conversation_id: str) -> Optional[StoredConversation]:
        record = self._records.get(conversation_id)
        log = self._turns.get(conversation_id)
        if record is None and log is None:
            return None
        record = record.model_copy(deep=True) if record is not None else StoredConversation()
        if log:
            # The turn log is authoritative for totals once it has grown past
            # the last summary write.
            record.total_messages = max(record.total_messages, len(log))
            record.total_tokens = max(record.total_tokens, sum(t.estimated_tokens for t in log))
        return record

    async def persist_summary(
        self,
        conversation_id: str,
        summary: str,
        summary_tokens: int,
        total_messages: int,
        total_tokens: int,
        *,
        summarized_through: Optional[Turn] = None,
    ) -> None:
        previous = self._records.get(conversation_id)
        through_id = previous.summarized_through_id if previous else None
        through_at = previous.summarized_through_at if previous else None
        if summarized_through is not None:
            through_id = summarized_through.id
            through_at = summarized_through.created_at
        self._records[conversation_id] = StoredConversation(
            summary=summary,
            summary_tokens=summary_tokens,
            total_messages=total_messages,
            total_tokens=total_tokens,
            last_compaction_at=utcnow(),
            summarized_through_id=through_id,
            summarized_through_at=through_at,
        )

    async def load_recent_turns(self, conversation_id: str, max_count: int) -> List[Turn]:
        if max_count <= 0:
            return []
        log = self._turns.get(conversation_id, [])
        return [t.model_copy() for t in log[-max_count:]]

    async def append_turn(self, conversation_id: str, turn: Turn) -> str:
        stored_id = str(uuid.uuid4())
        self._turns.setdefault(conversation_id, []).append(turn.model_copy(update={"id": stored_id}))
        return stored_id
