# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Durable conversation store contract.

The memory manager only needs a narrow slice of the conversation backend:
read the persisted summary and totals, read recent turns, write the summary,
and (optionally) append a turn. Implementations raise ``StoreError`` for any
backend failure.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from conversation_memory.models import StoredConversation, Turn


class ConversationStore(ABC):
    """Authoritative storage of turns and summaries."""

    @abstractmethod
    async def load_conversation(self, conversation_id: str) -> Optional[StoredConversation]:
        """Load the persisted summary and totals of a conversation.

        Args:
            conversation_id (str): Conversation key.

        Returns:
            Optional[StoredConversation]: Stored state, or ``None`` if the
                conversation is unknown.
        """

    @abstractmethod
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
        """Write the summary and lifetime totals of a conversation.

        Args:
            conversation_id (str): Conversation key.
            summary (str): Summary text.
            summary_tokens (int): Token estimate of *summary*.
            total_messages (int): Lifetime message count.
            total_tokens (int): Lifetime token count.
            summarized_through (Optional[Turn]): Newest turn folded into
                *summary*; stored as the watermark.
        """

    @abstractmethod
    async def load_recent_turns(self, conversation_id: str, max_count: int) -> List[Turn]:
        """Load up to *max_count* most recent turns, oldest first.

        Args:
            conversation_id (str): Conversation key.
            max_count (int): Maximum number of turns.

        Returns:
            List[Turn]: Ordered turns (empty if none).
        """

    @abstractmethod
    async def append_turn(self, conversation_id: str, turn: Turn) -> str:
        """Persist a single turn.

        Args:
            conversation_id (str): Conversation key.
            turn (Turn): Turn carrying a provisional id.

        Returns:
            str: The durable id assigned by the store.
        """
