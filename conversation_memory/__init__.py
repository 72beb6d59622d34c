# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Bounded conversation memory: live turn window plus running summary."""

from conversation_memory.exceptions import CompactionError, ConversationMemoryError, StoreError
from conversation_memory.models import (
    ContextAssembly,
    ContextStats,
    ContextStrategy,
    StoredConversation,
    Turn,
    TurnRole,
)
from conversation_memory.services.assembler import ContextAssembler, to_langchain_messages
from conversation_memory.services.compaction import CompactionSettings, TokenEstimator
from conversation_memory.services.context_manager import (
    ConversationContext,
    ConversationContextManager,
)

__all__ = [
    "ConversationContextManager",
    "ConversationContext",
    "ContextAssembler",
    "to_langchain_messages",
    "CompactionSettings",
    "TokenEstimator",
    "Turn",
    "TurnRole",
    "ContextAssembly",
    "ContextStats",
    "ContextStrategy",
    "StoredConversation",
    "ConversationMemoryError",
    "CompactionError",
    "StoreError",
]
