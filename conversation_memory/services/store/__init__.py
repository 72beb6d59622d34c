# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Durable conversation stores."""

from conversation_memory.services.store.base import ConversationStore
from conversation_memory.services.store.memory import InMemoryConversationStore
from conversation_memory.services.store.platform import PlatformConversationStore

__all__ = [
    "ConversationStore",
    "InMemoryConversationStore",
    "PlatformConversationStore",
]
