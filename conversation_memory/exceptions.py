# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Exceptions raised by the conversation memory services."""


class ConversationMemoryError(Exception):
    """Base class for conversation memory failures."""


class CompactionError(ConversationMemoryError):
    """Raised when a compaction cycle cannot produce a new summary.

    Covers provider failures, timeouts and empty or malformed output. The
    live window is never modified when this is raised.
    """


class StoreError(ConversationMemoryError):
    """Raised when the durable conversation store cannot be read or written."""
