# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Compaction settings.

Per-context budgets for the live window and the running summary. Defaults
come from the process-wide ``Settings``; a conversation may carry its own
copy with different values.
"""

from __future__ import annotations

from dataclasses import dataclass

from conversation_memory.config import Settings


@dataclass(frozen=True)
class CompactionSettings:
    """All window/summary configuration of one conversation context.

    Attributes:
        max_recent_turns (int): Maximum number of live turns.
        max_tokens_before_compaction (int): Estimated token budget of the
            live window.
        max_summary_tokens (int): Hard cap on the running summary.
        overlap_turns (int): Most recent turns kept live across a
            compaction boundary. Must be at least 1.
        chars_per_token (int): Characters per token used to turn
            ``max_summary_tokens`` into a character budget.
        max_turn_chars_for_summary (int): Character ceiling of a single turn
            (at weight 1.0) inside the summarization request.
        full_context_max_tokens (int): Exclusive upper bound of the ``full``
            strategy tier.
        summarized_context_max_tokens (int): Exclusive upper bound of the
            ``summarized`` strategy tier.
        summary_timeout_seconds (float): Timeout for one provider call.
        max_backoff_turns (int): Cap on compaction opportunities skipped
            after consecutive failures.
    """

    max_recent_turns: int = 8
    max_tokens_before_compaction: int = 2_000
    max_summary_tokens: int = 400
    overlap_turns: int = 2
    chars_per_token: int = 4
    max_turn_chars_for_summary: int = 500
    full_context_max_tokens: int = 1_000
    summarized_context_max_tokens: int = 3_000
    summary_timeout_seconds: float = 30.0
    max_backoff_turns: int = 16

    def __post_init__(self) -> None:
        if self.max_recent_turns < 1:
            raise ValueError(f"max_recent_turns must be >= 1, got {self.max_recent_turns}")
        if self.overlap_turns < 1:
            raise ValueError(f"overlap_turns must be >= 1, got {self.overlap_turns}")
        if self.overlap_turns >= self.max_recent_turns:
            raise ValueError(
                f"overlap_turns ({self.overlap_turns}) must be smaller than "
                f"max_recent_turns ({self.max_recent_turns})"
            )
        if self.max_tokens_before_compaction < 1 or self.max_summary_tokens < 1:
            raise ValueError("token budgets must be positive")
        if self.chars_per_token < 1:
            raise ValueError(f"chars_per_token must be >= 1, got {self.chars_per_token}")
        if self.full_context_max_tokens > self.summarized_context_max_tokens:
            raise ValueError("full_context_max_tokens must not exceed summarized_context_max_tokens")

    @property
    def max_summary_chars(self) -> int:
        """Character budget of the summary.

        Returns:
            int: Product of ``max_summary_tokens`` and ``chars_per_token``.
        """
        return self.max_summary_tokens * self.chars_per_token

    @classmethod
    def from_settings(cls, source: Settings) -> "CompactionSettings":
        """Build the process-wide defaults from application settings.

        Args:
            source (Settings): Loaded application settings.

        Returns:
            CompactionSettings: Settings populated from ``MEMORY_*`` and
                related values.
        """
        return cls(
            max_recent_turns=source.MEMORY_MAX_RECENT_TURNS,
            max_tokens_before_compaction=source.MEMORY_MAX_TOKENS_BEFORE_COMPACTION,
            max_summary_tokens=source.MEMORY_MAX_SUMMARY_TOKENS,
            overlap_turns=source.MEMORY_OVERLAP_TURNS,
            chars_per_token=source.MEMORY_CHARS_PER_TOKEN,
            max_turn_chars_for_summary=source.MEMORY_MAX_TURN_CHARS_FOR_SUMMARY,
            full_context_max_tokens=source.MEMORY_FULL_CONTEXT_MAX_TOKENS,
            summarized_context_max_tokens=source.MEMORY_SUMMARIZED_CONTEXT_MAX_TOKENS,
            summary_timeout_seconds=source.SUMMARY_TIMEOUT_SECONDS,
            max_backoff_turns=source.COMPACTION_MAX_BACKOFF_TURNS,
        )
