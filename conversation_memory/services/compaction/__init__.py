# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Conversation compaction module.

Keeps a conversation's prompt context bounded by folding older turns into a
running narrative summary:

  Estimation  (tokens.py)
      Deterministic text → token cost, optionally calibrated with tiktoken.

  Live window  (buffer.py)
      Ordered recent turns plus lifetime totals. Detects when the window is
      over budget and proposes which turns to retire.

  Summarization  (summarizer.py, truncation.py)
      Serialize retired turns, ask the provider for an updated summary,
      strip echoed lead-ins and cap the result to the summary budget.

Usage:

    settings = CompactionSettings(max_recent_turns=8, overlap_turns=2)
    buffer = TurnBuffer(settings)

    if buffer.append(turn):
        to_retire, to_keep = buffer.select_for_retirement(settings.overlap_turns)
        result = await engine.compact(summary, to_retire, settings)
        buffer.replace_window(to_keep)
"""

from conversation_memory.services.compaction.buffer import TurnBuffer
from conversation_memory.services.compaction.settings import CompactionSettings
from conversation_memory.services.compaction.summarizer import (
    CompactionEngine,
    CompactionResult,
    turns_to_text,
)
from conversation_memory.services.compaction.tokens import (
    TokenEstimator,
    default_estimator,
    estimate_tokens,
    estimate_turns_tokens,
)
from conversation_memory.services.compaction.truncation import (
    strip_boilerplate,
    truncate_summary_text,
    truncate_turn_content,
    turn_char_ceiling,
)

__all__ = [
    "CompactionSettings",
    "TokenEstimator",
    "default_estimator",
    "estimate_tokens",
    "estimate_turns_tokens",
    "TurnBuffer",
    "CompactionEngine",
    "CompactionResult",
    "turns_to_text",
    "strip_boilerplate",
    "truncate_summary_text",
    "truncate_turn_content",
    "turn_char_ceiling",
]
