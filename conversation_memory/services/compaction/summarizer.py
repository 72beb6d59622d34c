# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
LLM-based compaction of retired turns into the running summary.

One compaction cycle:
  1. Serialize the retired turns (each capped to a character ceiling).
  2. Ask the provider for an updated summary within the length budget.
  3. Strip echoed lead-ins and hard-cap the result to the summary budget.
  4. Re-estimate the summary's tokens.

The engine is all-or-nothing: it either returns a complete new summary that
covers every retired turn, or raises ``CompactionError``. It never touches
the live window; applying the result is the context manager's job.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional

from conversation_memory.exceptions import CompactionError
from conversation_memory.models import Turn, TurnRole
from conversation_memory.services.compaction.settings import CompactionSettings
from conversation_memory.services.compaction.tokens import TokenEstimator, default_estimator
from conversation_memory.services.compaction.truncation import (
    strip_boilerplate,
    truncate_summary_text,
    truncate_turn_content,
    turn_char_ceiling,
)
from conversation_memory.services.providers.summarization import SummarizationProvider

logger = logging.getLogger(__name__)

_ROLE_LABELS = {
    TurnRole.USER: "User",
    TurnRole.ASSISTANT: "Assistant",
}


@dataclass(frozen=True)
class CompactionResult:
    """Outcome of a successful compaction cycle.

    Attributes:
        summary (str): New summary covering the prior summary and the
            retired turns.
        summary_tokens (int): Estimated tokens of ``summary``.
        retired_count (int): Number of turns folded in.
    """

    summary: str
    summary_tokens: int
    retired_count: int


def turns_to_text(turns: List[Turn], max_chars_per_turn: int = 500) -> str:
    """Serialize turns to text for summarization.

    Format:
        [User]: ...
        [Assistant]: ...

    Sections are separated by double newlines (``\\n\\n``). Each turn's
    content is capped to *max_chars_per_turn* scaled by its weight.

    Args:
        turns (List[Turn]): Turns to convert, oldest first.
        max_chars_per_turn (int): Ceiling per turn at weight 1.0.

    Returns:
        str: Double-newline-joined string of role-prefixed entries.
    """
    parts: List[str] = []
    for turn in turns:
        ceiling = turn_char_ceiling(max_chars_per_turn, turn.weight)
        content = truncate_turn_content(turn.content.strip(), ceiling)
        if not content:
            continue
        parts.append(f"[{_ROLE_LABELS.get(turn.role, 'User')}]: {content}")
    return "\n\n".join(parts)


class CompactionEngine:
    """Turns a prior summary plus retired turns into a bounded new summary."""

    def __init__(
        self,
        provider: SummarizationProvider,
        estimator: Optional[TokenEstimator] = None,
    ) -> None:
        """Initialize the engine.

        Args:
            provider (SummarizationProvider): Summarization backend.
            estimator (Optional[TokenEstimator]): Estimator for the final
                summary. Defaults to the process-wide estimator.
        """
        self.provider = provider
        self.estimator = estimator or default_estimator

    def fit_summary(self, text: str, settings: CompactionSettings) -> str:
        """Cap *text* to the character budget and the token budget.

        The character budget already satisfies the heuristic estimator; a
        calibrated tokenizer may still count more tokens, in which case the
        text is shrunk proportionally until it fits.
        """
        summary = truncate_summary_text(text, settings.max_summary_chars)
        tokens = self.estimator.estimate(summary)
        while tokens > settings.max_summary_tokens and summary:
            target = int(len(summary) * settings.max_summary_tokens / tokens) - 1
            summary = truncate_summary_text(summary, max(0, target))
            tokens = self.estimator.estimate(summary)
        return summary

    async def compact(
        self,
        prior_summary: str,
        turns_to_retire: List[Turn],
        settings: CompactionSettings,
    ) -> CompactionResult:
        """Produce a new summary covering *prior_summary* and *turns_to_retire*.

        Args:
            prior_summary (str): Current summary, possibly empty.
            turns_to_retire (List[Turn]): Turns leaving the live window,
                oldest first.
            settings (CompactionSettings): Budgets of the conversation.

        Returns:
            CompactionResult: The new summary and its token estimate.

        Raises:
            ValueError: If *turns_to_retire* is empty.
            CompactionError: If the provider fails, times out, or returns
                nothing usable.
        """
        if not turns_to_retire:
            raise ValueError("compact() requires at least one turn to retire")

        turns_text = turns_to_text(turns_to_retire, settings.max_turn_chars_for_summary)
        try:
            raw = await asyncio.wait_for(
                self.provider.summarize(
                    prior_summary or "",
                    turns_text,
                    max_chars=settings.max_summary_chars,
                ),
                timeout=settings.summary_timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise CompactionError(
                f"Summarization timed out after {settings.summary_timeout_seconds:.1f}s"
            ) from e
        except Exception as e:
            raise CompactionError(f"Summarization failed: {e}") from e

        if not isinstance(raw, str):
            raise CompactionError(f"Malformed summarization output: {type(raw).__name__}")

        summary = self.fit_summary(strip_boilerplate(raw), settings)
        if not summary:
            raise CompactionError("Summarization returned an empty summary")

        summary_tokens = self.estimator.estimate(summary)
        logger.debug(
            "Summarized %d turns (%d chars in) into %d tokens",
            len(turns_to_retire),
            len(turns_text),
            summary_tokens,
        )
        return CompactionResult(
            summary=summary,
            summary_tokens=summary_tokens,
            retired_count=len(turns_to_retire),
        )
