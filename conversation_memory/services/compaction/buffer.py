# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Live turn window of one conversation.

Pure in-memory bookkeeping: the buffer detects when compaction is needed and
proposes the retirement split, but never summarizes or drops turns on its
own. The context manager applies the split only after a summary that covers
the retired turns exists.
"""

from __future__ import annotations

from typing import Iterable, List, Tuple

from conversation_memory.models import Turn
from conversation_memory.services.compaction.settings import CompactionSettings


class TurnBuffer:
    """Ordered live window plus lifetime totals.

    Attributes:
        settings (CompactionSettings): Window budgets.
        total_messages (int): Lifetime number of turns, including retired ones.
        total_tokens (int): Lifetime estimated tokens, including retired ones.
    """

    def __init__(
        self,
        settings: CompactionSettings,
        turns: Iterable[Turn] = (),
        total_messages: int = 0,
        total_tokens: int = 0,
    ) -> None:
        """Initialize the buffer, optionally from loaded state.

        Args:
            settings (CompactionSettings): Window budgets.
            turns (Iterable[Turn]): Live turns, oldest first.
            total_messages (int): Lifetime message count so far.
            total_tokens (int): Lifetime token count so far.
        """
        self.settings = settings
        self._turns: List[Turn] = list(turns)
        self._window_tokens = sum(t.estimated_tokens for t in self._turns)
        # Lifetime totals can never be smaller than what is live right now.
        self.total_messages = max(total_messages, len(self._turns))
        self.total_tokens = max(total_tokens, self._window_tokens)

    def __len__(self) -> int:
        return len(self._turns)

    @property
    def turns(self) -> Tuple[Turn, ...]:
        """Live turns, oldest first (read-only view)."""
        return tuple(self._turns)

    @property
    def window_tokens(self) -> int:
        """Estimated tokens of the live window."""
        return self._window_tokens

    @property
    def last_turn(self):
        """Newest live turn, or ``None`` when the window is empty."""
        return self._turns[-1] if self._turns else None

    def needs_compaction(self) -> bool:
        """Whether the window exceeds its turn or token budget.

        Returns:
            bool: ``True`` if either budget is exceeded.
        """
        return (
            len(self._turns) > self.settings.max_recent_turns
            or self._window_tokens > self.settings.max_tokens_before_compaction
        )

    def append(self, turn: Turn) -> bool:
        """Add *turn* at the tail and report whether compaction is needed.

        Args:
            turn (Turn): Turn with ``estimated_tokens`` already computed.

        Returns:
            bool: ``True`` if the window is now over budget.
        """
        self._turns.append(turn)
        self._window_tokens += turn.estimated_tokens
        self.total_messages += 1
        self.total_tokens += turn.estimated_tokens
        return self.needs_compaction()

    def select_for_retirement(self, overlap_turns: int) -> Tuple[List[Turn], List[Turn]]:
        """Split the window into turns to retire and turns to keep.

        Everything except the most recent *overlap_turns* is retired, so the
        window always keeps a fixed tail for continuity.

        Args:
            overlap_turns (int): Number of most recent turns to keep.

        Returns:
            Tuple[List[Turn], List[Turn]]: ``(to_retire, to_keep)``, both in
                chronological order. ``to_retire`` is empty when the window
                holds no more than *overlap_turns* turns.

        Raises:
            ValueError: If *overlap_turns* is below 1 on a non-empty window.
        """
        if self._turns and overlap_turns < 1:
            raise ValueError(f"overlap_turns must be >= 1, got {overlap_turns}")
        cut = max(0, len(self._turns) - overlap_turns)
        return list(self._turns[:cut]), list(self._turns[cut:])

    def replace_window(self, kept: List[Turn]) -> None:
        """Replace the live window with *kept* after a successful compaction.

        Lifetime totals are unchanged.

        Args:
            kept (List[Turn]): The ``to_keep`` half of a retirement split.

        Raises:
            ValueError: If *kept* is not the current tail of the window.
        """
        if kept and self._turns[-len(kept):] != kept:
            raise ValueError("kept turns must be the current tail of the window")
        self._turns = list(kept)
        self._window_tokens = sum(t.estimated_tokens for t in self._turns)

    def find(self, turn_id: str):
        """Return the live turn with *turn_id*, or ``None``."""
        for turn in self._turns:
            if turn.id == turn_id:
                return turn
        return None
