# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Token estimation utilities.

The default estimator is the chars/4 heuristic, rounded up so it never
under-counts relative to the same heuristic applied downstream. When the
generation step uses a known tokenizer, set ``MEMORY_TOKEN_ENCODING`` to the
matching tiktoken encoding so budgets are measured in the same units.
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Optional

import tiktoken

from conversation_memory.config import settings
from conversation_memory.models import Turn

CHARS_PER_TOKEN_FALLBACK = 4

logger = logging.getLogger(__name__)


class TokenEstimator:
    """Deterministic, offline text → token cost function."""

    def __init__(
        self,
        chars_per_token: int = CHARS_PER_TOKEN_FALLBACK,
        encoding_name: Optional[str] = None,
    ) -> None:
        """Initialize the estimator.

        Args:
            chars_per_token (int): Characters per token for the heuristic.
            encoding_name (Optional[str]): tiktoken encoding name. When
                given, counts come from tiktoken instead of the heuristic.
        """
        if chars_per_token < 1:
            raise ValueError(f"chars_per_token must be >= 1, got {chars_per_token}")
        self.chars_per_token = chars_per_token
        self.encoding_name = encoding_name or None
        self._encoding = None

    def _get_encoding(self):
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self.encoding_name)
            logger.info("Token estimation calibrated to tiktoken encoding %s", self.encoding_name)
        return self._encoding

    def estimate(self, text: str) -> int:
        """Estimate the token cost of *text*.

        Args:
            text (str): Text to measure.

        Returns:
            int: Estimated token count, ``0`` for empty text.
        """
        if not text:
            return 0
        if self.encoding_name:
            return len(self._get_encoding().encode(text))
        return math.ceil(len(text) / self.chars_per_token)


default_estimator = TokenEstimator(
    chars_per_token=settings.MEMORY_CHARS_PER_TOKEN,
    encoding_name=settings.MEMORY_TOKEN_ENCODING or None,
)


def estimate_tokens(text: str) -> int:
    """Estimate token count with the process-wide estimator.

    Args:
        text (str): Text to measure.

    Returns:
        int: Estimated token count.
    """
    return default_estimator.estimate(text)


def estimate_turns_tokens(turns: Iterable[Turn]) -> int:
    """Sum the stored estimates of *turns*.

    Uses ``Turn.estimated_tokens`` as computed at append time; content is
    never re-measured.

    Args:
        turns (Iterable[Turn]): Turns to sum.

    Returns:
        int: Total estimated tokens.
    """
    return sum(t.estimated_tokens for t in turns)
