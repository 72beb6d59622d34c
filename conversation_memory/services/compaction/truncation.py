# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Text truncation for summarization input and output.

  - Turn content is capped before it enters the summarization request so one
    oversized turn cannot dominate the prompt.
  - Provider output is cleaned of echoed lead-ins and hard-capped to the
    summary character budget, preferring a sentence boundary.
"""

from __future__ import annotations

import logging

from conversation_memory.services.prompts.base import (
    SUMMARY_BOILERPLATE_PREFIXES,
    TURN_TRUNCATION_SUFFIX,
)

logger = logging.getLogger(__name__)

_SENTENCE_ENDINGS = (".", "!", "?")

# A boundary cut is only taken when it keeps at least this share of the budget.
BOUNDARY_MIN_SHARE = 0.8

MIN_WEIGHT_SHARE = 0.25
MAX_WEIGHT_SHARE = 2.0


def turn_char_ceiling(max_chars: int, weight: float) -> int:
    """Per-turn character ceiling scaled by the turn's weight.

    Args:
        max_chars (int): Ceiling at weight 1.0.
        weight (float): Turn weight, clamped to
            ``[MIN_WEIGHT_SHARE, MAX_WEIGHT_SHARE]``.

    Returns:
        int: Character ceiling for the turn.
    """
    share = min(MAX_WEIGHT_SHARE, max(MIN_WEIGHT_SHARE, weight))
    return max(1, int(max_chars * share))


def truncate_turn_content(
    text: str,
    max_chars: int,
    *,
    suffix: str = TURN_TRUNCATION_SUFFIX,
) -> str:
    """Cap a single turn's content for the summarization request.

    Args:
        text (str): Turn content.
        max_chars (int): Maximum characters kept from the turn.
        suffix (str): Marker appended when the text was cut. Defaults to
            ``"..."``.

    Returns:
        str: The original text if within limits, otherwise its first
            *max_chars* characters followed by *suffix*.
    """
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + suffix


def strip_boilerplate(text: str) -> str:
    """Remove one echoed lead-in such as ``"Summary:"`` from provider output.

    Args:
        text (str): Raw provider output.

    Returns:
        str: Stripped text without the first matching prefix.
    """
    summary = text.strip()
    lowered = summary.lower()
    for prefix in SUMMARY_BOILERPLATE_PREFIXES:
        if lowered.startswith(prefix.lower()):
            return summary[len(prefix):].strip()
    return summary


def truncate_summary_text(text: str, max_chars: int) -> str:
    """Hard-cap summary text, cutting at a sentence end when possible.

    The cut snaps back to the last sentence terminator when that
    terminator lies within the final 20 % of the budget; otherwise the text
    is cut at exactly *max_chars*.

    Args:
        text (str): Summary text.
        max_chars (int): Character budget.

    Returns:
        str: Text of at most *max_chars* characters.
    """
    if max_chars <= 0:
        return ""
    if len(text) <= max_chars:
        return text

    cut = text[:max_chars]
    last_sentence = max(cut.rfind(ch) for ch in _SENTENCE_ENDINGS)
    if last_sentence > max_chars * BOUNDARY_MIN_SHARE:
        cut = cut[: last_sentence + 1]
    logger.debug("Summary truncated from %d to %d chars", len(text), len(cut))
    return cut.rstrip()
