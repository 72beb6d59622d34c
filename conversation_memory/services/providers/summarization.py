# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Summarization providers.

The compaction engine talks to a ``SummarizationProvider``; the production
implementation wraps a LangChain chat model. Providers may be slow or
unavailable: they raise, and the engine turns any failure into a
``CompactionError``.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Optional

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI
from pydantic import SecretStr

from conversation_memory.config import settings
from conversation_memory.services.prompts.base import (
    SUMMARY_PROMPT,
    SUMMARY_SYSTEM_PROMPT,
    SUMMARY_UPDATE_PROMPT,
)

logger = logging.getLogger(__name__)

# Rough words-per-character ratio used to phrase the length budget.
_CHARS_PER_WORD = 6

# Lower-cased fragments of provider errors worth another attempt.
_TRANSIENT_MARKERS = (
    "429",
    "500",
    "502",
    "503",
    "504",
    "rate limit",
    "overloaded",
    "resource_exhausted",
)


def create_llm() -> BaseChatModel:
    """Create the chat model used for summaries from ``SUMMARY_MODEL``.

    ``gemini*`` models go through Google AI Studio when ``GOOGLE_API_KEY`` is
    set and through Vertex AI otherwise. Any other name is an OpenAI model.
    """
    model = settings.SUMMARY_MODEL
    if not model.startswith("gemini"):
        return ChatOpenAI(
            api_key=SecretStr(settings.OPENAI_API_KEY),
            model=model,
            temperature=settings.SUMMARY_TEMPERATURE,
            max_completion_tokens=settings.SUMMARY_MAX_TOKENS,
        )

    gemini_kwargs = {
        "model": model,
        "temperature": settings.SUMMARY_TEMPERATURE,
        "max_output_tokens": settings.SUMMARY_MAX_TOKENS,
    }
    if settings.GOOGLE_API_KEY:
        return ChatGoogleGenerativeAI(google_api_key=settings.GOOGLE_API_KEY, **gemini_kwargs)
    if settings.GOOGLE_APPLICATION_CREDENTIALS:
        # Vertex credentials are only looked up in os.environ.
        os.environ.setdefault(
            "GOOGLE_APPLICATION_CREDENTIALS", settings.GOOGLE_APPLICATION_CREDENTIALS
        )
    return ChatGoogleGenerativeAI(
        vertexai=True,
        project=settings.GOOGLE_CLOUD_PROJECT,
        location=settings.GOOGLE_CLOUD_LOCATION,
        **gemini_kwargs,
    )


def _is_retryable_error(error: Exception) -> bool:
    """Return True for rate limits, 5xx and overload errors."""
    message = str(error).lower()
    return any(marker in message for marker in _TRANSIENT_MARKERS)


def _extract_text(content: Any) -> str:
    """Flatten a chat model's response content into plain text.

    Args:
        content (Any): A string, a list of strings and ``{"text": ...}``
            content blocks, or anything else (rendered with ``str``).

    Returns:
        str: The text, with list parts joined by single spaces.
    """
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return str(content)
    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict):
            parts.append(block.get("text", ""))
    return " ".join(parts)


class SummarizationProvider(ABC):
    """Condenses a batch of turns plus a prior summary into a narrative."""

    @abstractmethod
    async def summarize(self, prior_summary: str, turns_text: str, *, max_chars: int) -> str:
        """Produce a new summary.

        Args:
            prior_summary (str): Current summary, possibly empty.
            turns_text (str): Serialized turns to fold into the summary.
            max_chars (int): Target length budget in characters.

        Returns:
            str: Raw summary text; the caller post-processes it.
        """


class LLMSummarizationProvider(SummarizationProvider):
    """Summarization through a LangChain chat model."""

    def __init__(
        self,
        llm: Optional[BaseChatModel] = None,
        max_retries: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
    ) -> None:
        """Initialize the provider.

        Args:
            llm (Optional[BaseChatModel]): Chat model to call. Created from
                settings with ``create_llm()`` when omitted.
            max_retries (Optional[int]): Retries for transient errors.
                Defaults to ``settings.MAX_LLM_RETRIES``.
            retry_base_delay (Optional[float]): Base backoff delay in
                seconds. Defaults to ``settings.LLM_RETRY_BASE_DELAY``.
        """
        self.llm = llm if llm is not None else create_llm()
        self.max_retries = settings.MAX_LLM_RETRIES if max_retries is None else max_retries
        self.retry_base_delay = (
            settings.LLM_RETRY_BASE_DELAY if retry_base_delay is None else retry_base_delay
        )

    @staticmethod
    def build_prompt(prior_summary: str, turns_text: str, max_chars: int) -> str:
        """Render the human prompt for a summarization request.

        Uses the update prompt when a prior summary exists so the model
        merges instead of starting over.

        Args:
            prior_summary (str): Current summary, possibly empty.
            turns_text (str): Serialized turns.
            max_chars (int): Target length budget in characters.

        Returns:
            str: The formatted prompt.
        """
        max_words = max(1, max_chars // _CHARS_PER_WORD)
        if prior_summary.strip():
            return SUMMARY_UPDATE_PROMPT.format(
                previous_summary=prior_summary.strip(),
                conversation=turns_text,
                max_words=max_words,
                max_chars=max_chars,
            )
        return SUMMARY_PROMPT.format(
            conversation=turns_text,
            max_words=max_words,
            max_chars=max_chars,
        )

    async def summarize(self, prior_summary: str, turns_text: str, *, max_chars: int) -> str:
        """Call the chat model, retrying transient errors with backoff.

        Raises:
            Exception: Whatever the model raised once retries are exhausted
                or for non-retryable errors.
        """
        messages = [
            SystemMessage(content=SUMMARY_SYSTEM_PROMPT),
            HumanMessage(content=self.build_prompt(prior_summary, turns_text, max_chars)),
        ]
        retries = 0
        while True:
            try:
                response = await self.llm.ainvoke(messages)
                return _extract_text(response.content)
            except Exception as e:
                if not _is_retryable_error(e) or retries >= self.max_retries:
                    raise
                retries += 1
                delay = self.retry_base_delay * (2 ** (retries - 1))
                logger.warning(
                    "Retryable summarization error (attempt %d/%d), retrying in %.1fs: %s",
                    retries,
                    self.max_retries,
                    delay,
                    e,
                )
                await asyncio.sleep(delay)
