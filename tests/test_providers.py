# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Tests for the LangChain summarization provider."""

import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from conversation_memory.services.prompts.base import SUMMARY_SYSTEM_PROMPT
from conversation_memory.services.providers.summarization import (
    LLMSummarizationProvider,
    _extract_text,
    _is_retryable_error,
    create_llm,
)
from langchain_core.messages import HumanMessage, SystemMessage

# ---------------------------------------------------------------------------
# _is_retryable_error / _extract_text
# ---------------------------------------------------------------------------


class TestIsRetryableError:
    """Tests for transient error detection."""

    @pytest.mark.parametrize(
        "message",
        [
            "Error code: 503 - service unavailable",
            "Rate limit reached for gpt-4o-mini",
            "429 Too Many Requests",
            "The model is overloaded",
            "RESOURCE_EXHAUSTED: quota",
        ],
    )
    def test_retryable(self, message):
        """Verify transient provider errors are retried."""
        assert _is_retryable_error(Exception(message)) is True

    def test_not_retryable(self):
        """Verify other errors are not retried."""
        assert _is_retryable_error(ValueError("invalid api key")) is False


class TestExtractText:
    """Tests for LLM response content extraction."""

    def test_string(self):
        """Verify plain strings pass through."""
        assert _extract_text("hello") == "hello"

    def test_content_blocks(self):
        """Verify content block lists are joined."""
        assert _extract_text([{"type": "text", "text": "a"}, "b"]) == "a b"

    def test_blocks_without_text(self):
        """Verify non-text blocks contribute empty parts and unknown items are skipped."""
        assert _extract_text([{"type": "image_url"}, "b", 7]) == " b"

    def test_other(self):
        """Verify other content is stringified."""
        assert _extract_text(42) == "42"


# ---------------------------------------------------------------------------
# create_llm
# ---------------------------------------------------------------------------


class TestCreateLlm:
    """Tests for summarization model routing."""

    def test_openai_default(self):
        """Verify non-Gemini models route to ChatOpenAI."""
        with patch("conversation_memory.services.providers.summarization.settings") as s, patch(
            "conversation_memory.services.providers.summarization.ChatOpenAI"
        ) as openai_cls:
            s.SUMMARY_MODEL = "gpt-4o-mini"
            s.OPENAI_API_KEY = "sk-test"
            s.SUMMARY_TEMPERATURE = 0.3
            s.SUMMARY_MAX_TOKENS = 600
            create_llm()
        assert openai_cls.call_args.kwargs["model"] == "gpt-4o-mini"
        assert openai_cls.call_args.kwargs["max_completion_tokens"] == 600

    def test_gemini_api_key(self):
        """Verify Gemini with an API key routes to Google AI Studio."""
        with patch("conversation_memory.services.providers.summarization.settings") as s, patch(
            "conversation_memory.services.providers.summarization.ChatGoogleGenerativeAI"
        ) as gemini_cls:
            s.SUMMARY_MODEL = "gemini-2.0-flash"
            s.GOOGLE_API_KEY = "g-key"
            s.SUMMARY_TEMPERATURE = 0.3
            s.SUMMARY_MAX_TOKENS = 600
            create_llm()
        kwargs = gemini_cls.call_args.kwargs
        assert kwargs["google_api_key"] == "g-key"
        assert "vertexai" not in kwargs

    def test_gemini_vertex(self):
        """Verify Gemini without an API key routes to Vertex AI."""
        with patch("conversation_memory.services.providers.summarization.settings") as s, patch(
            "conversation_memory.services.providers.summarization.ChatGoogleGenerativeAI"
        ) as gemini_cls:
            s.SUMMARY_MODEL = "gemini-2.0-flash"
            s.GOOGLE_API_KEY = ""
            s.GOOGLE_APPLICATION_CREDENTIALS = ""
            s.GOOGLE_CLOUD_PROJECT = "proj"
            s.GOOGLE_CLOUD_LOCATION = "us-central1"
            s.SUMMARY_TEMPERATURE = 0.3
            s.SUMMARY_MAX_TOKENS = 600
            create_llm()
        kwargs = gemini_cls.call_args.kwargs
        assert kwargs["vertexai"] is True
        assert kwargs["project"] == "proj"

    def test_gemini_vertex_exports_credentials(self, monkeypatch):
        """Verify the configured credentials file is exported for Vertex auth."""
        monkeypatch.setenv("GOOGLE_APPLICATION_CREDENTIALS", "unset")
        monkeypatch.delenv("GOOGLE_APPLICATION_CREDENTIALS")
        with patch("conversation_memory.services.providers.summarization.settings") as s, patch(
            "conversation_memory.services.providers.summarization.ChatGoogleGenerativeAI"
        ):
            s.SUMMARY_MODEL = "gemini-2.0-flash"
            s.GOOGLE_API_KEY = ""
            s.GOOGLE_APPLICATION_CREDENTIALS = "/secrets/sa.json"
            create_llm()
            assert os.environ["GOOGLE_APPLICATION_CREDENTIALS"] == "/secrets/sa.json"


# ---------------------------------------------------------------------------
# LLMSummarizationProvider
# ---------------------------------------------------------------------------


class TestBuildPrompt:
    """Tests for summarization prompt rendering."""

    def test_first_summary(self):
        """Verify the initial prompt carries the turns and the length budget."""
        prompt = LLMSummarizationProvider.build_prompt("", "[User]: hi", 600)
        assert "[User]: hi" in prompt
        assert "100 words" in prompt
        assert "600 characters" in prompt
        assert "<previous-summary>" not in prompt

    def test_update_summary(self):
        """Verify an existing summary switches to the update prompt."""
        prompt = LLMSummarizationProvider.build_prompt("They met.", "[User]: hi", 600)
        assert "<previous-summary>\nThey met.\n</previous-summary>" in prompt
        assert "[User]: hi" in prompt

    def test_emotional_tone_requested(self):
        """Verify the prompt asks to keep tone and open threads."""
        prompt = LLMSummarizationProvider.build_prompt("", "x", 600)
        assert "emotional tone" in prompt
        assert "open threads" in prompt


class TestSummarize:
    """Tests for LLMSummarizationProvider.summarize."""

    @pytest.mark.asyncio
    async def test_sends_system_and_human(self, mock_llm):
        """Verify the model gets the system prompt then the rendered request."""
        llm = mock_llm("They discussed moving to Busan.")
        provider = LLMSummarizationProvider(llm=llm, max_retries=0)
        result = await provider.summarize("", "[User]: moving", max_chars=400)

        assert result == "They discussed moving to Busan."
        messages = llm.ainvoke.call_args.args[0]
        assert isinstance(messages[0], SystemMessage)
        assert messages[0].content == SUMMARY_SYSTEM_PROMPT
        assert isinstance(messages[1], HumanMessage)
        assert "[User]: moving" in messages[1].content

    @pytest.mark.asyncio
    async def test_retries_transient_errors(self, mock_llm):
        """Verify transient errors are retried with exponential backoff."""
        llm = mock_llm()
        ok = MagicMock()
        ok.content = "Recovered."
        llm.ainvoke.side_effect = [Exception("503 service unavailable"), ok]
        provider = LLMSummarizationProvider(llm=llm, max_retries=2, retry_base_delay=0.5)

        with patch(
            "conversation_memory.services.providers.summarization.asyncio.sleep",
            new=AsyncMock(),
        ) as sleep_mock:
            result = await provider.summarize("", "x", max_chars=100)

        assert result == "Recovered."
        sleep_mock.assert_awaited_once_with(0.5)

    @pytest.mark.asyncio
    async def test_gives_up_after_retries(self, mock_llm):
        """Verify the last transient error propagates once retries are exhausted."""
        llm = mock_llm()
        llm.ainvoke.side_effect = Exception("429 rate limit")
        provider = LLMSummarizationProvider(llm=llm, max_retries=2, retry_base_delay=0.1)

        with patch(
            "conversation_memory.services.providers.summarization.asyncio.sleep",
            new=AsyncMock(),
        ) as sleep_mock:
            with pytest.raises(Exception, match="429"):
                await provider.summarize("", "x", max_chars=100)

        assert llm.ainvoke.await_count == 3
        assert [c.args[0] for c in sleep_mock.await_args_list] == [0.1, 0.2]

    @pytest.mark.asyncio
    async def test_non_retryable_raises_immediately(self, mock_llm):
        """Verify permanent errors are not retried."""
        llm = mock_llm()
        llm.ainvoke.side_effect = ValueError("invalid api key")
        provider = LLMSummarizationProvider(llm=llm, max_retries=3)

        with pytest.raises(ValueError):
            await provider.summarize("", "x", max_chars=100)
        assert llm.ainvoke.await_count == 1
