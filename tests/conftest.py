# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Shared test fixtures for the conversation-memory test suite."""

from datetime import datetime, timedelta, timezone
from typing import List, Optional
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from conversation_memory.models import Turn, TurnRole
from conversation_memory.services.compaction.settings import CompactionSettings
from conversation_memory.services.compaction.tokens import TokenEstimator
from conversation_memory.services.context_manager import ConversationContextManager
from conversation_memory.services.store.memory import InMemoryConversationStore

BASE_TIME = datetime(2026, 1, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Turn / settings factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_turn():
    """Factory fixture for creating Turn instances with ~chars/4 token estimates."""

    def _factory(
        content: str = "x" * 200,
        role: TurnRole = TurnRole.USER,
        turn_id: Optional[str] = None,
        offset_seconds: int = 0,
        weight: float = 1.0,
        image_refs: Optional[List[str]] = None,
    ) -> Turn:
        return Turn(
            id=turn_id or f"t{offset_seconds}",
            role=role,
            content=content,
            image_refs=image_refs or [],
            created_at=BASE_TIME + timedelta(seconds=offset_seconds),
            estimated_tokens=TokenEstimator().estimate(content),
            weight=weight,
        )

    return _factory


@pytest.fixture
def compaction_settings():
    """Factory fixture for CompactionSettings with small, test-friendly budgets."""

    def _factory(**overrides) -> CompactionSettings:
        values = dict(
            max_recent_turns=4,
            max_tokens_before_compaction=1_000,
            max_summary_tokens=100,
            overlap_turns=1,
            summary_timeout_seconds=1.0,
        )
        values.update(overrides)
        return CompactionSettings(**values)

    return _factory


# ---------------------------------------------------------------------------
# Summarization provider / LLM mocking helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_provider():
    """Fixture providing a mocked SummarizationProvider."""
    provider = AsyncMock()
    provider.summarize = AsyncMock(return_value="The user talked about their week.")
    return provider


@pytest.fixture
def mock_llm():
    """Factory fixture for a mock async chat model returning fixed text."""

    def _factory(response_text: str = "Summary of conversation.") -> AsyncMock:
        llm = AsyncMock()
        result = MagicMock()
        result.content = response_text
        llm.ainvoke.return_value = result
        return llm

    return _factory


# ---------------------------------------------------------------------------
# Stores / manager
# ---------------------------------------------------------------------------


@pytest.fixture
def memory_store():
    """Fixture providing an empty InMemoryConversationStore."""
    return InMemoryConversationStore()


@pytest.fixture
def make_manager(memory_store, mock_provider, compaction_settings):
    """Factory fixture for a ConversationContextManager over mocked collaborators."""

    def _factory(**kwargs) -> ConversationContextManager:
        kwargs.setdefault("store", memory_store)
        kwargs.setdefault("provider", mock_provider)
        kwargs.setdefault("estimator", TokenEstimator(chars_per_token=4))
        kwargs.setdefault("default_settings", compaction_settings())
        return ConversationContextManager(**kwargs)

    return _factory


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx.AsyncClient with async context manager support."""
    with patch("httpx.AsyncClient") as mock_cls:
        mock_client = AsyncMock()
        mock_client.__aenter__ = AsyncMock(return_value=mock_client)
        mock_client.__aexit__ = AsyncMock(return_value=None)
        mock_cls.return_value = mock_client
        yield mock_client
