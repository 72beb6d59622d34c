# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Tests for the durable conversation stores."""

from unittest.mock import MagicMock

import httpx
import pytest
from conversation_memory.exceptions import StoreError
from conversation_memory.models import TurnRole
from conversation_memory.services.store.memory import InMemoryConversationStore
from conversation_memory.services.store.platform import PlatformConversationStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _response(status_code: int = 200, payload=None, text: str = "") -> MagicMock:
    """Create a mock httpx response."""
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload if payload is not None else {}
    resp.text = text
    return resp


def _message(msg_id, role="user", content="hi", created_at="2026-01-01T00:00:00Z", **extra):
    """Create a Platform message payload."""
    data = {"id": msg_id, "role": role, "content": content, "created_at": created_at}
    data.update(extra)
    return data


# ===========================================================================
# InMemoryConversationStore
# ===========================================================================


class TestInMemoryConversationStore:
    """Tests for the process-local store."""

    @pytest.mark.asyncio
    async def test_unknown_conversation(self):
        """Verify an unknown conversation loads as None."""
        store = InMemoryConversationStore()
        assert await store.load_conversation("nope") is None
        assert await store.load_recent_turns("nope", 5) == []

    @pytest.mark.asyncio
    async def test_append_assigns_durable_id(self, make_turn):
        """Verify appended turns get a new id and keep their order."""
        store = InMemoryConversationStore()
        first = await store.append_turn("c1", make_turn("one", turn_id="temp_1"))
        second = await store.append_turn("c1", make_turn("two", turn_id="temp_2", offset_seconds=1))

        assert first != "temp_1"
        turns = await store.load_recent_turns("c1", 10)
        assert [t.id for t in turns] == [first, second]
        assert [t.content for t in turns] == ["one", "two"]

    @pytest.mark.asyncio
    async def test_recent_turns_limit(self, make_turn):
        """Verify only the newest max_count turns are returned, oldest first."""
        store = InMemoryConversationStore()
        for i in range(5):
            await store.append_turn("c1", make_turn(f"m{i}", offset_seconds=i))
        turns = await store.load_recent_turns("c1", 2)
        assert [t.content for t in turns] == ["m3", "m4"]

    @pytest.mark.asyncio
    async def test_totals_without_summary(self, make_turn):
        """Verify a conversation with turns but no summary reports its totals."""
        store = InMemoryConversationStore()
        await store.append_turn("c1", make_turn("x" * 40))
        record = await store.load_conversation("c1")
        assert record.summary == ""
        assert record.total_messages == 1
        assert record.total_tokens == 10

    @pytest.mark.asyncio
    async def test_persist_summary_round_trip(self, make_turn):
        """Verify a persisted summary and watermark load back."""
        store = InMemoryConversationStore()
        through = make_turn(turn_id="t9", offset_seconds=9)
        await store.persist_summary("c1", "They met.", 3, 10, 500, summarized_through=through)

        record = await store.load_conversation("c1")
        assert record.summary == "They met."
        assert record.summary_tokens == 3
        assert record.total_messages == 10
        assert record.summarized_through_id == "t9"
        assert record.summarized_through_at == through.created_at
        assert record.last_compaction_at is not None

    @pytest.mark.asyncio
    async def test_watermark_kept_when_not_given(self, make_turn):
        """Verify a later persist without a watermark keeps the previous one."""
        store = InMemoryConversationStore()
        await store.persist_summary("c1", "a", 1, 1, 1, summarized_through=make_turn(turn_id="t1"))
        await store.persist_summary("c1", "b", 1, 2, 2)
        record = await store.load_conversation("c1")
        assert record.summary == "b"
        assert record.summarized_through_id == "t1"


# ===========================================================================
# PlatformConversationStore
# ===========================================================================


class TestPlatformLoadConversation:
    """Tests for PlatformConversationStore.load_conversation."""

    @pytest.mark.asyncio
    async def test_not_found(self, mock_httpx_client):
        """Verify a 404 loads as None."""
        mock_httpx_client.get.return_value = _response(404)
        store = PlatformConversationStore(base_url="http://platform:8001")
        assert await store.load_conversation("c1") is None
        mock_httpx_client.get.assert_awaited_once_with(
            "http://platform:8001/api/v1/conversations/c1/memory/"
        )

    @pytest.mark.asyncio
    async def test_success(self, mock_httpx_client):
        """Verify the memory record maps onto StoredConversation."""
        mock_httpx_client.get.return_value = _response(
            200,
            {
                "summary": "They met.",
                "summary_tokens": 3,
                "total_messages": 12,
                "total_tokens": 800,
                "summarized_through_id": "m9",
                "summarized_through_at": "2026-01-01T00:00:09Z",
                "recent_messages": [
                    _message("m10", "user", "hello"),
                    _message("m11", "system", "ignored"),
                    _message("m12", "assistant", "hi", image_refs=["img"]),
                ],
            },
        )
        store = PlatformConversationStore(base_url="http://platform:8001")
        record = await store.load_conversation("c1")

        assert record.summary == "They met."
        assert record.total_messages == 12
        assert record.summarized_through_id == "m9"
        assert record.summarized_through_at.tzinfo is not None
        assert [t.id for t in record.recent_turns] == ["m10", "m12"]
        assert record.recent_turns[1].role == TurnRole.ASSISTANT
        assert record.recent_turns[1].image_refs == ["img"]

    @pytest.mark.asyncio
    async def test_server_error(self, mock_httpx_client):
        """Verify a non-2xx response raises StoreError."""
        mock_httpx_client.get.return_value = _response(500, text="boom")
        store = PlatformConversationStore(base_url="http://platform:8001")
        with pytest.raises(StoreError, match="HTTP 500"):
            await store.load_conversation("c1")

    @pytest.mark.asyncio
    async def test_transport_error(self, mock_httpx_client):
        """Verify transport failures raise StoreError."""
        mock_httpx_client.get.side_effect = httpx.ConnectError("refused")
        store = PlatformConversationStore(base_url="http://platform:8001")
        with pytest.raises(StoreError, match="refused"):
            await store.load_conversation("c1")


class TestPlatformPersistSummary:
    """Tests for PlatformConversationStore.persist_summary."""

    @pytest.mark.asyncio
    async def test_sends_record(self, mock_httpx_client, make_turn):
        """Verify the summary, totals and watermark are PUT to the memory endpoint."""
        mock_httpx_client.put.return_value = _response(200)
        store = PlatformConversationStore(base_url="http://platform:8001/")
        through = make_turn(turn_id="m9")
        await store.persist_summary("c1", "They met.", 3, 12, 800, summarized_through=through)

        args, kwargs = mock_httpx_client.put.call_args
        assert args[0] == "http://platform:8001/api/v1/conversations/c1/memory/"
        payload = kwargs["json"]
        assert payload["summary"] == "They met."
        assert payload["summary_tokens"] == 3
        assert payload["total_messages"] == 12
        assert payload["total_tokens"] == 800
        assert payload["summarized_through_id"] == "m9"

    @pytest.mark.asyncio
    async def test_failure(self, mock_httpx_client):
        """Verify a rejected write raises StoreError."""
        mock_httpx_client.put.return_value = _response(503, text="down")
        store = PlatformConversationStore(base_url="http://platform:8001")
        with pytest.raises(StoreError):
            await store.persist_summary("c1", "s", 1, 1, 1)


class TestPlatformMessages:
    """Tests for PlatformConversationStore message endpoints."""

    @pytest.mark.asyncio
    async def test_load_recent_turns(self, mock_httpx_client):
        """Verify messages are fetched with a limit and returned oldest first."""
        mock_httpx_client.get.return_value = _response(
            200,
            {
                "results": [
                    _message("m2", "assistant", "b", "2026-01-01T00:00:02Z"),
                    _message("m1", "user", "a", "2026-01-01T00:00:01Z"),
                ]
            },
        )
        store = PlatformConversationStore(base_url="http://platform:8001")
        turns = await store.load_recent_turns("c1", 8)

        assert [t.id for t in turns] == ["m1", "m2"]
        _, kwargs = mock_httpx_client.get.call_args
        assert kwargs["params"] == {"conversation_id": "c1", "limit": 8}

    @pytest.mark.asyncio
    async def test_load_recent_turns_plain_list(self, mock_httpx_client):
        """Verify an unpaginated list response is accepted."""
        mock_httpx_client.get.return_value = _response(200, [_message("m1")])
        store = PlatformConversationStore(base_url="http://platform:8001")
        assert [t.id for t in await store.load_recent_turns("c1", 8)] == ["m1"]

    @pytest.mark.asyncio
    async def test_append_turn(self, mock_httpx_client, make_turn):
        """Verify a turn is POSTed and the durable id returned."""
        mock_httpx_client.post.return_value = _response(201, {"id": 42})
        store = PlatformConversationStore(base_url="http://platform:8001")
        real_id = await store.append_turn("c1", make_turn("hello", turn_id="temp_1"))

        assert real_id == "42"
        payload = mock_httpx_client.post.call_args.kwargs["json"]
        assert payload["conversation_id"] == "c1"
        assert payload["role"] == "user"
        assert payload["content"] == "hello"

    @pytest.mark.asyncio
    async def test_append_turn_failure(self, mock_httpx_client, make_turn):
        """Verify a rejected append raises StoreError."""
        mock_httpx_client.post.return_value = _response(400, text="bad")
        store = PlatformConversationStore(base_url="http://platform:8001")
        with pytest.raises(StoreError):
            await store.append_turn("c1", make_turn())
