# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Platform API conversation store.

Conversations, messages and memory records live in the Platform service.
This store reads and writes them over HTTP:

  GET  /api/v1/conversations/{id}/memory/           summary record
  PUT  /api/v1/conversations/{id}/memory/           write summary record
  GET  /api/v1/messages/?conversation_id=&limit=    recent messages
  POST /api/v1/messages/                            append a message
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from conversation_memory.config import settings
from conversation_memory.exceptions import StoreError
from conversation_memory.models import StoredConversation, Turn, TurnRole, utcnow
from conversation_memory.services.store.base import ConversationStore

logger = logging.getLogger(__name__)


def _parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp from the Platform API, if present."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Ignoring unparseable timestamp from Platform API: %r", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _turn_from_message(data: Dict[str, Any]) -> Optional[Turn]:
    """Convert a Platform message payload into a ``Turn``.

    Messages with a role other than user/assistant (system notices, tool
    output) are not part of the conversation memory and yield ``None``.
    """
    try:
        role = TurnRole(data.get("role", ""))
    except ValueError:
        return None
    created_at = _parse_datetime(data.get("created_at")) or utcnow()
    return Turn(
        id=str(data["id"]),
        role=role,
        content=data.get("content") or "",
        image_refs=list(data.get("image_refs") or []),
        message_type=data.get("message_type"),
        created_at=created_at,
        estimated_tokens=max(0, int(data.get("estimated_tokens") or 0)),
        weight=float(data.get("weight") or 1.0),
    )


class PlatformConversationStore(ConversationStore):
    """``ConversationStore`` backed by the Platform API."""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self.base_url = (base_url or settings.PLATFORM_API_URL).rstrip("/")
        self.timeout = settings.PLATFORM_TIMEOUT if timeout is None else timeout

    def _memory_url(self, conversation_id: str) -> str:
        return f"{self.base_url}/api/v1/conversations/{conversation_id}/memory/"

    async def load_conversation(self, conversation_id: str) -> Optional[StoredConversation]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(self._memory_url(conversation_id))
        except httpx.HTTPError as e:
            raise StoreError(f"Failed to load conversation {conversation_id}: {e}") from e

        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise StoreError(
                f"Failed to load conversation {conversation_id}: "
                f"HTTP {resp.status_code} {resp.text}"
            )

        data = resp.json()
        turns = [t for t in (_turn_from_message(m) for m in data.get("recent_messages", [])) if t]
        return StoredConversation(
            summary=data.get("summary") or "",
            summary_tokens=int(data.get("summary_tokens") or 0),
            recent_turns=turns,
            total_messages=int(data.get("total_messages") or 0),
            total_tokens=int(data.get("total_tokens") or 0),
            last_compaction_at=_parse_datetime(data.get("last_compaction_at")),
            summarized_through_id=data.get("summarized_through_id"),
            summarized_through_at=_parse_datetime(data.get("summarized_through_at")),
        )

    async def persist_summary(
        self,
        conversation_id: str,
        summary: str,
        summary_tokens: int,
        total_messages: int,
        total_tokens: int,
        *,
        summarized_through: Optional[Turn] = None,
    ) -> None:
        payload: Dict[str, Any] = {
            "summary": summary,
            "summary_tokens": summary_tokens,
            "total_messages": total_messages,
            "total_tokens": total_tokens,
            "last_compaction_at": utcnow().isoformat(),
        }
        if summarized_through is not None:
            payload["summarized_through_id"] = summarized_through.id
            payload["summarized_through_at"] = summarized_through.created_at.isoformat()

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.put(self._memory_url(conversation_id), json=payload)
        except httpx.HTTPError as e:
            raise StoreError(f"Failed to persist summary for {conversation_id}: {e}") from e

        if resp.status_code not in (200, 201, 204):
            raise StoreError(
                f"Failed to persist summary for {conversation_id}: "
                f"HTTP {resp.status_code} {resp.text}"
            )

    async def load_recent_turns(self, conversation_id: str, max_count: int) -> List[Turn]:
        if max_count <= 0:
            return []
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(
                    f"{self.base_url}/api/v1/messages/",
                    params={"conversation_id": conversation_id, "limit": max_count},
                )
        except httpx.HTTPError as e:
            raise StoreError(f"Failed to load messages for {conversation_id}: {e}") from e

        if resp.status_code == 404:
            return []
        if resp.status_code != 200:
            raise StoreError(
                f"Failed to load messages for {conversation_id}: "
                f"HTTP {resp.status_code} {resp.text}"
            )

        data = resp.json()
        # Paginated responses wrap the list in "results".
        messages = data.get("results", []) if isinstance(data, dict) else data
        turns = [t for t in (_turn_from_message(m) for m in messages) if t]
        turns.sort(key=lambda t: t.created_at)
        return turns[-max_count:]

    async def append_turn(self, conversation_id: str, turn: Turn) -> str:
        payload = {
            "conversation_id": conversation_id,
            "role": turn.role.value,
            "content": turn.content,
            "image_refs": turn.image_refs,
            "message_type": turn.message_type,
            "estimated_tokens": turn.estimated_tokens,
            "weight": turn.weight,
            "created_at": turn.created_at.isoformat(),
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(f"{self.base_url}/api/v1/messages/", json=payload)
        except httpx.HTTPError as e:
            raise StoreError(f"Failed to append message to {conversation_id}: {e}") from e

        if resp.status_code not in (200, 201):
            raise StoreError(
                f"Failed to append message to {conversation_id}: "
                f"HTTP {resp.status_code} {resp.text}"
            )
        return str(resp.json()["id"])
