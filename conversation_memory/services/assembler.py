# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Context assembly.

Turns a conversation context into the payload handed to the generation
step: a labeled prior-context block built from the summary, the live turns
as role/content messages, the combined token estimate and an advisory
strategy tier.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Optional

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from conversation_memory.models import ContextAssembly, ContextStrategy, Turn, TurnRole
from conversation_memory.services.compaction.settings import CompactionSettings
from conversation_memory.services.prompts.base import MEMORY_BLOCK_PREFIX

if TYPE_CHECKING:
    from conversation_memory.services.context_manager import ConversationContext

logger = logging.getLogger(__name__)


def render_turn_content(turn: Turn) -> str:
    """Render a turn's content with its image markers in front.

    Args:
        turn (Turn): Turn to render.

    Returns:
        str: ``"[Image:<ref>] ... <content>"``, or just the content when the
            turn carries no image references.
    """
    if not turn.image_refs:
        return turn.content
    markers = " ".join(f"[Image:{ref}]" for ref in turn.image_refs)
    if not turn.content:
        return markers
    return f"{markers} {turn.content}"


def select_strategy(total_tokens: int, settings: CompactionSettings) -> ContextStrategy:
    """Classify the context size into a strategy tier.

    Args:
        total_tokens (int): Summary tokens plus live window tokens.
        settings (CompactionSettings): Supplies the tier bounds.

    Returns:
        ContextStrategy: ``FULL`` below ``full_context_max_tokens``,
            ``SUMMARIZED`` below ``summarized_context_max_tokens``,
            ``MINIMAL`` otherwise.
    """
    if total_tokens < settings.full_context_max_tokens:
        return ContextStrategy.FULL
    if total_tokens < settings.summarized_context_max_tokens:
        return ContextStrategy.SUMMARIZED
    return ContextStrategy.MINIMAL


class ContextAssembler:
    """Builds ``ContextAssembly`` payloads. Stateless."""

    def assemble(self, context: "ConversationContext") -> ContextAssembly:
        """Build the prompt-ready view of *context*.

        The caller guarantees *context* is not mid-compaction; summary and
        window are read as one consistent snapshot.

        Args:
            context (ConversationContext): Resident conversation context.

        Returns:
            ContextAssembly: Summary block, live messages, token estimate
                and strategy.
        """
        summary = context.summary
        summary_tokens = context.summary_tokens
        turns = context.buffer.turns

        summary_text = f"{MEMORY_BLOCK_PREFIX} {summary}" if summary else ""
        recent_messages: List[Dict[str, str]] = [
            {"role": turn.role.value, "content": render_turn_content(turn)}
            for turn in turns
        ]
        total = summary_tokens + sum(t.estimated_tokens for t in turns)
        strategy = select_strategy(total, context.settings)

        logger.debug(
            "Assembled context for %s: %d turns, %d tokens, strategy=%s",
            context.conversation_id,
            len(recent_messages),
            total,
            strategy.value,
        )
        return ContextAssembly(
            summary_text=summary_text,
            recent_messages=recent_messages,
            estimated_total_tokens=total,
            strategy=strategy,
        )


def to_langchain_messages(
    assembly: ContextAssembly,
    system_prompt: Optional[str] = None,
) -> List[BaseMessage]:
    """Convert an assembly into LangChain messages for the generation step.

    The system prompt and the memory block share one leading
    ``SystemMessage``; live turns follow as ``HumanMessage``/``AIMessage``.

    Args:
        assembly (ContextAssembly): Assembled context.
        system_prompt (Optional[str]): Caller's own system instructions.

    Returns:
        List[BaseMessage]: Messages ready for ``llm.ainvoke``.
    """
    messages: List[BaseMessage] = []
    system_parts = [p for p in (system_prompt, assembly.summary_text) if p]
    if system_parts:
        messages.append(SystemMessage(content="\n\n".join(system_parts)))
    for msg in assembly.recent_messages:
        if msg["role"] == TurnRole.ASSISTANT.value:
            messages.append(AIMessage(content=msg["content"]))
        else:
            messages.append(HumanMessage(content=msg["content"]))
    return messages
