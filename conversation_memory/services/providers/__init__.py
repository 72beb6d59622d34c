# Copyright (c) 2026 Heureum AI. All rights reserved.

"""External collaborators the memory manager consumes."""

from conversation_memory.services.providers.summarization import (
    LLMSummarizationProvider,
    SummarizationProvider,
    create_llm,
)

__all__ = [
    "SummarizationProvider",
    "LLMSummarizationProvider",
    "create_llm",
]
