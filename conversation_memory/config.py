# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Application configuration using pydantic-settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process-wide memory manager settings.

    Every conversation context starts from these defaults; individual
    conversations may override the window/summary budgets through
    ``ConversationContextManager.configure()``.

    Attributes:
        APP_NAME (str): Display name used in log lines.
        MEMORY_MAX_RECENT_TURNS (int): Maximum number of live turns kept
            verbatim per conversation.
        MEMORY_MAX_TOKENS_BEFORE_COMPACTION (int): Estimated token budget of
            the live window before compaction is triggered.
        MEMORY_MAX_SUMMARY_TOKENS (int): Hard cap on the running summary.
        MEMORY_OVERLAP_TURNS (int): Turns kept live across a compaction.
        MEMORY_CHARS_PER_TOKEN (int): Characters per token for the
            heuristic estimator.
        MEMORY_TOKEN_ENCODING (str): Optional tiktoken encoding name. When
            set, token estimates come from tiktoken instead of the heuristic.
        MEMORY_MAX_TURN_CHARS_FOR_SUMMARY (int): Per-turn character ceiling
            in the summarization request.
        MEMORY_FULL_CONTEXT_MAX_TOKENS (int): Upper bound (exclusive) of the
            ``full`` context strategy tier.
        MEMORY_SUMMARIZED_CONTEXT_MAX_TOKENS (int): Upper bound (exclusive)
            of the ``summarized`` context strategy tier.
        SUMMARY_TIMEOUT_SECONDS (float): Timeout for one summarization call.
        COMPACTION_MAX_BACKOFF_TURNS (int): Maximum number of compaction
            opportunities skipped after repeated failures.
        CONTEXT_IDLE_TTL_SECONDS (int): Idle time after which a resident
            context is evicted.
        MAX_CONTEXTS (int): Maximum number of resident contexts.
        SUMMARY_MODEL (str): Model identifier for the summarization LLM.
        SUMMARY_TEMPERATURE (float): Sampling temperature for summaries.
        SUMMARY_MAX_TOKENS (int): Maximum output tokens of a summary call.
        OPENAI_API_KEY (str): OpenAI API key.
        GOOGLE_API_KEY (str): Google AI Studio API key.
        MAX_LLM_RETRIES (int): Retries for transient provider errors.
        LLM_RETRY_BASE_DELAY (float): Base delay in seconds, doubled on
            each retry.
        PLATFORM_API_URL (str): Base URL of the Platform API that stores
            conversations.
        PLATFORM_TIMEOUT (float): Timeout in seconds for Platform API calls.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "Conversation Memory"

    # Live window / summary budgets
    MEMORY_MAX_RECENT_TURNS: int = 8
    MEMORY_MAX_TOKENS_BEFORE_COMPACTION: int = 2_000
    MEMORY_MAX_SUMMARY_TOKENS: int = 400
    MEMORY_OVERLAP_TURNS: int = 2
    MEMORY_CHARS_PER_TOKEN: int = 4
    MEMORY_TOKEN_ENCODING: str = ""
    MEMORY_MAX_TURN_CHARS_FOR_SUMMARY: int = 500

    # Context strategy tiers
    MEMORY_FULL_CONTEXT_MAX_TOKENS: int = 1_000
    MEMORY_SUMMARIZED_CONTEXT_MAX_TOKENS: int = 3_000

    # Compaction
    SUMMARY_TIMEOUT_SECONDS: float = 30.0
    COMPACTION_MAX_BACKOFF_TURNS: int = 16

    # Resident contexts
    CONTEXT_IDLE_TTL_SECONDS: int = 1800  # 30 minutes
    MAX_CONTEXTS: int = 1000

    # Summarization LLM
    SUMMARY_MODEL: str = "gpt-4o-mini"
    SUMMARY_TEMPERATURE: float = 0.3
    SUMMARY_MAX_TOKENS: int = 600
    OPENAI_API_KEY: str = ""

    # Google Gemini
    GOOGLE_API_KEY: str = ""  # Google AI Studio (simple)

    # Google Cloud / Vertex AI (alternative to GOOGLE_API_KEY)
    GOOGLE_CLOUD_PROJECT: str = ""
    GOOGLE_CLOUD_LOCATION: str = ""
    GOOGLE_APPLICATION_CREDENTIALS: str = ""

    # LLM retry (transient / retryable errors)
    MAX_LLM_RETRIES: int = 2
    LLM_RETRY_BASE_DELAY: float = 1.0  # seconds, doubles each retry

    # Durable store
    PLATFORM_API_URL: str = "http://localhost:8001"
    PLATFORM_TIMEOUT: float = 10.0


settings = Settings()
