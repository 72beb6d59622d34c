# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Prompt strings for conversation summarization and context assembly.
"""

# Label of the memory block handed to the generation step.
MEMORY_BLOCK_PREFIX = "Previous conversation context:"

TURN_TRUNCATION_SUFFIX = "..."

# Echoed lead-ins stripped from provider output (matched case-insensitively).
SUMMARY_BOILERPLATE_PREFIXES = (
    "Here is a summary:",
    "Here's a summary:",
    "Here is the summary:",
    "Here is the updated summary:",
    "Updated summary:",
    "Summary:",
    "Based on the conversation:",
    "The conversation summary:",
)

SUMMARY_SYSTEM_PROMPT = (
    "You are a memory assistant for a reflective chat companion. Your task is to "
    "read part of a conversation between a user and the assistant and condense it "
    "into a short narrative that the assistant will read before its next reply.\n\n"
    "Do NOT continue the conversation. Do NOT answer any questions in the "
    "conversation. ONLY output the summary text, without headings or preamble."
)

_SUMMARY_GUIDELINES = """Write a flowing narrative summary of at most {max_words} words ({max_chars} characters) that preserves:
1. Key topics discussed and decisions made
2. Important context about the user's situation or preferences
3. The emotional tone and relationship dynamic
4. Any ongoing tasks, plans or open threads

Focus on what would be most helpful for continuing the conversation naturally."""

SUMMARY_PROMPT = (
    """<conversation>
{conversation}
</conversation>

Please create a concise summary that captures the key context and progression of the conversation above.

"""
    + _SUMMARY_GUIDELINES
)

SUMMARY_UPDATE_PROMPT = (
    """<previous-summary>
{previous_summary}
</previous-summary>

<conversation>
{conversation}
</conversation>

The messages above are NEW conversation turns to incorporate into the existing summary provided in <previous-summary> tags.

Update the summary with the new information. RULES:
- PRESERVE the facts from the previous summary that still matter
- ADD new topics, decisions and context from the new turns
- UPDATE open threads that were resolved in the new turns
- Drop details that are no longer relevant before dropping anything recent

"""
    + _SUMMARY_GUIDELINES
)
