"""System prompt composition.

Public API for rendering the outbound system prompt from a registry.
"""

from promptstack.core.prompts.builder import (
    ADDITIONAL_INSTRUCTIONS_HEADER,
    CHAT_MODE_NOTICE,
    FALLBACK_PROMPT,
    MAX_EXTENSIONS,
    MAX_TOOLS,
    ExtensionInfo,
    SystemPromptBuilder,
    should_enable_subagents,
)
from promptstack.core.prompts.templates import PromptTemplateEngine, TemplateEngine

__all__ = [
    "ADDITIONAL_INSTRUCTIONS_HEADER",
    "CHAT_MODE_NOTICE",
    "FALLBACK_PROMPT",
    "MAX_EXTENSIONS",
    "MAX_TOOLS",
    "ExtensionInfo",
    "PromptTemplateEngine",
    "SystemPromptBuilder",
    "TemplateEngine",
    "should_enable_subagents",
]
