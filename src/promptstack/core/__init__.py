"""Core modules for promptstack.

Registry, instruction model, sanitizer, persistence and the supporting
configuration, logging and error types.
"""

from .exceptions import (
    E_IO,
    E_LOCK,
    E_RENDER,
    E_SERIALIZATION,
    E_VALIDATION,
    ConfigurationError,
    HistoryWriteError,
    PromptStackException,
    SnapshotCorruptedError,
    StorageError,
    TemplateRenderError,
    format_error_for_log,
    format_error_for_user,
)
from .instructions import (
    InstructionId,
    InstructionScope,
    InstructionSource,
    InstructionState,
    PromptInstruction,
    PromptStateSnapshot,
    hash_instruction_content,
)
from .registry import PromptRegistry
from .sanitize import sanitize_unicode_tags

__all__ = [
    # Error codes
    "E_IO",
    "E_LOCK",
    "E_RENDER",
    "E_SERIALIZATION",
    "E_VALIDATION",
    # Exception classes
    "ConfigurationError",
    "HistoryWriteError",
    "PromptStackException",
    "SnapshotCorruptedError",
    "StorageError",
    "TemplateRenderError",
    # Model
    "InstructionId",
    "InstructionScope",
    "InstructionSource",
    "InstructionState",
    "PromptInstruction",
    "PromptStateSnapshot",
    "hash_instruction_content",
    # Registry
    "PromptRegistry",
    "sanitize_unicode_tags",
    # Error formatting utilities
    "format_error_for_log",
    "format_error_for_user",
]
