"""
promptstack

Instruction registry and system-prompt compositor for LLM agent runtimes.
Producers register, update and retire instructions; the compositor renders a
deterministic, sanitized system prompt from them.
"""

__version__ = "0.1.0"
__license__ = "MIT"

from promptstack.core.config import (
    ExecutionMode,
    PromptRefinementMode,
    PromptStackConfig,
    load_config,
)
from promptstack.core.exceptions import (
    ConfigurationError,
    HistoryWriteError,
    PromptStackException,
    SnapshotCorruptedError,
    StorageError,
    TemplateRenderError,
)
from promptstack.core.history import InstructionAction, PromptHistoryWriter
from promptstack.core.instructions import (
    InstructionId,
    InstructionScope,
    InstructionSource,
    InstructionState,
    PromptInstruction,
    PromptStateSnapshot,
)
from promptstack.core.prompts import ExtensionInfo, PromptTemplateEngine, SystemPromptBuilder
from promptstack.core.registry import PromptRegistry
from promptstack.core.sanitize import sanitize_unicode_tags
from promptstack.core.session import PromptSession
from promptstack.core.state_store import PromptStateStore

__all__ = [
    "__version__",
    # Registry and model
    "PromptRegistry",
    "InstructionId",
    "InstructionScope",
    "InstructionSource",
    "InstructionState",
    "PromptInstruction",
    "PromptStateSnapshot",
    # Composition
    "ExtensionInfo",
    "PromptTemplateEngine",
    "SystemPromptBuilder",
    "sanitize_unicode_tags",
    # Persistence
    "PromptStateStore",
    "PromptHistoryWriter",
    "InstructionAction",
    "PromptSession",
    # Configuration
    "ExecutionMode",
    "PromptRefinementMode",
    "PromptStackConfig",
    "load_config",
    # Exceptions
    "PromptStackException",
    "StorageError",
    "SnapshotCorruptedError",
    "HistoryWriteError",
    "TemplateRenderError",
    "ConfigurationError",
]
