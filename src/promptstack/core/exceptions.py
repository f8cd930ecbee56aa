"""Exception hierarchy with error codes for promptstack.

Not-found conditions are never errors: lookups return None. Everything that
touches disk or a template surfaces through one of the classes below.
"""

from dataclasses import dataclass, field
from typing import Any

# Standard error codes
E_IO = "E_IO"
E_SERIALIZATION = "E_SERIALIZATION"
E_LOCK = "E_LOCK"
E_VALIDATION = "E_VALIDATION"
E_RENDER = "E_RENDER"


@dataclass
class PromptStackException(Exception):  # noqa: N818
    """Base exception for all promptstack-specific errors.

    Carries an error code and free-form metadata so callers can log the
    failure in a structured way.
    """

    message: str
    error_code: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Return human-readable error message."""
        return self.message

    def __post_init__(self) -> None:
        """Initialize the exception with the message."""
        super().__init__(self.message)


@dataclass
class StorageError(PromptStackException):
    """Filesystem failure while reading or writing persisted prompt state.

    Raised for directory creation, open, read, write and remove failures.
    The attempted path is always attached.
    """

    path: str = ""

    def __post_init__(self) -> None:
        """Initialize with path metadata."""
        if not self.error_code:
            self.error_code = E_IO
        if self.path:
            self.metadata["path"] = self.path
        super().__post_init__()


@dataclass
class SnapshotCorruptedError(StorageError):
    """A persisted snapshot exists but cannot be deserialized."""

    def __post_init__(self) -> None:
        if not self.error_code:
            self.error_code = E_SERIALIZATION
        super().__post_init__()


@dataclass
class HistoryWriteError(PromptStackException):
    """Failure appending to the prompt history log.

    Also raised for every append attempted after a write failed half-way,
    since the file may then end in a partial record.
    """

    path: str = ""
    poisoned: bool = False

    def __post_init__(self) -> None:
        """Initialize with history-specific metadata."""
        if not self.error_code:
            self.error_code = E_LOCK if self.poisoned else E_IO
        if self.path:
            self.metadata["path"] = self.path
        if self.poisoned:
            self.metadata["poisoned"] = True
        super().__post_init__()


@dataclass
class TemplateRenderError(PromptStackException):
    """Template could not be loaded or rendered."""

    template: str = ""

    def __post_init__(self) -> None:
        if not self.error_code:
            self.error_code = E_RENDER
        if self.template:
            self.metadata["template"] = self.template
        super().__post_init__()


@dataclass
class ConfigurationError(PromptStackException):
    """Error in system configuration.

    Raised for invalid config values, unknown modes, or configuration file
    problems.
    """

    key: str = ""
    reason: str = ""

    def __post_init__(self) -> None:
        """Initialize with configuration-specific metadata."""
        if not self.error_code:
            self.error_code = E_VALIDATION
        if self.key:
            self.metadata["config_key"] = self.key
        if self.reason:
            self.metadata["reason"] = self.reason
        super().__post_init__()


def format_error_for_user(exception: PromptStackException) -> str:
    """Format exception for user-friendly display.

    Args:
        exception: The promptstack exception to format

    Returns:
        Human-readable error message without internal details
    """
    if isinstance(exception, SnapshotCorruptedError):
        if exception.path:
            return f"Corrupted prompt snapshot '{exception.path}': {exception.message}"
        return f"Corrupted prompt snapshot: {exception.message}"

    if isinstance(exception, StorageError):
        if exception.path:
            return f"Storage error with path '{exception.path}': {exception.message}"
        return f"Storage error: {exception.message}"

    if isinstance(exception, HistoryWriteError):
        return f"Prompt history error: {exception.message}"

    if isinstance(exception, TemplateRenderError):
        if exception.template:
            return f"Template '{exception.template}' failed: {exception.message}"
        return f"Template rendering failed: {exception.message}"

    if isinstance(exception, ConfigurationError):
        if exception.key:
            return f"Configuration error '{exception.key}': {exception.message}"
        return f"Configuration error: {exception.message}"

    return str(exception.message)


def format_error_for_log(exception: PromptStackException) -> dict[str, Any]:
    """Format exception for structured logging.

    Args:
        exception: The promptstack exception to format

    Returns:
        Dictionary with structured error information for logs
    """
    log_data: dict[str, Any] = {
        "error_type": type(exception).__name__,
        "message": exception.message,
        "error_code": exception.error_code,
    }

    if exception.metadata:
        log_data["metadata"] = exception.metadata

    if isinstance(exception, StorageError | HistoryWriteError):
        if exception.path:
            log_data["path"] = exception.path

    elif isinstance(exception, TemplateRenderError):
        if exception.template:
            log_data["template"] = exception.template

    elif isinstance(exception, ConfigurationError):
        if exception.key:
            log_data["config_key"] = exception.key
        if exception.reason:
            log_data["reason"] = exception.reason

    return log_data
