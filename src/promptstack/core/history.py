"""Append-only audit log of instruction lifecycle events.

One JSON object per line at
<config_dir>/prompt-history/<sha256(project)>/<session>.jsonl. The file is
never rewritten; every record is appended under a lock as a single write.
"""

import json
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, TextIO

from promptstack.core.config import DEFAULT_CONFIG_DIR
from promptstack.core.exceptions import E_SERIALIZATION, HistoryWriteError, StorageError
from promptstack.core.instructions import (
    InstructionScope,
    InstructionSource,
    format_timestamp,
    hash_instruction_content,
)
from promptstack.core.logger import get_logger
from promptstack.core.sanitize import sanitize_unicode_tags
from promptstack.core.state_store import hash_project_path

HISTORY_SUBDIR = "prompt-history"
HISTORY_SUFFIX = ".jsonl"
MAX_PREVIEW_CHARS = 200
TRUNCATION_MARKER = "…"


class InstructionAction(str, Enum):
    """What the caller just did to the registry."""

    REGISTER = "Register"
    APPLY = "Apply"
    REFRESH = "Refresh"
    RETIRE = "Retire"


def preview_from_content(content: str) -> str:
    """Sanitized preview capped at MAX_PREVIEW_CHARS code points."""
    sanitized = sanitize_unicode_tags(content)
    if len(sanitized) <= MAX_PREVIEW_CHARS:
        return sanitized
    return sanitized[:MAX_PREVIEW_CHARS] + TRUNCATION_MARKER


@dataclass
class InstructionEvent:
    """A single audit record."""

    timestamp: datetime
    action: InstructionAction
    session_id: str
    project_path: str
    instruction_id: str
    source_label: str
    scope: InstructionScope
    content_hash: str
    preview: str
    order: int

    @classmethod
    def create(
        cls,
        action: InstructionAction,
        session_id: str,
        project_path: str | Path,
        instruction_id: str,
        source: InstructionSource,
        scope: InstructionScope,
        content: str,
        order: int,
    ) -> "InstructionEvent":
        """Build an event stamped now, hashing and previewing content."""
        return cls(
            timestamp=datetime.now(UTC),
            action=action,
            session_id=session_id,
            project_path=str(project_path),
            instruction_id=instruction_id,
            source_label=source.label(),
            scope=scope,
            content_hash=hash_instruction_content(content),
            preview=preview_from_content(content),
            order=order,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": format_timestamp(self.timestamp),
            "action": self.action.value,
            "session_id": self.session_id,
            "project_path": self.project_path,
            "instruction_id": self.instruction_id,
            "source_label": self.source_label,
            "scope": self.scope.to_dict(),
            "content_hash": self.content_hash,
            "preview": self.preview,
            "order": self.order,
        }


def history_path(config_dir: str | Path, project_path: str | Path, session_id: str) -> Path:
    root = Path(config_dir).expanduser() / HISTORY_SUBDIR
    return root / hash_project_path(project_path) / f"{session_id}{HISTORY_SUFFIX}"


class PromptHistoryWriter:
    """Appends InstructionEvents for one (project, session) pair.

    Safe to share between threads. If a write fails part-way the writer is
    poisoned and refuses all later writes, since the file may now end in a
    partial line.
    """

    def __init__(
        self,
        project_path: str | Path,
        session_id: str,
        config_dir: str | Path = DEFAULT_CONFIG_DIR,
    ) -> None:
        """Open (creating if needed) the history file for append.

        Raises:
            StorageError: If the directory or file cannot be opened
        """
        self.project_path = str(project_path)
        self.session_id = session_id
        self._path = history_path(config_dir, project_path, session_id)

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"Failed to create prompt-history directory: {e}", path=str(self._path.parent)
            ) from e

        try:
            self._file: TextIO | None = open(self._path, "a", encoding="utf-8")
        except OSError as e:
            raise StorageError(
                f"Failed to open prompt history file: {e}", path=str(self._path)
            ) from e

        self._lock = threading.Lock()
        self._poisoned = False

    @property
    def path(self) -> Path:
        return self._path

    def record(self, event: InstructionEvent) -> None:
        """Append one event as one line.

        Raises:
            HistoryWriteError: If the write fails, the writer is closed, or a
                previous write failed part-way
        """
        line = json.dumps(event.to_dict()) + "\n"
        with self._lock:
            if self._poisoned:
                raise HistoryWriteError(
                    "Prompt history writer is poisoned by an earlier failed write",
                    path=str(self._path),
                    poisoned=True,
                )
            if self._file is None:
                raise HistoryWriteError("Prompt history writer is closed", path=str(self._path))
            try:
                self._file.write(line)
                self._file.flush()
            except (OSError, ValueError) as e:
                self._poisoned = True
                get_logger().error("history_write_failed", path=str(self._path), error=str(e))
                raise HistoryWriteError(
                    f"Failed to write prompt history entry: {e}", path=str(self._path)
                ) from e

        get_logger().debug(
            "history_recorded",
            action=event.action.value,
            instruction_id=event.instruction_id,
            session_id=self.session_id,
        )

    def record_instruction(
        self,
        action: InstructionAction,
        instruction_id: str,
        source: InstructionSource,
        scope: InstructionScope,
        content: str,
        order: int,
    ) -> None:
        event = InstructionEvent.create(
            action,
            self.session_id,
            self.project_path,
            instruction_id,
            source,
            scope,
            content,
            order,
        )
        self.record(event)

    def close(self) -> None:
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None

    def __enter__(self) -> "PromptHistoryWriter":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def read_history(path: str | Path, limit: int | None = None) -> list[dict[str, Any]]:
    """Parse a history file back into event dicts, oldest first.

    Args:
        path: History file
        limit: Keep only the last N events (None = all, 0 or less = none)

    Returns:
        Events, or an empty list if the file does not exist

    Raises:
        StorageError: If the file cannot be read
    """
    history_file = Path(path)
    if not history_file.exists():
        return []

    try:
        with history_file.open(encoding="utf-8") as f:
            events = [json.loads(line) for line in f if line.strip()]
    except OSError as e:
        raise StorageError(f"Failed to read prompt history: {e}", path=str(history_file)) from e
    except json.JSONDecodeError as e:
        raise StorageError(
            f"Malformed prompt history line: {e}",
            error_code=E_SERIALIZATION,
            path=str(history_file),
        ) from e

    if limit is not None:
        events = events[-limit:] if limit > 0 else []
    return events
