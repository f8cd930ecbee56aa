"""Persistence of registry snapshots.

Snapshots live at <config_dir>/prompt-state/<sha256(project)>/<session>.json.
The project hash only keeps directory names short and filesystem-safe.
Concurrent saves to the same key are last-writer-wins.
"""

import hashlib
import json
import os
from pathlib import Path

from promptstack.core.config import DEFAULT_CONFIG_DIR
from promptstack.core.exceptions import SnapshotCorruptedError, StorageError
from promptstack.core.instructions import PromptStateSnapshot
from promptstack.core.logger import get_logger

STATE_SUBDIR = "prompt-state"
SNAPSHOT_SUFFIX = ".json"


def hash_project_path(project_path: str | Path) -> str:
    """Lowercase hex SHA-256 of the project path's string form."""
    return hashlib.sha256(str(project_path).encode("utf-8", "surrogateescape")).hexdigest()


class PromptStateStore:
    """Saves, loads and removes PromptStateSnapshot files.

    Stateless apart from the root directory; never holds on to a snapshot.
    """

    def __init__(self, config_dir: str | Path = DEFAULT_CONFIG_DIR) -> None:
        """Initialize store.

        Args:
            config_dir: Root under which prompt-state/ is created
        """
        self.state_dir = Path(config_dir).expanduser() / STATE_SUBDIR

    def snapshot_path(self, project_path: str | Path, session_id: str) -> Path:
        return self.state_dir / hash_project_path(project_path) / f"{session_id}{SNAPSHOT_SUFFIX}"

    def _atomic_write(self, path: Path, content: bytes) -> None:
        """Write file atomically using temp file and rename."""
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_bytes(content)
            with temp_path.open("rb") as f:
                os.fsync(f.fileno())
            temp_path.replace(path)
        finally:
            temp_path.unlink(missing_ok=True)

    def save(
        self, snapshot: PromptStateSnapshot, project_path: str | Path, session_id: str
    ) -> Path:
        """Write snapshot as indented JSON, replacing any earlier one.

        Returns:
            Path written

        Raises:
            StorageError: If the directory or file cannot be written
        """
        path = self.snapshot_path(project_path, session_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"Failed to create prompt-state directory: {e}", path=str(path.parent)
            ) from e

        try:
            payload = json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StorageError(
                f"Failed to serialize prompt snapshot: {e}", path=str(path)
            ) from e

        try:
            with get_logger().operation("snapshot_write", session_id=session_id):
                self._atomic_write(path, payload.encode("utf-8", "surrogatepass"))
        except OSError as e:
            get_logger().error("snapshot_write_failed", path=str(path), error=str(e))
            raise StorageError(f"Failed to write prompt snapshot: {e}", path=str(path)) from e

        get_logger().debug(
            "snapshot_saved",
            path=str(path),
            session_id=session_id,
            instructions=len(snapshot.instructions),
        )
        return path

    def load(self, project_path: str | Path, session_id: str) -> PromptStateSnapshot | None:
        """Read the snapshot for (project, session).

        Returns:
            Snapshot, or None if none was ever saved

        Raises:
            StorageError: If the file exists but cannot be read
            SnapshotCorruptedError: If the file is not a valid snapshot
        """
        path = self.snapshot_path(project_path, session_id)
        if not path.exists():
            return None

        try:
            data = path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read prompt snapshot: {e}", path=str(path)) from e

        try:
            raw = json.loads(data.decode("utf-8", "surrogatepass"))
            snapshot = PromptStateSnapshot.from_dict(raw)
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            get_logger().error("snapshot_corrupted", path=str(path), error=str(e))
            raise SnapshotCorruptedError(
                f"Failed to deserialize prompt snapshot: {e}", path=str(path)
            ) from e

        get_logger().debug("snapshot_loaded", path=str(path), session_id=session_id)
        return snapshot

    def remove(self, project_path: str | Path, session_id: str) -> None:
        """Delete the snapshot if present.

        Raises:
            StorageError: If an existing file cannot be removed
        """
        path = self.snapshot_path(project_path, session_id)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to remove prompt snapshot: {e}", path=str(path)) from e
