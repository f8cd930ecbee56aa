"""Structured JSON logging system.

All promptstack modules log through a single PromptStackLogger obtained from
get_logger(). Records are JSON lines with timestamp, level, message and any
keyword fields passed by the caller.
"""

import json
import logging
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from functools import lru_cache
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any


class PromptStackLogger:
    """Structured JSON logger with rotation and timing utilities.

    Outputs JSON lines to ~/.promptstack/logs/promptstack.log with automatic
    rotation, and to stderr.
    """

    log_dir: Path | None
    log_file: Path | None

    def __init__(
        self,
        log_dir: str | None = None,
        max_bytes: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
        level: str | None = None,
    ) -> None:
        """Initialize logger with rotation.

        Args:
            log_dir: Directory for log files (defaults to ~/.promptstack/logs/)
            max_bytes: Maximum size before rotation (default 10MB)
            backup_count: Number of backup files to keep (default 5)
            level: Log level (DEBUG/INFO/WARN/ERROR), reads from PROMPTSTACK_LOG_LEVEL env if not provided
        """
        disable_file_logging = os.environ.get("PROMPTSTACK_DISABLE_FILE_LOGGING", "").lower() in (
            "1",
            "true",
            "yes",
        )

        self._logger = logging.getLogger("promptstack")
        self._logger.setLevel(logging.DEBUG)
        self._logger.propagate = False

        for handler in self._logger.handlers[:]:
            handler.close()
            self._logger.removeHandler(handler)

        if not disable_file_logging:
            if log_dir is None:
                self.log_dir = Path("~/.promptstack/logs").expanduser()
            else:
                self.log_dir = Path(log_dir)

            self.log_dir.mkdir(parents=True, exist_ok=True)
            self.log_file = self.log_dir / "promptstack.log"

            file_handler = RotatingFileHandler(
                self.log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
            file_handler.setFormatter(JSONFormatter())
            self._logger.addHandler(file_handler)
        else:
            self.log_dir = None
            self.log_file = None

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(JSONFormatter())
        self._logger.addHandler(console_handler)

        # Default to WARNING so library use stays quiet
        log_level = level or os.environ.get("PROMPTSTACK_LOG_LEVEL", "WARNING")
        self.set_level(log_level)

    def set_level(self, level: str) -> None:
        """Set logging level.

        Args:
            level: One of DEBUG, INFO, WARN/WARNING, ERROR
        """
        level_upper = level.upper()
        if level_upper == "WARN":
            level_upper = "WARNING"

        numeric_level = getattr(logging, level_upper, logging.INFO)
        self._logger.setLevel(numeric_level)

    def debug(self, msg: str, **kv: Any) -> None:
        """Log debug message with optional key-value pairs."""
        self._logger.debug(msg, extra={"kv": kv})

    def info(self, msg: str, **kv: Any) -> None:
        """Log info message with optional key-value pairs."""
        self._logger.info(msg, extra={"kv": kv})

    def warn(self, msg: str, **kv: Any) -> None:
        """Log warning message with optional key-value pairs."""
        self._logger.warning(msg, extra={"kv": kv})

    def error(self, msg: str, **kv: Any) -> None:
        """Log error message with optional key-value pairs."""
        self._logger.error(msg, extra={"kv": kv})

    @contextmanager
    def operation(self, operation_name: str, **kv: Any) -> Iterator[None]:
        """Context manager for operation timing.

        Logs operation start and end with duration.

        Args:
            operation_name: Name of the operation
            **kv: Additional key-value pairs to include

        Example:
            with logger.operation("snapshot_save", session_id="abc"):
                store.save(snapshot, project, "abc")
        """
        start_time = time.time()
        self.debug(f"{operation_name}_start", **kv)

        try:
            yield
        finally:
            duration_ms = (time.time() - start_time) * 1000
            self.debug(f"{operation_name}_end", duration_ms=duration_ms, **kv)


class JSONFormatter(logging.Formatter):
    """Formats log records as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON string
        """
        dt = datetime.fromtimestamp(record.created, tz=UTC)
        timestamp = dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"

        log_data = {
            "timestamp": timestamp,
            "level": record.levelname,
            "message": record.getMessage(),
        }

        if hasattr(record, "kv") and record.kv:
            log_data.update(record.kv)

        return json.dumps(log_data, default=str)


@lru_cache(maxsize=1)
def get_logger() -> PromptStackLogger:
    """Return the process-wide logger, creating it on first use."""
    return PromptStackLogger()
