"""Unit tests for structured JSON logging system."""

import json
import logging
from pathlib import Path

import pytest

from promptstack.core.logger import JSONFormatter, PromptStackLogger, get_logger


@pytest.fixture
def temp_log_dir(tmp_path):
    """Create temporary log directory."""
    log_dir = tmp_path / "logs"
    log_dir.mkdir()
    return log_dir


@pytest.fixture
def logger(temp_log_dir, monkeypatch):
    """Create logger writing to a temporary directory."""
    monkeypatch.delenv("PROMPTSTACK_DISABLE_FILE_LOGGING", raising=False)
    return PromptStackLogger(log_dir=str(temp_log_dir), level="DEBUG")


def read_log_lines(log_file):
    """Read and parse JSON log lines."""
    if not log_file.exists():
        return []

    for handler in logging.getLogger("promptstack").handlers:
        handler.flush()

    lines = []
    with log_file.open() as f:
        for line in f:
            if line.strip():
                lines.append(json.loads(line))
    return lines


def test_logger_initialization(logger, temp_log_dir):
    """Test logger writes into the given directory."""
    assert logger.log_file == temp_log_dir / "promptstack.log"


def test_logger_default_directory(monkeypatch):
    """Test logger uses ~/.promptstack/logs by default."""
    monkeypatch.delenv("PROMPTSTACK_DISABLE_FILE_LOGGING", raising=False)

    logger = PromptStackLogger()

    expected_dir = Path("~/.promptstack/logs").expanduser()
    assert logger.log_dir == expected_dir
    assert expected_dir.exists()


def test_file_logging_disabled():
    """Test PROMPTSTACK_DISABLE_FILE_LOGGING suppresses the file handler."""
    logger = PromptStackLogger()
    assert logger.log_dir is None
    assert logger.log_file is None


def test_structured_logging_with_kv_pairs(logger):
    """Test keyword fields are merged into the JSON record."""
    logger.info("snapshot_saved", path="/x.json", instructions=3)

    lines = read_log_lines(logger.log_file)
    assert len(lines) == 1
    assert lines[0]["level"] == "INFO"
    assert lines[0]["message"] == "snapshot_saved"
    assert lines[0]["path"] == "/x.json"
    assert lines[0]["instructions"] == 3
    assert lines[0]["timestamp"].endswith("Z")


def test_warn_maps_to_warning(logger):
    """Test warn() logs at WARNING level."""
    logger.warn("system_prompt_render_failed")

    lines = read_log_lines(logger.log_file)
    assert lines[0]["level"] == "WARNING"


def test_log_level_filtering(logger):
    """Test log level filtering."""
    logger.set_level("ERROR")

    logger.debug("Debug message")
    logger.info("Info message")
    logger.warn("Warning message")
    logger.error("Error message")

    lines = read_log_lines(logger.log_file)
    assert len(lines) == 1
    assert lines[0]["level"] == "ERROR"


def test_default_level_is_warning(temp_log_dir, monkeypatch):
    """Test library logging stays quiet unless configured."""
    monkeypatch.delenv("PROMPTSTACK_DISABLE_FILE_LOGGING", raising=False)
    logger = PromptStackLogger(log_dir=str(temp_log_dir))

    logger.info("hidden")
    logger.warn("shown")

    lines = read_log_lines(logger.log_file)
    assert [line["message"] for line in lines] == ["shown"]


def test_log_level_from_env(temp_log_dir, monkeypatch):
    """Test log level configuration from PROMPTSTACK_LOG_LEVEL."""
    monkeypatch.delenv("PROMPTSTACK_DISABLE_FILE_LOGGING", raising=False)
    monkeypatch.setenv("PROMPTSTACK_LOG_LEVEL", "DEBUG")

    logger = PromptStackLogger(log_dir=str(temp_log_dir))
    logger.debug("instruction_registered")

    lines = read_log_lines(logger.log_file)
    assert lines[0]["message"] == "instruction_registered"


def test_operation_context_manager(logger):
    """Test operation context manager logs start and end with duration."""
    with logger.operation("snapshot_save", session_id="abc"):
        pass

    lines = read_log_lines(logger.log_file)
    assert len(lines) == 2
    assert lines[0]["message"] == "snapshot_save_start"
    assert lines[1]["message"] == "snapshot_save_end"
    assert lines[1]["session_id"] == "abc"
    assert "duration_ms" in lines[1]


def test_operation_context_manager_with_exception(logger):
    """Test operation context manager logs end even on exception."""
    with pytest.raises(ValueError):
        with logger.operation("failing_operation"):
            raise ValueError("Test error")

    lines = read_log_lines(logger.log_file)
    assert [line["message"] for line in lines] == [
        "failing_operation_start",
        "failing_operation_end",
    ]


def test_json_formatter_serializes_unknown_types():
    """Test non-JSON values are stringified."""
    record = logging.LogRecord("promptstack", logging.INFO, __file__, 1, "msg", None, None)
    record.kv = {"path": Path("/a/b")}

    data = json.loads(JSONFormatter().format(record))
    assert data["path"] == "/a/b"


def test_get_logger_is_cached():
    """Test get_logger returns one process-wide instance."""
    assert get_logger() is get_logger()
