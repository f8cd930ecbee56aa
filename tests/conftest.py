"""Shared fixtures for promptstack tests."""

from datetime import UTC, datetime, timedelta

import pytest

from promptstack.core.logger import get_logger

PROMPTSTACK_ENV_VARS = [
    "PROMPTSTACK_CONFIG_DIR",
    "PROMPTSTACK_MODE",
    "PROMPTSTACK_PROMPT_REFINEMENT",
    "PROMPTSTACK_ENABLE_SUBAGENTS",
    "PROMPTSTACK_TEMPLATE_DIR",
    "PROMPTSTACK_LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep logs, profiles and env overrides out of the real home directory."""
    fake_home = tmp_path / "home"
    fake_home.mkdir()
    monkeypatch.setenv("HOME", str(fake_home))
    monkeypatch.setenv("PROMPTSTACK_DISABLE_FILE_LOGGING", "1")
    for key in PROMPTSTACK_ENV_VARS:
        monkeypatch.delenv(key, raising=False)

    get_logger.cache_clear()
    yield
    get_logger.cache_clear()


class FakeClock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 15, 10, 30, tzinfo=UTC)

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + timedelta(seconds=1)
        return current


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
