"""Configuration system for promptstack.

Provides configuration loading, merging, and validation with precedence:
1. Environment variables (highest)
2. Project config (<project>/.promptstack/config.json)
3. User profile (~/.promptstack/profiles/<name>.json)
4. Defaults (lowest)
"""

import json
import os
from dataclasses import asdict, dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from promptstack.core.exceptions import ConfigurationError

DEFAULT_CONFIG_DIR = "~/.config/promptstack"


class ExecutionMode(str, Enum):
    """How much autonomy the agent has. Owned by configuration."""

    AUTO = "auto"
    APPROVE = "approve"
    SMART_APPROVE = "smart_approve"
    CHAT = "chat"

    @classmethod
    def parse(cls, value: str) -> "ExecutionMode":
        normalized = value.strip().lower().replace("-", "_")
        try:
            return cls(normalized)
        except ValueError as e:
            raise ConfigurationError(
                f"Unknown execution mode: {value}", key="mode", reason="invalid value"
            ) from e


class PromptRefinementMode(str, Enum):
    """Whether prompt state is persisted and restored across restarts.

    DISABLED: nothing is written.
    PERSIST_ONLY: snapshots and history are written, never restored.
    ENABLED: written, and restored when a session is reopened.
    """

    DISABLED = "disabled"
    PERSIST_ONLY = "persist-only"
    ENABLED = "enabled"

    @classmethod
    def parse(cls, value: str) -> "PromptRefinementMode":
        normalized = value.strip().lower()
        if normalized == "persist_only":
            normalized = "persist-only"
        try:
            return cls(normalized)
        except ValueError as e:
            raise ConfigurationError(
                "invalid prompt refinement mode", key="refinement_mode", reason=value
            ) from e


class ModeProvider(Protocol):
    """Anything that can report the current execution mode."""

    def get_mode(self) -> ExecutionMode: ...


@dataclass
class PromptStackConfig:
    """Settings for prompt composition and persistence."""

    config_dir: str = DEFAULT_CONFIG_DIR
    mode: ExecutionMode = ExecutionMode.AUTO
    refinement_mode: PromptRefinementMode = PromptRefinementMode.ENABLED
    enable_subagents: bool = True
    template_dir: str | None = None

    def __post_init__(self) -> None:
        """Validate and coerce configuration values."""
        if not self.config_dir:
            raise ConfigurationError("config_dir cannot be empty", key="config_dir")
        if not isinstance(self.mode, ExecutionMode):
            self.mode = ExecutionMode.parse(str(self.mode))
        if not isinstance(self.refinement_mode, PromptRefinementMode):
            self.refinement_mode = PromptRefinementMode.parse(str(self.refinement_mode))
        if not isinstance(self.enable_subagents, bool):
            raise ConfigurationError(
                f"enable_subagents must be a boolean, got {self.enable_subagents!r}",
                key="enable_subagents",
            )

    @property
    def config_root(self) -> Path:
        return Path(self.config_dir).expanduser()

    def get_mode(self) -> ExecutionMode:
        return self.mode

    def to_dict(self) -> dict[str, Any]:
        """Convert config to a JSON-friendly dictionary."""
        data = asdict(self)
        data["mode"] = self.mode.value
        data["refinement_mode"] = self.refinement_mode.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PromptStackConfig":
        """Create config from dictionary, ignoring unknown keys."""
        valid_keys = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        return cls(**filtered)


def _load_json_config(path: Path, description: str) -> PromptStackConfig:
    try:
        with path.open(encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {description}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Failed to load {description}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"{description} must contain a JSON object")
    return PromptStackConfig.from_dict(data)


def load_user_config(profile_name: str = "default") -> PromptStackConfig:
    """Load user configuration from ~/.promptstack/profiles/<name>.json.

    Returns:
        Config loaded from profile, or default config if not found

    Raises:
        ConfigurationError: If profile file is invalid
    """
    profile_path = Path.home() / ".promptstack" / "profiles" / f"{profile_name}.json"
    if not profile_path.exists():
        return PromptStackConfig()
    return _load_json_config(profile_path, f"profile {profile_name}")


def load_project_config(project_root: Path | None = None) -> PromptStackConfig | None:
    """Load project-specific configuration from .promptstack/config.json.

    Returns:
        Config if the project has one, None otherwise

    Raises:
        ConfigurationError: If config file is invalid
    """
    if project_root is None:
        project_root = Path.cwd()

    config_path = project_root / ".promptstack" / "config.json"
    if not config_path.exists():
        return None
    return _load_json_config(config_path, "project config")


def load_env_overrides() -> dict[str, Any]:
    """Load configuration overrides from environment variables.

    Supported environment variables:
    - PROMPTSTACK_CONFIG_DIR: Root for prompt-state/ and prompt-history/
    - PROMPTSTACK_MODE: auto, approve, smart_approve or chat
    - PROMPTSTACK_PROMPT_REFINEMENT: disabled, persist-only or enabled
    - PROMPTSTACK_ENABLE_SUBAGENTS: true/false
    - PROMPTSTACK_TEMPLATE_DIR: Directory of templates shadowing the built-ins
    """
    overrides: dict[str, Any] = {}

    if config_dir := os.getenv("PROMPTSTACK_CONFIG_DIR"):
        overrides["config_dir"] = config_dir

    if mode := os.getenv("PROMPTSTACK_MODE"):
        overrides["mode"] = ExecutionMode.parse(mode)

    if refinement := os.getenv("PROMPTSTACK_PROMPT_REFINEMENT"):
        overrides["refinement_mode"] = PromptRefinementMode.parse(refinement)

    if subagents := os.getenv("PROMPTSTACK_ENABLE_SUBAGENTS"):
        lowered = subagents.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            overrides["enable_subagents"] = True
        elif lowered in ("0", "false", "no", "off"):
            overrides["enable_subagents"] = False
        else:
            raise ConfigurationError(
                f"Invalid PROMPTSTACK_ENABLE_SUBAGENTS: {subagents}", key="enable_subagents"
            )

    if template_dir := os.getenv("PROMPTSTACK_TEMPLATE_DIR"):
        overrides["template_dir"] = template_dir

    return overrides


def merge_configs(
    base: PromptStackConfig,
    project: PromptStackConfig | None = None,
    env_overrides: dict[str, Any] | None = None,
) -> PromptStackConfig:
    """Merge configurations with precedence: env > project > base.

    Project values only override the base when they differ from defaults.
    """
    merged = base.to_dict()
    defaults = PromptStackConfig().to_dict()

    if project:
        for key, value in project.to_dict().items():
            if value != defaults.get(key):
                merged[key] = value

    if env_overrides:
        for key, value in env_overrides.items():
            merged[key] = value

    return PromptStackConfig.from_dict(merged)


def load_config(
    profile_name: str = "default", project_root: Path | None = None
) -> PromptStackConfig:
    """Load and merge all configuration sources.

    Raises:
        ConfigurationError: If any config source is invalid
    """
    base_config = load_user_config(profile_name)
    project_config = load_project_config(project_root)
    env_overrides = load_env_overrides()
    return merge_configs(base_config, project_config, env_overrides)
