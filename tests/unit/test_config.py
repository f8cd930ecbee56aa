"""Tests for configuration system."""

import json
from pathlib import Path

import pytest

from promptstack.core.config import (
    DEFAULT_CONFIG_DIR,
    ExecutionMode,
    PromptRefinementMode,
    PromptStackConfig,
    load_config,
    load_env_overrides,
    load_project_config,
    load_user_config,
    merge_configs,
)
from promptstack.core.exceptions import ConfigurationError


class TestExecutionMode:
    def test_parse(self):
        assert ExecutionMode.parse("chat") is ExecutionMode.CHAT
        assert ExecutionMode.parse(" Smart-Approve ") is ExecutionMode.SMART_APPROVE

    def test_parse_unknown(self):
        with pytest.raises(ConfigurationError, match="Unknown execution mode"):
            ExecutionMode.parse("yolo")


class TestPromptRefinementMode:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("disabled", PromptRefinementMode.DISABLED),
            ("persist-only", PromptRefinementMode.PERSIST_ONLY),
            ("persist_only", PromptRefinementMode.PERSIST_ONLY),
            ("  ENABLED ", PromptRefinementMode.ENABLED),
        ],
    )
    def test_parse(self, value, expected):
        assert PromptRefinementMode.parse(value) is expected

    def test_parse_invalid(self):
        with pytest.raises(ConfigurationError) as exc_info:
            PromptRefinementMode.parse("sometimes")
        assert exc_info.value.reason == "sometimes"
        assert exc_info.value.key == "refinement_mode"


class TestPromptStackConfig:
    def test_default_config(self):
        config = PromptStackConfig()
        assert config.config_dir == DEFAULT_CONFIG_DIR
        assert config.mode is ExecutionMode.AUTO
        assert config.refinement_mode is PromptRefinementMode.ENABLED
        assert config.enable_subagents is True
        assert config.template_dir is None

    def test_string_values_coerced(self):
        config = PromptStackConfig(mode="chat", refinement_mode="persist_only")
        assert config.mode is ExecutionMode.CHAT
        assert config.refinement_mode is PromptRefinementMode.PERSIST_ONLY

    def test_empty_config_dir(self):
        with pytest.raises(ConfigurationError, match="config_dir cannot be empty"):
            PromptStackConfig(config_dir="")

    def test_enable_subagents_must_be_bool(self):
        with pytest.raises(ConfigurationError):
            PromptStackConfig(enable_subagents="yes")

    def test_config_root_expands_user(self):
        config = PromptStackConfig(config_dir="~/somewhere")
        assert config.config_root == Path.home() / "somewhere"

    def test_get_mode(self):
        assert PromptStackConfig(mode=ExecutionMode.CHAT).get_mode() is ExecutionMode.CHAT

    def test_to_dict(self):
        data = PromptStackConfig(refinement_mode=PromptRefinementMode.PERSIST_ONLY).to_dict()
        assert data["mode"] == "auto"
        assert data["refinement_mode"] == "persist-only"
        assert json.dumps(data)

    def test_from_dict(self):
        config = PromptStackConfig.from_dict({"mode": "approve", "unknown_key": "ignored"})
        assert config.mode is ExecutionMode.APPROVE
        assert not hasattr(config, "unknown_key")


class TestLoadUserConfig:
    def test_load_nonexistent_profile(self):
        config = load_user_config("nonexistent_profile_xyz")
        assert config == PromptStackConfig()

    def test_load_valid_profile(self):
        profile_dir = Path.home() / ".promptstack" / "profiles"
        profile_dir.mkdir(parents=True)
        (profile_dir / "test.json").write_text(json.dumps({"mode": "chat"}))

        config = load_user_config("test")
        assert config.mode is ExecutionMode.CHAT

    def test_load_invalid_json(self):
        profile_dir = Path.home() / ".promptstack" / "profiles"
        profile_dir.mkdir(parents=True)
        (profile_dir / "bad.json").write_text("{invalid json")

        with pytest.raises(ConfigurationError, match="Invalid JSON"):
            load_user_config("bad")

    def test_load_non_object(self):
        profile_dir = Path.home() / ".promptstack" / "profiles"
        profile_dir.mkdir(parents=True)
        (profile_dir / "list.json").write_text("[1, 2]")

        with pytest.raises(ConfigurationError, match="must contain a JSON object"):
            load_user_config("list")


class TestLoadProjectConfig:
    def test_load_nonexistent_project_config(self, tmp_path):
        assert load_project_config(tmp_path) is None

    def test_load_valid_project_config(self, tmp_path):
        config_dir = tmp_path / ".promptstack"
        config_dir.mkdir()
        (config_dir / "config.json").write_text(
            json.dumps({"refinement_mode": "disabled", "template_dir": "/tpl"})
        )

        config = load_project_config(tmp_path)
        assert config is not None
        assert config.refinement_mode is PromptRefinementMode.DISABLED
        assert config.template_dir == "/tpl"

    def test_load_project_config_current_dir(self, tmp_path, monkeypatch):
        config_dir = tmp_path / ".promptstack"
        config_dir.mkdir()
        (config_dir / "config.json").write_text(json.dumps({"mode": "approve"}))

        monkeypatch.chdir(tmp_path)

        config = load_project_config()
        assert config is not None
        assert config.mode is ExecutionMode.APPROVE

    def test_load_invalid_project_value(self, tmp_path):
        config_dir = tmp_path / ".promptstack"
        config_dir.mkdir()
        (config_dir / "config.json").write_text(json.dumps({"mode": "nonsense"}))

        with pytest.raises(ConfigurationError):
            load_project_config(tmp_path)


class TestLoadEnvOverrides:
    def test_no_env_vars(self):
        assert load_env_overrides() == {}

    def test_all_overrides(self, monkeypatch):
        monkeypatch.setenv("PROMPTSTACK_CONFIG_DIR", "/tmp/ps")
        monkeypatch.setenv("PROMPTSTACK_MODE", "chat")
        monkeypatch.setenv("PROMPTSTACK_PROMPT_REFINEMENT", "persist-only")
        monkeypatch.setenv("PROMPTSTACK_ENABLE_SUBAGENTS", "false")
        monkeypatch.setenv("PROMPTSTACK_TEMPLATE_DIR", "/tmp/templates")

        overrides = load_env_overrides()
        assert overrides == {
            "config_dir": "/tmp/ps",
            "mode": ExecutionMode.CHAT,
            "refinement_mode": PromptRefinementMode.PERSIST_ONLY,
            "enable_subagents": False,
            "template_dir": "/tmp/templates",
        }

    def test_invalid_subagents_flag(self, monkeypatch):
        monkeypatch.setenv("PROMPTSTACK_ENABLE_SUBAGENTS", "maybe")
        with pytest.raises(ConfigurationError, match="Invalid PROMPTSTACK_ENABLE_SUBAGENTS"):
            load_env_overrides()

    def test_invalid_refinement(self, monkeypatch):
        monkeypatch.setenv("PROMPTSTACK_PROMPT_REFINEMENT", "bogus")
        with pytest.raises(ConfigurationError):
            load_env_overrides()


class TestMergeConfigs:
    def test_project_overrides_base(self):
        base = PromptStackConfig(mode=ExecutionMode.APPROVE)
        project = PromptStackConfig(mode=ExecutionMode.CHAT)
        assert merge_configs(base, project).mode is ExecutionMode.CHAT

    def test_project_defaults_do_not_override(self):
        base = PromptStackConfig(mode=ExecutionMode.APPROVE)
        project = PromptStackConfig()
        assert merge_configs(base, project).mode is ExecutionMode.APPROVE

    def test_env_wins(self):
        base = PromptStackConfig(mode=ExecutionMode.APPROVE)
        project = PromptStackConfig(mode=ExecutionMode.CHAT)
        merged = merge_configs(base, project, {"mode": ExecutionMode.SMART_APPROVE})
        assert merged.mode is ExecutionMode.SMART_APPROVE


class TestLoadConfig:
    def test_full_precedence(self, tmp_path, monkeypatch):
        profile_dir = Path.home() / ".promptstack" / "profiles"
        profile_dir.mkdir(parents=True)
        (profile_dir / "default.json").write_text(
            json.dumps({"mode": "approve", "config_dir": "/from/profile"})
        )

        project = tmp_path / "project"
        (project / ".promptstack").mkdir(parents=True)
        (project / ".promptstack" / "config.json").write_text(
            json.dumps({"refinement_mode": "persist-only"})
        )

        monkeypatch.setenv("PROMPTSTACK_CONFIG_DIR", "/from/env")

        config = load_config("default", project)
        assert config.mode is ExecutionMode.APPROVE
        assert config.refinement_mode is PromptRefinementMode.PERSIST_ONLY
        assert config.config_dir == "/from/env"
