"""Tests for Harper configuration loading and precedence."""

import pytest
from pydantic import ValidationError

from harper.config import ExecutionPolicyConfig, HarperConfig, load_config
from harper.exceptions import ConfigError


class TestExecutionPolicyConfig:
    def test_safe_defaults(self):
        config = ExecutionPolicyConfig()
        assert config.require_approval is True
        assert config.allow_pipes is False
        assert config.allow_redirects is False
        assert config.allow_subshells is False
        assert config.allow_background is False
        assert config.allow_sudo is False
        assert config.max_command_length == 1024
        assert config.confirm_destructive is True
        assert config.redact_env is True

    def test_frozen(self, tmp_path):
        config = ExecutionPolicyConfig(project_root=str(tmp_path))
        with pytest.raises(ValidationError):
            config.allow_pipes = True

    def test_project_root_resolved(self, tmp_path):
        config = ExecutionPolicyConfig(project_root=str(tmp_path / "a" / ".." / "b"))
        assert config.project_root == str((tmp_path / "b").resolve())

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            ExecutionPolicyConfig(allow_everything=True)


class TestLoadConfig:
    def test_defaults(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config(environ={})
        assert isinstance(config, HarperConfig)
        assert config.exec_policy.allow_pipes is False
        assert config.storage.database_url == "harper.db"

    def test_file_layer(self, tmp_path):
        path = tmp_path / "harper.toml"
        path.write_text('log_level = "DEBUG"\n\n[exec_policy]\nallow_pipes = true\nmax_command_length = 200\n')
        config = load_config(path, environ={})
        assert config.exec_policy.allow_pipes is True
        assert config.exec_policy.max_command_length == 200
        assert config.log_level == "DEBUG"

    def test_env_overrides_file(self, tmp_path):
        path = tmp_path / "harper.toml"
        path.write_text("[exec_policy]\nallow_pipes = true\n")
        config = load_config(path, environ={"HARPER_ALLOW_PIPES": "false"})
        assert config.exec_policy.allow_pipes is False

    def test_flags_override_env(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config(
            environ={"HARPER_ALLOW_PIPES": "false"},
            overrides={"exec_policy": {"allow_pipes": True}},
        )
        assert config.exec_policy.allow_pipes is True

    def test_none_overrides_ignored(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config(
            environ={"HARPER_ALLOW_REDIRECTS": "yes"},
            overrides={"exec_policy": {"allow_redirects": None}, "log_level": None},
        )
        assert config.exec_policy.allow_redirects is True
        assert config.log_level == "WARNING"

    def test_env_list_values(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config(environ={"HARPER_ALLOWED_COMMANDS": "ls, git status,"})
        assert config.exec_policy.allowed_commands == ("ls", "git status")

    def test_invalid_env_bool(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(ConfigError, match="HARPER_ALLOW_PIPES"):
            load_config(environ={"HARPER_ALLOW_PIPES": "sometimes"})

    def test_invalid_value(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(ConfigError):
            load_config(environ={"HARPER_MAX_COMMAND_LENGTH": "lots"})

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "harper.toml"
        path.write_text("[exec_policy\nallow_pipes = ")
        with pytest.raises(ConfigError, match="Malformed"):
            load_config(path, environ={})

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.toml", environ={})

    def test_unknown_section_rejected(self, tmp_path):
        path = tmp_path / "harper.toml"
        path.write_text("[mystery]\nvalue = 1\n")
        with pytest.raises(ConfigError):
            load_config(path, environ={})

    def test_database_url_from_env(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config(environ={"DATABASE_URL": "postgresql://localhost/harper"})
        assert config.storage.database_url == "postgresql://localhost/harper"


class TestProviderIdentity:
    def test_api_key_from_env(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config(environ={"ANTHROPIC_API_KEY": "sk-test"})
        assert config.require_provider().api_key == "sk-test"

    def test_missing_key_is_config_error(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        config = load_config(environ={})
        with pytest.raises(ConfigError, match="ANTHROPIC_API_KEY"):
            config.require_provider()
