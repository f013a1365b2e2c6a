"""
Harper Configuration

Configuration is resolved in a fixed order, highest priority first:

    CLI flags -> environment variables -> config file (TOML) -> defaults

There is no silent fallback: a malformed file, an unparseable value or a
missing provider identity (when one is required) raises ConfigError at
startup instead of substituting a default.

Environment variables use the ``HARPER_`` prefix and the upper-cased key,
e.g. ``HARPER_ALLOW_PIPES=true`` or ``HARPER_MAX_COMMAND_LENGTH=2048``.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from harper.exceptions import ConfigError

DEFAULT_CONFIG_FILE = "harper.toml"
ENV_PREFIX = "HARPER_"

PROVIDER_KEY_VARS = {
    "ANTHROPIC_API_KEY": "anthropic",
}


class ExecutionPolicyConfig(BaseModel):
    """Immutable snapshot consumed by the policy engine.

    Passed explicitly into every evaluation; nothing reads it from
    ambient global state.
    """
    model_config = ConfigDict(frozen=True, extra="forbid")

    require_approval: bool = True
    allow_pipes: bool = False
    allow_redirects: bool = False
    allow_subshells: bool = False
    allow_background: bool = False
    allow_sudo: bool = False
    max_command_length: int = Field(default=1024, ge=1, le=1_000_000)
    confirm_destructive: bool = True
    redact_env: bool = True
    block_env_mutation: bool = True
    project_root: str = Field(default_factory=os.getcwd)
    allowed_commands: tuple[str, ...] = ()
    blocked_commands: tuple[str, ...] = ()
    command_timeout_seconds: float = Field(default=60.0, gt=0, le=3600)
    network_timeout_seconds: float = Field(default=30.0, gt=0, le=600)

    @field_validator("project_root")
    @classmethod
    def _resolve_root(cls, value: str) -> str:
        return str(Path(value).expanduser().resolve())


class ProviderSettings(BaseModel):
    """Identity of the AI provider used by interactive chat."""
    model_config = ConfigDict(extra="forbid")

    provider: str = "anthropic"
    api_key: str | None = None
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = Field(default=2048, ge=1)


class StorageSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    database_url: str = "harper.db"


class HarperConfig(BaseModel):
    """Complete resolved configuration."""
    model_config = ConfigDict(extra="forbid")

    exec_policy: ExecutionPolicyConfig = Field(default_factory=ExecutionPolicyConfig)
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    log_level: str = "WARNING"
    json_logs: bool = False

    def require_provider(self) -> ProviderSettings:
        """Return the provider settings, failing if no identity is configured."""
        if not self.provider.api_key:
            raise ConfigError(
                f"No API key configured for provider '{self.provider.provider}'. "
                "Set ANTHROPIC_API_KEY or [provider].api_key in the config file."
            )
        return self.provider


_POLICY_FIELDS = set(ExecutionPolicyConfig.model_fields)
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _coerce_env(key: str, raw: str) -> Any:
    """Convert an environment string to the field's type, strictly."""
    field = ExecutionPolicyConfig.model_fields.get(key)
    annotation = field.annotation if field else str
    if annotation is bool:
        lowered = raw.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ConfigError(f"Invalid boolean for {ENV_PREFIX}{key.upper()}: {raw!r}")
    if key in ("allowed_commands", "blocked_commands"):
        return tuple(part.strip() for part in raw.split(",") if part.strip())
    return raw


def _env_layer(environ: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {"exec_policy": {}, "provider": {}, "storage": {}}
    for key in _POLICY_FIELDS:
        env_name = f"{ENV_PREFIX}{key.upper()}"
        if env_name in environ:
            layer["exec_policy"][key] = _coerce_env(key, environ[env_name])

    found = [name for name in PROVIDER_KEY_VARS if environ.get(name, "").strip()]
    for name in found:
        layer["provider"]["api_key"] = environ[name].strip()
        layer["provider"]["provider"] = PROVIDER_KEY_VARS[name]
    if environ.get(f"{ENV_PREFIX}MODEL"):
        layer["provider"]["model"] = environ[f"{ENV_PREFIX}MODEL"]

    db_url = environ.get("DATABASE_URL") or environ.get(f"{ENV_PREFIX}DATABASE_URL")
    if db_url:
        layer["storage"]["database_url"] = db_url
    if environ.get(f"{ENV_PREFIX}LOG_LEVEL"):
        layer["log_level"] = environ[f"{ENV_PREFIX}LOG_LEVEL"]
    return layer


def _file_layer(path: Path) -> dict[str, Any]:
    try:
        with path.open("rb") as fh:
            data = tomllib.load(fh)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Malformed config file {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e
    return data


def _merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _merge(dict(merged[key]), value)
        else:
            merged[key] = value
    return merged


def load_config(
    path: str | Path | None = None,
    overrides: Mapping[str, Any] | None = None,
    environ: Mapping[str, str] | None = None,
) -> HarperConfig:
    """Resolve configuration from all sources.

    Args:
        path: Explicit config file. Must exist if given. When omitted,
            ``harper.toml`` in the working directory is used if present.
        overrides: Values from CLI flags, same nesting as the file
            (``{"exec_policy": {"allow_pipes": True}}``). ``None`` values
            are ignored so unset flags do not mask lower layers.
        environ: Environment mapping, defaults to ``os.environ``.

    Raises:
        ConfigError: On unreadable/malformed files or invalid values.
    """
    environ = os.environ if environ is None else environ
    data: dict[str, Any] = {}

    if path is not None:
        config_path = Path(path)
        if not config_path.is_file():
            raise ConfigError(f"Config file not found: {config_path}")
        data = _file_layer(config_path)
    elif Path(DEFAULT_CONFIG_FILE).is_file():
        data = _file_layer(Path(DEFAULT_CONFIG_FILE))

    data = _merge(data, _env_layer(environ))
    if overrides:
        data = _merge(data, _drop_none(overrides))

    try:
        return HarperConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def _drop_none(values: Mapping[str, Any]) -> dict[str, Any]:
    cleaned: dict[str, Any] = {}
    for key, value in values.items():
        if isinstance(value, Mapping):
            nested = _drop_none(value)
            if nested:
                cleaned[key] = nested
        elif value is not None:
            cleaned[key] = value
    return cleaned
