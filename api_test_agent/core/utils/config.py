"""Configuration loading utilities for the API test agent."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Sequence

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover - fallback for <3.11
    import tomli as tomllib


ENV_PREFIX = "APITEST_"
CONFIG_FILENAMES: tuple[str, ...] = (".apitest.toml", "apitest.toml")
DEFAULT_CONFIG_PATHS = (
    Path.home() / ".config" / "apitest" / "config.toml",
    Path.home() / ".apitest.toml",
)
DEFAULT_DATA_DIR = Path.home() / ".apitest"

EXTRA_TOOL_CALL_MODES = frozenset({"queue", "ignore"})

_BOOL_FIELDS = frozenset(
    {
        "structured_logging",
        "auto_execute",
        "audit_approvals",
        "enable_retry",
    }
)
_INT_FIELDS = frozenset(
    {
        "max_tool_rounds",
        "stream_queue_size",
        "retry_max_attempts",
        "max_plan_cases",
        "response_preview_chars",
    }
)
_FLOAT_FIELDS = frozenset(
    {"retry_initial_delay", "retry_max_delay", "poll_interval", "cancel_grace"}
)
_OPTIONAL_FLOAT_FIELDS = frozenset({"request_timeout", "llm_timeout"})
_PATH_FIELDS = frozenset({"data_dir", "log_file"})
_JSON_FIELDS = frozenset({"request_headers", "auth_data"})


def find_config_in_parents(
    start_path: Path, config_name: str | Sequence[str] = ".apitest.toml"
) -> Path | None:
    """Search parent directories starting from ``start_path`` for configuration files."""

    if isinstance(config_name, str):
        candidate_names: tuple[str, ...] = (config_name,)
    else:
        candidate_names = tuple(config_name)

    current = start_path.resolve()
    if current.is_file():
        current = current.parent

    while True:
        for name in candidate_names:
            candidate = current / name
            if candidate.is_file():
                return candidate.resolve()
        if current.parent == current:
            break
        current = current.parent
    return None


@dataclass
class Settings:
    """Runtime configuration for the agent and its collaborators."""

    # LLM provider
    provider: str = "openai"
    model: str = "gpt-4o-mini"
    api_key: str | None = None
    base_url: str | None = None
    request_headers: dict[str, str] = field(default_factory=dict)
    llm_timeout: float | None = None
    enable_retry: bool = True
    retry_max_attempts: int = 3
    retry_initial_delay: float = 0.5
    retry_max_delay: float = 30.0

    # Target API under test
    api_base_url: str | None = None
    auth_type: str = "none"
    auth_data: dict[str, str] = field(default_factory=dict)
    request_timeout: float | None = None

    # Session behaviour
    auto_execute: bool = False
    audit_approvals: bool = False
    extra_tool_calls: str = "queue"
    max_tool_rounds: int = 25
    stream_queue_size: int = 100
    poll_interval: float = 0.05
    cancel_grace: float = 5.0
    max_plan_cases: int = 10
    response_preview_chars: int = 200

    # Storage and logging
    data_dir: Path = DEFAULT_DATA_DIR
    log_level: str = "INFO"
    structured_logging: bool = False
    log_file: Path | None = None

    def ensure_data_dir(self) -> None:
        """Ensure the data directory exists."""
        if not self.data_dir.exists():
            self.data_dir.mkdir(parents=True, exist_ok=True)

    def project_dir(self, project_id: str) -> Path:
        return self.data_dir / "projects" / project_id

    @property
    def audit_file(self) -> Path:
        return self.data_dir / "approvals.jsonl"


def _cast_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.lower() in {"1", "true", "on", "yes", "y"}
    return bool(value)


def _cast_optional_float(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, str) and value.strip().lower() in {"", "none", "off", "0"}:
        return None
    number = float(value)
    return number if number > 0 else None


def _load_from_file(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    with path.open("rb") as handle:
        data = tomllib.load(handle)
    return {k.replace("-", "_"): v for k, v in data.items()}


def _load_from_env(prefix: str = ENV_PREFIX) -> dict[str, Any]:
    env: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        field_name = key[len(prefix) :].lower()
        if field_name in _BOOL_FIELDS:
            env[field_name] = _cast_bool(value)
        elif field_name in _INT_FIELDS:
            env[field_name] = int(value)
        elif field_name in _FLOAT_FIELDS:
            env[field_name] = float(value)
        elif field_name in _OPTIONAL_FLOAT_FIELDS:
            env[field_name] = _cast_optional_float(value)
        elif field_name in _PATH_FIELDS:
            env[field_name] = Path(value).expanduser()
        elif field_name in _JSON_FIELDS:
            try:
                env[field_name] = json.loads(value)
            except json.JSONDecodeError:
                env[field_name] = {}
        else:
            env[field_name] = value
    return env


def _legacy_api_key(provider: str) -> str | None:
    if provider in {"openai", "openrouter"}:
        return os.environ.get("OPENAI_API_KEY")
    return os.environ.get("ANTHROPIC_API_KEY")


def load_settings(explicit_path: Path | None = None) -> Settings:
    """Load configuration, merging file and environment sources."""

    file_data: dict[str, Any] = {}
    if explicit_path:
        file_data.update(_load_from_file(explicit_path))
    else:
        search_paths = []
        cwd = Path.cwd()
        project_config = find_config_in_parents(cwd, CONFIG_FILENAMES)
        if project_config:
            search_paths.append(project_config)
        search_paths.extend(DEFAULT_CONFIG_PATHS)
        seen_paths = set()
        for candidate in search_paths:
            if candidate in seen_paths:
                continue
            seen_paths.add(candidate)
            file_data = _load_from_file(candidate)
            if file_data:
                break

    env_data = _load_from_env()
    merged: dict[str, Any] = {**file_data, **env_data}

    for key in _PATH_FIELDS:
        if isinstance(merged.get(key), str):
            merged[key] = Path(merged[key]).expanduser()
    for key in _OPTIONAL_FLOAT_FIELDS:
        if key in merged:
            merged[key] = _cast_optional_float(merged[key])
    for key in _JSON_FIELDS:
        value = merged.get(key)
        if value is None or isinstance(value, dict):
            continue
        if isinstance(value, str):
            try:
                merged[key] = json.loads(value)
            except json.JSONDecodeError:
                merged[key] = {}
            continue
        merged[key] = dict(value)

    mode = merged.get("extra_tool_calls")
    if mode is not None and mode not in EXTRA_TOOL_CALL_MODES:
        raise ValueError(
            f"extra_tool_calls must be one of {sorted(EXTRA_TOOL_CALL_MODES)}, got {mode!r}"
        )

    # Only pass known fields to the dataclass constructor; extras stay reachable as attributes.
    known_fields = set(Settings.__dataclass_fields__)
    init_kwargs = {key: value for key, value in merged.items() if key in known_fields}
    settings = Settings(**init_kwargs)
    for key, value in merged.items():
        if key not in known_fields:
            setattr(settings, key, value)
    if not settings.api_key:
        settings.api_key = _legacy_api_key(settings.provider)
    return settings


__all__ = ["CONFIG_FILENAMES", "ENV_PREFIX", "Settings", "find_config_in_parents", "load_settings"]
