"""XDG config loading/saving."""

from __future__ import annotations

import os
import sys
from contextlib import suppress
from pathlib import Path
from typing import Literal, cast

from pydantic import BaseModel, ConfigDict, Field, field_validator

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

DEFAULT_CONFIG_PATH = Path("~/.config/termhub/config.toml").expanduser()
DEFAULT_POSIX_SHELL = "/bin/bash"
DEFAULT_WINDOWS_SHELL = "cmd.exe"
DEFAULT_MAX_SESSIONS = 32
DEFAULT_REAP_INTERVAL_SECONDS = 30.0
DEFAULT_EXIT_DRAIN_TIMEOUT_SECONDS = 2.0
DEFAULT_TERMINATE_TIMEOUT_SECONDS = 2.0
DEFAULT_LOG_LEVEL: Literal["DEBUG", "INFO", "WARN", "ERROR"] = "INFO"
ROOT_FOLDER_ENV = "TERMHUB_ROOT"

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARN", "ERROR"}
_MAX_SESSIONS_RANGE = (1, 256)


class AppConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    root_folder: str = ""
    posix_shell: str = DEFAULT_POSIX_SHELL
    windows_shell: str = DEFAULT_WINDOWS_SHELL
    max_sessions: int = Field(default=DEFAULT_MAX_SESSIONS, ge=1, le=256)
    idle_timeout_seconds: float = Field(default=0.0, ge=0)
    reap_interval_seconds: float = Field(default=DEFAULT_REAP_INTERVAL_SECONDS, gt=0)
    exit_drain_timeout_seconds: float = Field(default=DEFAULT_EXIT_DRAIN_TIMEOUT_SECONDS, gt=0)
    terminate_timeout_seconds: float = Field(default=DEFAULT_TERMINATE_TIMEOUT_SECONDS, gt=0)
    log_level: Literal["DEBUG", "INFO", "WARN", "ERROR"] = DEFAULT_LOG_LEVEL

    @field_validator("posix_shell", "windows_shell")
    @classmethod
    def _validate_shell(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Shell executable cannot be empty")
        return value.strip()

    @field_validator("log_level", mode="before")
    @classmethod
    def _validate_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            normalized = value.strip().upper()
            if normalized == "WARNING":
                normalized = "WARN"
            if normalized not in _VALID_LOG_LEVELS:
                raise ValueError(f"Invalid log level: {value}")
            return normalized
        return value

    def resolve_root(self) -> Path:
        if self.root_folder.strip():
            return Path(self.root_folder.strip()).expanduser().resolve()
        return Path.cwd().resolve()


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        return DEFAULT_CONFIG_PATH
    return Path(path).expanduser()


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _toml_scalar(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return f'"{_escape(value)}"'
    raise TypeError(f"Unsupported TOML scalar type: {type(value)!r}")


def _positive_number(value: object, *, allow_zero: bool = False) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value > 0 or (allow_zero and value == 0):
        return float(value)
    return None


def _sanitize(raw: dict[str, object]) -> AppConfig:
    cfg = AppConfig()

    root_folder = raw.get("root_folder", cfg.root_folder)
    if isinstance(root_folder, str):
        cfg.root_folder = root_folder
    env_root = os.getenv(ROOT_FOLDER_ENV, "").strip()
    if env_root:
        cfg.root_folder = env_root

    for key in ("posix_shell", "windows_shell"):
        shell = raw.get(key)
        if isinstance(shell, str) and shell.strip():
            setattr(cfg, key, shell)

    max_sessions = raw.get("max_sessions", cfg.max_sessions)
    low, high = _MAX_SESSIONS_RANGE
    if isinstance(max_sessions, int) and not isinstance(max_sessions, bool) and low <= max_sessions <= high:
        cfg.max_sessions = max_sessions

    idle_timeout = _positive_number(raw.get("idle_timeout_seconds"), allow_zero=True)
    if idle_timeout is not None:
        cfg.idle_timeout_seconds = idle_timeout

    for key in ("reap_interval_seconds", "exit_drain_timeout_seconds", "terminate_timeout_seconds"):
        seconds = _positive_number(raw.get(key))
        if seconds is not None:
            setattr(cfg, key, seconds)

    log_level = raw.get("log_level", cfg.log_level)
    if isinstance(log_level, str):
        normalized = log_level.strip().upper()
        if normalized == "WARNING":
            normalized = "WARN"
        if normalized in _VALID_LOG_LEVELS:
            cfg.log_level = cast(Literal["DEBUG", "INFO", "WARN", "ERROR"], normalized)

    return cfg


def load_config(path: str | Path | None = None) -> AppConfig:
    resolved = get_config_path(path)
    if not resolved.exists():
        return _sanitize({})
    try:
        with resolved.open("rb") as handle:
            raw = tomllib.load(handle)
    except (tomllib.TOMLDecodeError, OSError):
        return _sanitize({})
    if not isinstance(raw, dict):
        return _sanitize({})
    return _sanitize(raw)


def save_config(config: AppConfig, path: str | Path | None = None) -> Path:
    resolved = get_config_path(path)
    resolved.parent.mkdir(parents=True, exist_ok=True)
    lines = [
        f"root_folder = {_toml_scalar(config.root_folder)}",
        f"posix_shell = {_toml_scalar(config.posix_shell)}",
        f"windows_shell = {_toml_scalar(config.windows_shell)}",
        f"max_sessions = {_toml_scalar(config.max_sessions)}",
        f"idle_timeout_seconds = {_toml_scalar(config.idle_timeout_seconds)}",
        f"reap_interval_seconds = {_toml_scalar(config.reap_interval_seconds)}",
        f"exit_drain_timeout_seconds = {_toml_scalar(config.exit_drain_timeout_seconds)}",
        f"terminate_timeout_seconds = {_toml_scalar(config.terminate_timeout_seconds)}",
        f"log_level = {_toml_scalar(config.log_level)}",
    ]
    resolved.write_text("\n".join(lines) + "\n", encoding="utf-8")
    with suppress(OSError):
        resolved.chmod(0o600)
    return resolved
