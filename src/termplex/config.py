"""XDG config loading/saving."""

from __future__ import annotations

import sys
from contextlib import suppress
from pathlib import Path
from typing import Literal, cast

from pydantic import BaseModel, ConfigDict, Field, field_validator

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

from termplex.terminal.supervisor import SupervisorSettings

DEFAULT_CONFIG_PATH = Path("~/.config/termplex/config.toml").expanduser()
DEFAULT_POLL_INTERVAL_MS = 10
DEFAULT_TERMINATE_ATTEMPTS = 3
DEFAULT_READ_CHUNK_SIZE = 4096
DEFAULT_LOG_LEVEL: Literal["DEBUG", "INFO", "WARN", "ERROR"] = "INFO"

_POLL_INTERVAL_RANGE = (1, 1000)
_TERMINATE_ATTEMPTS_RANGE = (0, 10)
_READ_CHUNK_RANGE = (1, 1024 * 1024)
_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARN", "ERROR"}

LogLevel = Literal["DEBUG", "INFO", "WARN", "ERROR"]


class ServerConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    supervisor_poll_interval_ms: int = Field(
        default=DEFAULT_POLL_INTERVAL_MS,
        ge=_POLL_INTERVAL_RANGE[0],
        le=_POLL_INTERVAL_RANGE[1],
    )
    supervisor_terminate_attempts: int = Field(
        default=DEFAULT_TERMINATE_ATTEMPTS,
        ge=_TERMINATE_ATTEMPTS_RANGE[0],
        le=_TERMINATE_ATTEMPTS_RANGE[1],
    )
    read_chunk_size: int = Field(
        default=DEFAULT_READ_CHUNK_SIZE,
        ge=_READ_CHUNK_RANGE[0],
        le=_READ_CHUNK_RANGE[1],
    )
    log_level: LogLevel = DEFAULT_LOG_LEVEL
    log_file: str = ""

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            normalized = value.strip().upper()
            return "WARN" if normalized == "WARNING" else normalized
        return value

    def supervisor_settings(self) -> SupervisorSettings:
        return SupervisorSettings(
            poll_interval=self.supervisor_poll_interval_ms / 1000.0,
            terminate_attempts=self.supervisor_terminate_attempts,
        )


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        return DEFAULT_CONFIG_PATH
    return Path(path).expanduser()


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _toml_scalar(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return f'"{_escape(value)}"'
    raise TypeError(f"Unsupported TOML scalar type: {type(value)!r}")


def _bounded_int(raw: dict[str, object], key: str, default: int, bounds: tuple[int, int]) -> int:
    value = raw.get(key, default)
    # bool is an int subclass; `true` is not a valid count.
    if isinstance(value, bool) or not isinstance(value, int):
        return default
    low, high = bounds
    if low <= value <= high:
        return value
    return default


def _sanitize(raw: dict[str, object]) -> ServerConfig:
    cfg = ServerConfig()

    cfg.supervisor_poll_interval_ms = _bounded_int(
        raw, "supervisor_poll_interval_ms", cfg.supervisor_poll_interval_ms, _POLL_INTERVAL_RANGE
    )
    cfg.supervisor_terminate_attempts = _bounded_int(
        raw, "supervisor_terminate_attempts", cfg.supervisor_terminate_attempts, _TERMINATE_ATTEMPTS_RANGE
    )
    cfg.read_chunk_size = _bounded_int(raw, "read_chunk_size", cfg.read_chunk_size, _READ_CHUNK_RANGE)

    log_level = raw.get("log_level", cfg.log_level)
    if isinstance(log_level, str):
        normalized = log_level.strip().upper()
        if normalized == "WARNING":
            normalized = "WARN"
        if normalized in _VALID_LOG_LEVELS:
            cfg.log_level = cast(LogLevel, normalized)

    log_file = raw.get("log_file", cfg.log_file)
    if isinstance(log_file, str):
        cfg.log_file = log_file.strip()

    return cfg


def load_config(path: str | Path | None = None) -> ServerConfig:
    resolved = get_config_path(path)
    if not resolved.exists():
        return ServerConfig()
    try:
        with resolved.open("rb") as handle:
            raw = tomllib.load(handle)
    except (tomllib.TOMLDecodeError, OSError):
        return ServerConfig()
    if not isinstance(raw, dict):
        return ServerConfig()
    return _sanitize(raw)


def save_config(config: ServerConfig, path: str | Path | None = None) -> Path:
    resolved = get_config_path(path)
    resolved.parent.mkdir(parents=True, exist_ok=True)

    lines = [
        f"supervisor_poll_interval_ms = {_toml_scalar(config.supervisor_poll_interval_ms)}",
        f"supervisor_terminate_attempts = {_toml_scalar(config.supervisor_terminate_attempts)}",
        f"read_chunk_size = {_toml_scalar(config.read_chunk_size)}",
        f"log_level = {_toml_scalar(config.log_level)}",
        f"log_file = {_toml_scalar(config.log_file)}",
    ]

    resolved.write_text("\n".join(lines) + "\n", encoding="utf-8")
    with suppress(OSError):
        resolved.chmod(0o600)
    return resolved
