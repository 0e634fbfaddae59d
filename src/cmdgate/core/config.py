"""cmdgate configuration and decision logging."""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import IO

import structlog

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "cmdgate"
CONFIG_FILE_NAME = "config.toml"
AUTHORIZED_COMMANDS_FILE_NAME = "authorized_commands"

ENV_CONFIG_DIR = "CMDGATE_CONFIG_DIR"
ENV_APPROVED_REGEX = "CMDGATE_AGENT_APPROVED_BASH_COMMAND_REGEX"
ENV_SAFETY_CHECKS_DISABLED = "CMDGATE_SAFETY_CHECKS_DISABLED"
ENV_DEFAULT_TO_YES = "CMDGATE_DEFAULT_TO_YES"
ENV_LOG = "CMDGATE_LOG"

TRUTHY_VALUES = frozenset({"true", "1", "yes", "on"})

_BOOL_SETTINGS = ("default_to_yes", "log_full", "verbose")


def is_truthy(value: str | None) -> bool:
    """True for ``true``, ``1``, ``yes`` or ``on`` in any case."""
    return value is not None and value.strip().lower() in TRUTHY_VALUES


@dataclass
class Config:
    """Parsed configuration."""

    config_dir: Path = DEFAULT_CONFIG_DIR
    default_to_yes: bool = False
    log: Path | None = None  # None = no logging
    log_full: bool = False  # log full command (requires log path)
    verbose: bool = False

    @property
    def authorized_commands_file(self) -> Path:
        return self.config_dir / AUTHORIZED_COMMANDS_FILE_NAME


# === Config Loading ===


def parse_config(data: Mapping[str, object], base: Config | None = None) -> Config:
    """Apply parsed TOML settings on top of ``base``. Raises ValueError on bad settings."""
    config = base if base is not None else Config()
    settings: dict[str, bool | Path] = {}

    for key, value in data.items():
        if key in _BOOL_SETTINGS:
            if not isinstance(value, bool):
                raise ValueError(f"'{key}' must be true or false, got {value!r}")
            settings[key] = value
        elif key == "log":
            if not isinstance(value, str) or not value:
                raise ValueError("'log' requires a path")
            settings[key] = Path(value).expanduser()
        else:
            raise ValueError(f"unknown setting '{key}'")

    return replace(config, **settings)


def _load_config_file(path: Path, base: Config) -> Config:
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"{path}: {e}") from None

    try:
        return parse_config(data, base)
    except ValueError as e:
        raise ValueError(f"{path}: {e}") from None


def load_config(variables: Mapping[str, str] | None = None) -> Config:
    """Load config from defaults, <config_dir>/config.toml, then variables. Last wins."""
    if variables is None:
        variables = os.environ

    config = Config()

    # 1. Directory override
    config_dir = variables.get(ENV_CONFIG_DIR)
    if config_dir:
        config = replace(config, config_dir=Path(config_dir).expanduser())

    # 2. Config file
    config_path = config.config_dir / CONFIG_FILE_NAME
    if config_path.is_file():
        config = _load_config_file(config_path, config)

    # 3. Variable overrides (highest priority)
    if ENV_DEFAULT_TO_YES in variables:
        config = replace(config, default_to_yes=is_truthy(variables[ENV_DEFAULT_TO_YES]))
    log_path = variables.get(ENV_LOG)
    if log_path:
        config = replace(config, log=Path(log_path).expanduser())

    return config


# === Logging ===

_logger: structlog.typing.FilteringBoundLogger | None = None
_log_stream: IO[str] | None = None
_log_full = False


def configure_logging(config: Config) -> None:
    """Configure JSON-lines logging to ``config.log``. Call once at startup.

    With no log path configured, logging is switched off.
    """
    global _logger, _log_stream, _log_full
    if _log_stream is not None:
        _log_stream.close()
        _log_stream = None

    if config.log is None:
        _logger = None
        return

    try:
        config.log.parent.mkdir(parents=True, exist_ok=True)
        _log_stream = open(config.log, "a", encoding="utf-8")
        structlog.configure(
            processors=[
                structlog.processors.TimeStamper(fmt="iso", key="ts"),
                structlog.processors.add_log_level,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.make_filtering_bound_logger(
                logging.DEBUG if config.verbose else logging.INFO
            ),
            logger_factory=structlog.PrintLoggerFactory(file=_log_stream),
            cache_logger_on_first_use=False,
        )
        _logger = structlog.get_logger()
        _log_full = config.log_full
    except OSError:
        _logger = None  # Logging is optional - never block authorization


def log_event(level: str, event: str, **fields: object) -> None:
    """Log an event. No-op if logging not configured."""
    if _logger is None:
        return
    try:
        getattr(_logger, level)(event, **fields)
        if _log_stream is not None:
            _log_stream.flush()
    except Exception:
        pass


def log_decision(decision: str, command: str, reason: str | None = None) -> None:
    """Log an authorization decision. The full command is kept only with log_full."""
    tokens = command.split()
    fields: dict[str, object] = {"decision": decision, "cmd": tokens[0] if tokens else ""}
    if reason is not None:
        fields["reason"] = reason
    if _log_full:
        fields["command"] = command
    log_event("info", "decision", **fields)
