"""Configuration management for reqdebug.

Settings come from, in increasing precedence: defaults, ``reqdebug.yaml`` /
``reqdebug.yml`` / ``reqdebug.json`` files (``~/.reqdebug/`` then the current
directory, or one explicit file), and ``REQDEBUG_*`` environment variables.
A ``.env`` file in the working directory is honoured.
"""

import json
import logging
import os
import typing as _t

from pathlib import Path

import yaml

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel


__all__ = [
    "DebugConfig",
    "find_config_files",
    "get_config",
    "load_config",
    "load_config_file",
]

CONFIG_FILENAMES = ["reqdebug.yaml", "reqdebug.yml", "reqdebug.json"]

_TRUE_VALUES = ("1", "true", "yes", "on")


class DebugConfig(BaseModel):
    """Behaviour of an instrumented client."""

    # Attach the final response body to ``response`` events
    capture_body: bool = True
    # Truncate captured bodies to this many characters (-1 for unlimited)
    max_body_chars: int = -1

    # Mirror every appended event to the ``reqdebug.events`` logger
    log_events: bool = False
    log_level: int = logging.DEBUG


def load_config_file(config_path: Path) -> dict[str, _t.Any]:
    """Load configuration from a YAML or JSON file."""
    if not config_path.exists():
        return {}

    try:
        content = config_path.read_text(encoding="utf-8")

        if config_path.suffix.lower() in [".yaml", ".yml"]:
            return yaml.safe_load(content) or {}
        if config_path.suffix.lower() == ".json":
            return json.loads(content) or {}
        raise ValueError(f"Unsupported config file format: {config_path.suffix}")

    except Exception as e:
        raise ValueError(f"Failed to load config from {config_path}: {e}") from e


def find_config_files(config_file: Path | None = None) -> list[Path]:
    """Find configuration files in order of precedence.

    A custom file, when given, is the only one used. Otherwise ``~/.reqdebug/``
    is searched first and the current directory second; later files override
    earlier ones.
    """
    if config_file:
        if not config_file.exists():
            raise ValueError(f"Specified config file not found: {config_file}")
        return [config_file]

    config_files = []
    for directory in (Path.home() / ".reqdebug", Path.cwd()):
        for filename in CONFIG_FILENAMES:
            config_path = directory / filename
            if config_path.exists():
                config_files.append(config_path)
    return config_files


def _parse_level(value: str) -> int:
    if value.isdigit():
        return int(value)
    level = logging.getLevelName(value.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {value}")
    return level


def _env_overrides() -> dict[str, _t.Any]:
    overrides: dict[str, _t.Any] = {}

    if "REQDEBUG_CAPTURE_BODY" in os.environ:
        overrides["capture_body"] = os.environ["REQDEBUG_CAPTURE_BODY"].lower() in _TRUE_VALUES

    if "REQDEBUG_LOG_EVENTS" in os.environ:
        overrides["log_events"] = os.environ["REQDEBUG_LOG_EVENTS"].lower() in _TRUE_VALUES

    if "REQDEBUG_LOG_LEVEL" in os.environ:
        overrides["log_level"] = _parse_level(os.environ["REQDEBUG_LOG_LEVEL"])

    if "REQDEBUG_MAX_BODY_CHARS" in os.environ:
        overrides["max_body_chars"] = int(os.environ["REQDEBUG_MAX_BODY_CHARS"])

    return overrides


def load_config(config_file: Path | str | None = None) -> DebugConfig:
    """Load configuration from files and environment variables.

    Args:
        config_file: Optional path to a specific config file to use
    """
    config_path = Path(config_file) if config_file else None

    config_data: dict[str, _t.Any] = {}
    for path in find_config_files(config_path):
        config_data.update(load_config_file(path))

    load_dotenv(find_dotenv(usecwd=True))
    config_data.update(_env_overrides())

    if isinstance(config_data.get("log_level"), str):
        config_data["log_level"] = _parse_level(config_data["log_level"])

    return DebugConfig(**{k: v for k, v in config_data.items() if k in DebugConfig.model_fields})


# Global config instance
_config: DebugConfig | None = None
_config_file: Path | str | None = None


def get_config(config_file: Path | str | None = None) -> DebugConfig:
    """Get the cached configuration, reloading it when a different file is requested."""
    global _config, _config_file

    if config_file != _config_file or _config is None:
        _config = load_config(config_file)
        _config_file = config_file

    return _config
