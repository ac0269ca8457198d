"""
Configuration loader — reads the provisioning manifest into a Config.

YAML syntax is validated before any value is exposed: a manifest
either loads completely or not at all.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

import yaml

from autorpi.core.models.config import Config

logger = logging.getLogger(__name__)

# Default manifest filename (relative to the working directory)
DEFAULT_CONFIG_FILE = "config.yml"


class ConfigErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    UNREADABLE = "unreadable"
    INVALID_SYNTAX = "invalid_syntax"


class ConfigError(Exception):
    """Raised when the manifest is missing, unreadable or invalid."""

    def __init__(self, kind: ConfigErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


def resolve_config_path(path: str | Path | None = None) -> Path:
    """Explicit path if given, else ``config.yml`` in the working directory."""
    if path is None or str(path) == "":
        return Path(DEFAULT_CONFIG_FILE)
    return Path(path)


def load_config(path: str | Path | None = None) -> Config:
    """Load and validate a provisioning manifest.

    Args:
        path: Path to the manifest. Defaults to ``config.yml``.

    Returns:
        Immutable Config.

    Raises:
        ConfigError: If the file is missing, unreadable or not valid YAML.
    """
    path = resolve_config_path(path)

    if not path.exists():
        raise ConfigError(ConfigErrorKind.NOT_FOUND, f"Configuration file not found: {path}")

    if not path.is_file():
        raise ConfigError(ConfigErrorKind.UNREADABLE, f"Configuration path is not a file: {path}")

    logger.debug("Loading configuration from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(ConfigErrorKind.UNREADABLE, f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(ConfigErrorKind.INVALID_SYNTAX, f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise ConfigError(
            ConfigErrorKind.INVALID_SYNTAX,
            f"Expected a YAML mapping in {path}, got {type(data).__name__}",
        )

    config = Config({str(k): v for k, v in data.items()}, source=path)
    logger.info("Loaded configuration from %s (%d keys)", path, len(config))
    return config
