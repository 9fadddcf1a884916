"""
Configuration loader — reads the optional macsetup YAML config.

The file is optional: when it does not exist every setting keeps its
default.  CLI flags override whatever is loaded here.

Lookup order:
    --config PATH  >  $MACSETUP_CONFIG  >  ~/.config/macsetup/config.yml
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from macsetup.core.models.options import (
    DEFAULT_PRIORITY_FORMULAE,
    DEFAULT_PROGRESS_FILE,
)

logger = logging.getLogger(__name__)

ENV_CONFIG = "MACSETUP_CONFIG"
DEFAULT_CONFIG_FILE = Path.home() / ".config" / "macsetup" / "config.yml"


class ConfigError(Exception):
    """Raised when the configuration file is unreadable or invalid."""


def _expand(value: object) -> object:
    if isinstance(value, str):
        return Path(value).expanduser()
    return value


class InstallSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    timeout: int = Field(default=300, gt=0)
    pause_on_error: bool = True
    progress_file: Path = DEFAULT_PROGRESS_FILE
    run_log: Path | None = None
    priority_formulae: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PRIORITY_FORMULAE),
    )
    cask_appdir: Path | None = None
    update_before_install: bool = True
    search_timeout: int = Field(default=60, gt=0)

    _expand_paths = field_validator(
        "progress_file", "run_log", "cask_appdir", mode="before",
    )(_expand)


class CollectSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    include_sensitive: bool = False
    encrypt_sensitive: bool = True
    include_applications: bool = True


class Settings(BaseModel):
    """Validated contents of the config file."""

    model_config = ConfigDict(extra="forbid")

    install: InstallSettings = Field(default_factory=InstallSettings)
    collect: CollectSettings = Field(default_factory=CollectSettings)
    source: Path | None = Field(default=None, exclude=True)


def find_config_file(explicit: Path | None = None) -> Path | None:
    """Locate the config file.

    Args:
        explicit: Path given with ``--config``; must exist.

    Returns:
        Path to the config file, or None when no file is configured
        and the default location is empty.

    Raises:
        ConfigError: An explicitly requested file does not exist.
    """
    if explicit is not None:
        if not explicit.is_file():
            raise ConfigError(f"Config file not found: {explicit}")
        return explicit

    env = os.environ.get(ENV_CONFIG)
    if env:
        path = Path(env).expanduser()
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path} (from ${ENV_CONFIG})")
        return path

    return DEFAULT_CONFIG_FILE if DEFAULT_CONFIG_FILE.is_file() else None


def load_settings(path: Path | None = None) -> Settings:
    """Load and validate the configuration.

    Args:
        path: Explicit config path (``--config``). If None, the
            environment and default location are consulted.

    Returns:
        Validated Settings; defaults when no file exists.

    Raises:
        ConfigError: If the file is unreadable or invalid.
    """
    path = find_config_file(path)
    if path is None:
        logger.debug("No config file — using defaults")
        return Settings()

    logger.debug("Loading config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    try:
        settings = Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}") from e

    settings.source = path
    logger.info("Loaded config from %s", path)
    return settings
