"""Configuration for treeflow.

Settings are read from YAML:

    log_level: info
    tree_render_max_depth: 20
    cache:
      max_items: 1000
      max_size_bytes: 52428800
      default_ttl_seconds: 3600

Missing files fall back to defaults. The first existing file on the search
path wins: `.treeflow/config.yaml` (project), then `~/.treeflow/config.yaml`
(user).
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from treeflow.core.cache import DEFAULT_MAX_ITEMS, DEFAULT_MAX_SIZE_BYTES, DEFAULT_TTL_SECONDS
from treeflow.core.errors import ConfigError

logger = logging.getLogger(__name__)

_LOG_LEVELS = {"debug", "info", "warning", "error", "critical"}


class CacheSettings(BaseModel):
    max_items: int = Field(default=DEFAULT_MAX_ITEMS, gt=0)
    max_size_bytes: int = Field(default=DEFAULT_MAX_SIZE_BYTES, gt=0)
    default_ttl_seconds: float | None = Field(default=DEFAULT_TTL_SECONDS, ge=0)


class TreeflowConfig(BaseModel):
    log_level: str = "warning"
    cache: CacheSettings = Field(default_factory=CacheSettings)
    tree_render_max_depth: int = Field(default=50, gt=0)

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        level = v.lower()
        if level not in _LOG_LEVELS:
            raise ValueError(f"must be one of: {', '.join(sorted(_LOG_LEVELS))}")
        return level


def default_search_paths() -> list[Path]:
    return [
        Path(".treeflow/config.yaml"),  # Project-specific
        Path.home() / ".treeflow/config.yaml",  # User-global
    ]


def load_config(
    path: str | Path | None = None,
    search_paths: list[Path] | None = None,
) -> TreeflowConfig:
    """Load configuration from `path` or the first file found on the search path.

    Raises:
        ConfigError: explicit path missing, invalid YAML or invalid values.
    """
    if path is not None:
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
    else:
        candidates = search_paths if search_paths is not None else default_search_paths()
        path = next((p for p in candidates if p.exists()), None)
        if path is None:
            logger.debug("No treeflow config file found, using defaults")
            return TreeflowConfig()

    try:
        with open(path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}")

    if raw is None:
        return TreeflowConfig()
    if not isinstance(raw, dict):
        raise ConfigError(f"Config must be a mapping, got {type(raw).__name__} in {path}")

    try:
        config = TreeflowConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {path}: {e}")

    logger.debug(f"Loaded treeflow config from {path}")
    return config


def configure_logging(config: TreeflowConfig) -> None:
    """Set the level of the `treeflow` logger hierarchy.

    Handlers and formatting are left to the host application.
    """
    logging.getLogger("treeflow").setLevel(config.log_level.upper())
