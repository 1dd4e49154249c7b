"""Engine configuration loading.

Configuration lives in ``.nodeflow/config.yaml`` under the project root:

    node_timeout: 30      # seconds per node, omit for no limit
    log_level: INFO
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_CONFIG_PATH = Path(".nodeflow") / "config.yaml"

_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class ConfigError(Exception):
    """Engine configuration is missing or invalid."""

    pass


class EngineConfig(BaseModel):
    """Settings shared by every pass an executor runs."""

    model_config = ConfigDict(extra="forbid")

    node_timeout: float | None = Field(default=None, gt=0)
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"Invalid log level '{v}'. Expected one of {sorted(_LOG_LEVELS)}")
        return level

    @property
    def log_level_value(self) -> int:
        return logging.getLevelName(self.log_level)


def load_config(path: str | Path | None = None, base_dir: Path | None = None) -> EngineConfig:
    """Load engine configuration from YAML.

    Args:
        path: Explicit config file. Must exist when given.
        base_dir: Directory searched for ``.nodeflow/config.yaml`` when no
            path is given (default: current directory).

    Returns:
        Parsed config, or defaults when no file is found.

    Raises:
        ConfigError: If the file cannot be read, parsed or validated
    """
    if path is None:
        candidate = (base_dir or Path.cwd()) / DEFAULT_CONFIG_PATH
        if not candidate.exists():
            return EngineConfig()
        config_path = candidate
    else:
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path) as f:
            raw: Any = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML config '{config_path}': {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config '{config_path}': {e}") from e

    if raw is None:
        return EngineConfig()
    if not isinstance(raw, dict):
        raise ConfigError(
            f"Invalid config content in '{config_path}'. "
            f"Expected a mapping, got {type(raw).__name__}."
        )

    try:
        return EngineConfig(**raw)
    except pydantic.ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(x) for x in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ConfigError(f"Invalid config '{config_path}': {details}") from e
