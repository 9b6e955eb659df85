"""Configuration management for rvcs."""

import json
import os
from pathlib import Path

from pydantic import BaseModel, Field

from . import CONFIG_FILE, RVCS_DIR
from .cache import ONE_SECOND_NS
from .current import DEFAULT_WORKERS


def default_data_dir() -> Path:
    """Default location of the object store: ~/.rvcs"""
    return Path.home() / RVCS_DIR


class RvcsConfig(BaseModel):
    """Configuration for rvcs."""

    version: int = 1
    data_dir: Path = Field(default_factory=default_data_dir)
    exclude_patterns: list[str] = Field(default_factory=list)
    workers: int = Field(default=DEFAULT_WORKERS, ge=1)
    cache_granularity_ns: int = Field(default=ONE_SECOND_NS, ge=1)


def get_config_path(data_dir: Path) -> Path:
    """Get the config file path."""
    return data_dir / CONFIG_FILE


def load_config(data_dir: Path | None = None) -> RvcsConfig:
    """Load configuration from the data directory's config file.

    Falls back to defaults if the file doesn't exist.
    Environment variables can override config values.
    """
    if data_dir is None:
        data_dir = Path(os.environ.get("RVCS_DATA_DIR") or default_data_dir())
    config_path = get_config_path(data_dir)

    if config_path.exists():
        with open(config_path) as f:
            data = json.load(f)
        data.setdefault("data_dir", str(data_dir))
        config = RvcsConfig.model_validate(data)
    else:
        config = RvcsConfig(data_dir=data_dir)

    # Apply environment variable overrides
    config = _apply_env_overrides(config)

    return config


def save_config(config: RvcsConfig) -> None:
    """Save configuration to the config file inside its data directory."""
    config_path = get_config_path(config.data_dir)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w") as f:
        json.dump(config.model_dump(mode="json"), f, indent=2)


def _apply_env_overrides(config: RvcsConfig) -> RvcsConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    # RVCS_WORKERS
    if workers := os.environ.get("RVCS_WORKERS"):
        data["workers"] = workers

    return RvcsConfig.model_validate(data)
