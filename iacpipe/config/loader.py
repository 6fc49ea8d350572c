"""
Configuration loading.

- get_settings(): AppSettings from ``IACPIPE_*`` environment variables (cached)
- load_config(path): PipelineConfig from a JSON or YAML document
- configure_logging(level): root logging setup
"""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from iacpipe.errors import ConfigurationError

from .schemas import AppSettings, PipelineConfig

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@lru_cache()
def get_settings() -> AppSettings:
    """
    Get application settings from environment.

    Uses lru_cache for singleton pattern.
    """
    return AppSettings(
        debug=os.getenv("IACPIPE_DEBUG", "false").lower() == "true",
        log_level=os.getenv("IACPIPE_LOG_LEVEL", "INFO"),
        # Configuration document
        config_path=os.getenv("IACPIPE_CONFIG", "cfg/config.json"),
        # Templates
        template_store=os.getenv("IACPIPE_TEMPLATE_STORE", "file"),
        template_path=os.getenv("IACPIPE_TEMPLATE_PATH"),
        # Secrets
        secret_backend=os.getenv("IACPIPE_SECRET_BACKEND", "env"),
        mongodb_uri_key=os.getenv("IACPIPE_MONGODB_URI_KEY", "MDB_URI"),
        mongodb_database=os.getenv("IACPIPE_MONGODB_DATABASE", "iacpipe"),
    )


def configure_logging(level: str | int | None = None) -> None:
    """Configure root logging with the standard iacpipe format."""
    if level is None:
        settings = get_settings()
        level = "DEBUG" if settings.debug else settings.log_level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logging.basicConfig(level=level, format=LOG_FORMAT)


def _read_document(path: Path) -> Any:
    with path.open(encoding="utf-8") as f:
        if path.suffix.lower() in (".yaml", ".yml"):
            return yaml.safe_load(f)
        return json.load(f)


def load_config(path: str | Path | None = None) -> PipelineConfig:
    """
    Load a pipeline configuration document.

    Args:
        path: JSON or YAML file; defaults to AppSettings.config_path

    Raises:
        ConfigurationError: Missing file, unparsable or invalid document
    """
    path = Path(path or get_settings().config_path)
    if not path.is_file():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        data = _read_document(path)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to parse configuration {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration {path} must be a mapping")

    try:
        config = PipelineConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration {path}: {e}") from e

    logger.info(f"[config] Loaded configuration: {path}")
    return config
