"""
Configuration for iacpipe.

Exports:
    - AppSettings, get_settings: process settings from the environment
    - PipelineConfig, load_config: pipeline configuration documents
    - configure_logging: root logging setup
"""

from .loader import LOG_FORMAT, configure_logging, get_settings, load_config
from .schemas import AppSettings, PipelineConfig

__all__ = [
    "AppSettings",
    "PipelineConfig",
    "get_settings",
    "load_config",
    "configure_logging",
    "LOG_FORMAT",
]
