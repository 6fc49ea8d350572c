"""
Service wiring for iacpipe.

Builds the default registry entries and a configured PipelineManager.

Architecture:
    Registry
    ├── registry            -> the Registry itself
    ├── secret:manager      -> SecretManager(config.secret, {registry})
    ├── template:manager    -> TemplateManager(config.template, {registry})
    ├── variable:resolver   -> VariableResolver({registry})
    └── <components>        -> declared in config.dependencies

Entries declared in the configuration document win over the defaults because
they are registered first and registration is idempotent.

Usage:
    manager = create_pipeline_manager("cfg/config.json")
    result = await manager.deploy({"template": "demo", "stack": "dev"})
    await shutdown_services(manager.registry)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

from pydantic import ValidationError

from iacpipe.config import PipelineConfig, get_settings, load_config
from iacpipe.errors import ConfigurationError
from iacpipe.ioc import Registry
from iacpipe.secrets import SecretManager, SecretOptions
from iacpipe.templates import TemplateManager, TemplateOptions
from iacpipe.variables import VariableResolver

from .manager import TEMPLATE_MANAGER_KEY, VARIABLE_RESOLVER_KEY, PipelineManager

logger = logging.getLogger(__name__)

SECRET_MANAGER_KEY = "secret:manager"

_REGISTRY_REF = [{"key": "registry"}]


def _service_options(config: PipelineConfig) -> tuple[SecretOptions, TemplateOptions]:
    """Secret and template options, taken from IACPIPE_* settings when the document has none."""
    settings = get_settings()
    secret = config.secret if "secret" in config.model_fields_set else settings.secret_options()
    template = config.template if "template" in config.model_fields_set else settings.template_options()
    return secret, template


def default_dependencies(config: PipelineConfig | None = None) -> list[dict[str, Any]]:
    """Descriptors for the built-in services."""
    secret, template = _service_options(config or PipelineConfig())
    return [
        {
            "key": SECRET_MANAGER_KEY,
            "target": SecretManager,
            "lifetime": "singleton",
            "args": [secret],
            "dependencies": _REGISTRY_REF,
        },
        {
            "key": TEMPLATE_MANAGER_KEY,
            "target": TemplateManager,
            "lifetime": "singleton",
            "args": [template],
            "dependencies": _REGISTRY_REF,
        },
        {
            "key": VARIABLE_RESOLVER_KEY,
            "target": VariableResolver,
            "lifetime": "singleton",
            "dependencies": _REGISTRY_REF,
        },
    ]


def create_pipeline_manager(
    config: PipelineConfig | Mapping[str, Any] | str | Path | None = None,
    registry: Registry | None = None,
) -> PipelineManager:
    """
    Create a configured PipelineManager with the built-in services.

    Args:
        config: Configuration document, or the path of one
        registry: Existing registry to populate (a new one by default)

    Raises:
        ConfigurationError: If the configuration cannot be loaded or registered
    """
    if isinstance(config, (str, Path)):
        config = load_config(config)
    elif config is None:
        config = PipelineConfig()
    elif not isinstance(config, PipelineConfig):
        try:
            config = PipelineConfig.model_validate(dict(config))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    manager = PipelineManager(registry=registry if registry is not None else Registry())
    manager.configure(config)
    manager.registry.register(default_dependencies(config))

    logger.info(f"[factory] Pipeline manager ready (keys={manager.registry.keys()})")
    return manager


async def shutdown_services(registry: Registry) -> None:
    """Close the connections held by constructed services."""
    for key in (TEMPLATE_MANAGER_KEY, SECRET_MANAGER_KEY):
        service = registry.cached(key)
        close = getattr(service, "close", None)
        if close is None:
            continue
        try:
            await close()
            logger.info(f"[factory] Closed {key}")
        except Exception as e:
            logger.warning(f"[factory] Error closing {key}: {e}")
