"""
Variable Resolver.

Turns a list of variable descriptors into one flat mapping for a component.

Strategies:
    value / absent  -> the literal value
    environment     -> os.environ[value or name], else default
    reference       -> scope[value or name], else default
    secret          -> SecretManager.resolve(value or name), else default
    protected       -> same as secret

Descriptors of one list are independent, so they resolve concurrently; the
merge follows input order and a repeated name keeps the last value.

Secret failures never escape: they are logged and degrade to the default.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import TYPE_CHECKING, Any, Mapping

from .schemas import VariableDescriptor, VariableType, as_variable_list

if TYPE_CHECKING:
    from iacpipe.ioc import Registry
    from iacpipe.secrets import SecretManager

logger = logging.getLogger(__name__)

SECRET_MANAGER_KEY = "secret:manager"


class VariableResolver:
    """
    Resolves component inputs against a scope.

    Registered as ``variable:resolver``. The secret manager is passed in, or
    looked up lazily from the injected registry.
    """

    def __init__(
        self,
        dependencies: Mapping[str, Any] | None = None,
        *,
        secrets: SecretManager | None = None,
    ) -> None:
        dependencies = dependencies or {}
        self.registry: Registry | None = dependencies.get("registry")
        self._secrets = secrets or dependencies.get(SECRET_MANAGER_KEY) or dependencies.get("secrets")

    async def secrets(self) -> SecretManager | None:
        if self._secrets is None and self.registry is not None:
            self._secrets = await self.registry.get(SECRET_MANAGER_KEY)
        return self._secrets

    async def process(
        self,
        descriptors: list[Any] | dict[str, Any] | None,
        scope: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Resolve every descriptor and merge the results.

        Args:
            descriptors: List or {name: descriptor} map
            scope: Outputs of earlier components

        Returns:
            {name: value} in input order
        """
        items = as_variable_list(descriptors)
        if not items:
            return {}

        scope = scope or {}
        values = await asyncio.gather(*(self.resolve(item, scope) for item in items))

        resolved: dict[str, Any] = {}
        for item, value in zip(items, values):
            resolved[item.name] = value
        return resolved

    async def resolve(self, descriptor: VariableDescriptor, scope: Mapping[str, Any]) -> Any:
        """Resolve one descriptor."""
        kind = descriptor.kind

        if kind == VariableType.VALUE:
            return descriptor.value

        if kind == VariableType.ENVIRONMENT:
            value = os.environ.get(descriptor.source_key)
        elif kind == VariableType.REFERENCE:
            value = scope.get(descriptor.source_key)
        else:
            value = await self._resolve_secret(descriptor)

        return descriptor.default if value is None else value

    async def _resolve_secret(self, descriptor: VariableDescriptor) -> Any:
        key = descriptor.source_key
        try:
            secrets = await self.secrets()
            if secrets is None:
                logger.warning(f"[variables] No secret manager available for '{descriptor.name}'")
                return None
            return await secrets.resolve(key)
        except Exception as e:
            logger.warning(
                f"[variables] Secret '{key}' for '{descriptor.name}' failed, using default: {e}"
            )
            return None
