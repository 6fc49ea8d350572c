"""
Secret Manager facade.

Single trust boundary for secrets: "give me this secret; you may get None and
must supply your own default."

Backend selection by ``options.type``:
    1. ``secret:manager:<type>`` registered in the Registry
    2. Built-in backends: env, vault, mdb

Backend instances are created once per type and reused. When a backend
returns nothing or fails, the facade falls back to the process environment.

Usage:
    manager = SecretManager({"type": "vault", "vault": {"mount": "kv"}})
    token = await manager.resolve("deploy/token")
    await manager.save("deploy/token", "s3cret")
    await manager.close()
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any, Mapping

from pydantic import ValidationError

from iacpipe.errors import ConfigurationError

from .base import SecretBackend, SecretValue
from .env import EnvSecretBackend
from .mongo import MongoSecretBackend
from .schemas import SecretOptions
from .vault import VaultSecretBackend

if TYPE_CHECKING:
    from iacpipe.ioc import Registry

logger = logging.getLogger(__name__)

BACKEND_KEY_PREFIX = "secret:manager"

BUILTIN_BACKENDS: dict[str, type[SecretBackend]] = {
    EnvSecretBackend.name: EnvSecretBackend,
    VaultSecretBackend.name: VaultSecretBackend,
    MongoSecretBackend.name: MongoSecretBackend,
}


def _to_options(options: SecretOptions | Mapping[str, Any] | None) -> SecretOptions | None:
    if options is None or isinstance(options, SecretOptions):
        return options
    try:
        return SecretOptions.model_validate(dict(options))
    except ValidationError as e:
        raise ConfigurationError(f"Invalid secret options: {e}") from e


class SecretManager:
    """
    Facade over pluggable secret backends.

    Registered as ``secret:manager``; the registry is injected through the
    dependencies mapping.
    """

    def __init__(
        self,
        options: SecretOptions | Mapping[str, Any] | None = None,
        dependencies: Mapping[str, Any] | None = None,
    ) -> None:
        self.options = _to_options(options) or SecretOptions()
        self.registry: Registry | None = (dependencies or {}).get("registry")
        self._backends: dict[str, SecretBackend] = {}

    async def backend(self, backend_type: str) -> SecretBackend:
        """
        Backend instance for a type.

        Raises:
            ConfigurationError: If no backend is known for the type
        """
        backend_type = backend_type.strip().lower()
        if backend_type in self._backends:
            return self._backends[backend_type]

        backend = None
        key = f"{BACKEND_KEY_PREFIX}:{backend_type}"
        if self.registry is not None and self.registry.has(key):
            backend = await self.registry.resolve(key)

        if backend is None:
            backend_cls = BUILTIN_BACKENDS.get(backend_type)
            if backend_cls is None:
                raise ConfigurationError(f"Unsupported secret backend type: {backend_type}")
            backend = backend_cls(manager=self)

        self._backends[backend_type] = backend
        logger.debug(f"[secrets] Using backend '{backend_type}': {backend!r}")
        return backend

    async def resolve(
        self,
        key: str,
        options: SecretOptions | Mapping[str, Any] | None = None,
    ) -> SecretValue:
        """Resolve a secret, falling back to os.environ[key]."""
        value = await self._backend_value(key, _to_options(options) or self.options)
        if value is None:
            value = os.environ.get(key)
        return value

    async def _backend_value(self, key: str, options: SecretOptions) -> SecretValue:
        try:
            backend = await self.backend(options.backend_type)
            return await backend.resolve(key, options)
        except Exception as e:
            logger.warning(f"[secrets] Failed to resolve '{key}' with backend '{options.type}': {e}")
            return None

    async def save(
        self,
        key: str,
        value: Any,
        options: SecretOptions | Mapping[str, Any] | None = None,
    ) -> bool:
        """Store a secret; False when the backend fails."""
        options = _to_options(options) or self.options
        try:
            backend = await self.backend(options.backend_type)
            saved = bool(await backend.save(key, value, options))
        except Exception as e:
            logger.error(f"[secrets] Failed to save '{key}' with backend '{options.type}': {e}")
            return False

        logger.info(f"[secrets] Secret '{key}' saved={saved}")
        return saved

    async def close(self) -> None:
        """Close every backend that holds a connection."""
        for backend_type, backend in list(self._backends.items()):
            try:
                await backend.close()
            except Exception as e:
                logger.warning(f"[secrets] Error closing backend '{backend_type}': {e}")
        self._backends.clear()
