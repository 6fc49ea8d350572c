"""Process environment secret backend."""

from __future__ import annotations

import logging
import os
from typing import Any

from .base import SecretBackend, SecretValue
from .schemas import SecretOptions

logger = logging.getLogger(__name__)


class EnvSecretBackend(SecretBackend):
    """Reads and writes secrets as environment variables of this process."""

    name = "env"

    async def resolve(self, key: str, options: SecretOptions) -> SecretValue:
        return os.environ.get(key)

    async def save(self, key: str, value: Any, options: SecretOptions) -> bool:
        os.environ[key] = str(value)
        logger.debug(f"[secrets:env] Stored '{key}' in process environment")
        return True
