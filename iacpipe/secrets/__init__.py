"""
Secret abstraction for iacpipe.

Exports:
    - SecretManager: facade selecting a backend by configured type
    - SecretBackend: backend contract
    - EnvSecretBackend, VaultSecretBackend, MongoSecretBackend: built-in backends
    - SecretOptions: backend configuration
"""

from .base import SecretBackend, SecretValue
from .env import EnvSecretBackend
from .manager import BUILTIN_BACKENDS, SecretManager
from .mongo import MongoSecretBackend
from .schemas import CloudSettings, MongoSecretSettings, SecretOptions, VaultSettings
from .vault import (
    VaultClient,
    VaultConfig,
    VaultError,
    VaultNotFoundError,
    VaultPermissionError,
    VaultSealedError,
    VaultSecretBackend,
)

__all__ = [
    "SecretManager",
    "SecretBackend",
    "SecretValue",
    "BUILTIN_BACKENDS",
    "EnvSecretBackend",
    "VaultSecretBackend",
    "VaultClient",
    "MongoSecretBackend",
    "SecretOptions",
    "CloudSettings",
    "VaultSettings",
    "MongoSecretSettings",
    "VaultConfig",
    "VaultError",
    "VaultPermissionError",
    "VaultSealedError",
    "VaultNotFoundError",
]
