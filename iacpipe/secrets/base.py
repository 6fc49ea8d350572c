"""
Secret backend contract.

A backend turns a key into a secret value and stores values under keys.
Backends are selected by the SecretManager facade from ``SecretOptions.type``.

Contract:
    - resolve() returns None when the key does not exist
    - resolve() may raise on transport or decryption failures; the facade
      logs them and falls back to the process environment
    - save() returns True when the value was stored
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .manager import SecretManager
    from .schemas import SecretOptions

SecretValue = str | int | float | bool | dict[str, Any] | None


class SecretBackend(ABC):
    """Base class for secret backends."""

    name: str = ""

    def __init__(self, manager: SecretManager | None = None) -> None:
        self.manager = manager

    @abstractmethod
    async def resolve(self, key: str, options: SecretOptions) -> SecretValue:
        """Return the secret stored under key, or None."""
        ...

    @abstractmethod
    async def save(self, key: str, value: Any, options: SecretOptions) -> bool:
        """Store value under key."""
        ...

    async def close(self) -> None:
        """Release connections held by the backend."""
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"
