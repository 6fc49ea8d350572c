"""
Vault secret backend.

Reads and writes secrets in a HashiCorp Vault KV version 2 engine:

    GET  /v1/{mount}/data/{key}   -> {"data": {"data": {...}, "metadata": {...}}}
    POST /v1/{mount}/data/{key}   <- {"data": {...}, "options": {"cas": n}}

Vault reports failures as ``{"errors": ["..."]}``; those messages are carried
on VaultError.errors.

Status handling:
    - 401/403: token missing, expired or denied by policy (not retried)
    - 404: no such secret; read() returns None
    - 412: node has not reached the requested index yet (retried)
    - 429: rate limit quota exceeded, honouring Retry-After (retried)
    - 503: sealed, or a standby with no active node (retried)
    - other 5xx: retried
    - other 4xx, including a check-and-set mismatch: not retried

A secret document may hold several fields. resolve() returns the configured
``field`` (default ``value``) when present, the only field of a one-field
document, or the whole document otherwise.
"""

from __future__ import annotations

import asyncio
import logging
import os
import random
from dataclasses import dataclass
from typing import Any

import httpx

from .base import SecretBackend, SecretValue
from .schemas import SecretOptions, VaultSettings

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class VaultError(Exception):
    """A request to Vault failed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        errors: list[str] | None = None,
        retryable: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.errors = list(errors or [])
        self.retryable = retryable

    def __str__(self) -> str:
        text = f"[vault] {self.args[0]}"
        if self.errors:
            text += ": " + "; ".join(self.errors)
        if self.status_code:
            text += f" (status={self.status_code})"
        return text


class VaultPermissionError(VaultError):
    """Token missing, expired or not allowed by policy."""


class VaultNotFoundError(VaultError):
    """No secret at the requested path."""


class VaultSealedError(VaultError):
    """Vault is sealed or has no active node."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, retryable=True, **kwargs)


class VaultConsistencyError(VaultError):
    """The node has not caught up with the requested index."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, retryable=True, **kwargs)


class VaultRateLimitError(VaultError):
    def __init__(self, message: str, *, retry_after: float | None = None, **kwargs):
        super().__init__(message, retryable=True, **kwargs)
        self.retry_after = retry_after


def _error_messages(response: httpx.Response) -> list[str]:
    try:
        payload = response.json()
    except ValueError:
        return [response.text] if response.text else []
    if isinstance(payload, dict):
        return [str(e) for e in payload.get("errors") or []]
    return []


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    try:
        return float(value) if value else None
    except ValueError:
        return None


def check_response(response: httpx.Response) -> None:
    """Raise the VaultError matching a failed response."""
    if response.is_success:
        return

    status = response.status_code
    errors = _error_messages(response)
    path = response.request.url.path

    if status in (401, 403):
        raise VaultPermissionError(f"Permission denied for {path}", status_code=status, errors=errors)
    if status == 404:
        raise VaultNotFoundError(f"No secret at {path}", status_code=status, errors=errors)
    if status == 412:
        raise VaultConsistencyError(f"Index not yet available for {path}", status_code=status, errors=errors)
    if status == 429:
        raise VaultRateLimitError(
            "Rate limit quota exceeded",
            status_code=status,
            errors=errors,
            retry_after=_retry_after(response),
        )
    if status == 503:
        raise VaultSealedError("Vault is sealed or unavailable", status_code=status, errors=errors)

    raise VaultError(
        f"{response.request.method} {path} failed",
        status_code=status,
        errors=errors,
        retryable=status >= 500,
    )


# =============================================================================
# Client
# =============================================================================


@dataclass(frozen=True, slots=True)
class VaultConfig:
    """Connection settings for one Vault server."""

    address: str = "http://127.0.0.1:8200"
    token: str | None = None
    namespace: str | None = None
    timeout: float = 10.0
    max_retries: int = 3
    retry_delay: float = 0.5
    max_delay: float = 10.0


class VaultClient:
    """KV v2 client over one lazily opened httpx.AsyncClient."""

    def __init__(self, config: VaultConfig, mount: str = "secret"):
        self.config = config
        self.mount = mount.strip("/")
        self._client: httpx.AsyncClient | None = None

    def _headers(self) -> dict[str, str]:
        headers = {"X-Vault-Request": "true"}
        if self.config.token:
            headers["X-Vault-Token"] = self.config.token
        if self.config.namespace:
            headers["X-Vault-Namespace"] = self.config.namespace
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.address,
                timeout=self.config.timeout,
                headers=self._headers(),
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    def _path(self, key: str) -> str:
        return f"/v1/{self.mount}/data/{key.strip('/')}"

    def _backoff(self, attempt: int, error: VaultError) -> float:
        if isinstance(error, VaultRateLimitError) and error.retry_after:
            return error.retry_after
        ceiling = min(self.config.max_delay, self.config.retry_delay * (2**attempt))
        return random.uniform(ceiling / 2, ceiling)

    async def _send(self, method: str, path: str, payload: dict[str, Any] | None) -> httpx.Response:
        try:
            response = await self._get_client().request(method, path, json=payload)
        except httpx.TimeoutException as e:
            raise VaultError(f"Timeout calling {path}: {e}", retryable=True) from e
        except httpx.NetworkError as e:
            raise VaultError(f"Cannot reach {self.config.address}: {e}", retryable=True) from e
        check_response(response)
        return response

    async def request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> httpx.Response:
        """
        Call Vault, retrying transient failures with backoff.

        Raises:
            VaultError: On a non-retryable failure or when retries run out
        """
        attempt = 0
        while True:
            try:
                return await self._send(method, path, payload)
            except VaultError as e:
                if not e.retryable or attempt >= self.config.max_retries:
                    raise
                delay = self._backoff(attempt, e)
                attempt += 1
                logger.info(f"[vault] {e}; retry {attempt}/{self.config.max_retries} in {delay:.2f}s")
                await asyncio.sleep(delay)

    async def read(self, key: str) -> dict[str, Any] | None:
        """Current version of a secret document, or None if absent."""
        try:
            response = await self.request("GET", self._path(key))
        except VaultNotFoundError:
            return None
        return (response.json().get("data") or {}).get("data")

    async def write(self, key: str, data: dict[str, Any], cas: int | None = None) -> int | None:
        """
        Write a new version of a secret document.

        Args:
            cas: Expected current version (0 to create only); None writes unconditionally

        Returns:
            The version created
        """
        payload: dict[str, Any] = {"data": data}
        if cas is not None:
            payload["options"] = {"cas": cas}
        response = await self.request("POST", self._path(key), payload)
        if not response.content:
            return None
        return (response.json().get("data") or {}).get("version")


# =============================================================================
# Backend
# =============================================================================


class VaultSecretBackend(SecretBackend):
    """Secret backend for a HashiCorp Vault KV v2 engine."""

    name = "vault"

    def __init__(self, manager=None, client: VaultClient | None = None) -> None:
        super().__init__(manager)
        self._client = client

    def _settings(self, options: SecretOptions) -> VaultSettings:
        return options.vault or VaultSettings()

    def client(self, options: SecretOptions) -> VaultClient:
        """Open the client once and reuse it."""
        if self._client is None:
            settings = self._settings(options)
            config = VaultConfig(
                address=settings.address,
                token=os.environ.get(settings.token_env),
                namespace=os.environ.get(settings.namespace_env),
                timeout=settings.timeout,
                max_retries=settings.max_retries,
                retry_delay=settings.retry_delay,
            )
            self._client = VaultClient(config, mount=settings.mount)
            logger.debug(f"[secrets:vault] Client created for {settings.address}")
        return self._client

    async def resolve(self, key: str, options: SecretOptions) -> SecretValue:
        document = await self.client(options).read(key)
        if document is None:
            logger.warning(f"[secrets:vault] Secret '{key}' not found")
            return None

        field = self._settings(options).field
        if field in document:
            return document[field]
        if len(document) == 1:
            return next(iter(document.values()))
        return document

    async def save(self, key: str, value: Any, options: SecretOptions) -> bool:
        data = value if isinstance(value, dict) else {self._settings(options).field: value}
        version = await self.client(options).write(key, data)
        logger.debug(f"[secrets:vault] Stored '{key}' (version={version})")
        return True

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
