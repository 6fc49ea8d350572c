"""
Encrypted document-store secret backend.

Secrets live in a MongoDB collection as ``{key, value, encrypted}`` documents.
Encrypted values are decrypted with client-side field level encryption.

Encryption context:
    - Key vault namespace: ``<database>.keyVault``
    - KMS providers: ``local`` from the base64 ``LOCAL_MASTER_KEY`` variable,
      plus ``aws`` when ``secretSource`` is ``cloud`` and cloud credentials exist
    - Client and encryption handle are opened on first use, reused for every
      later call and released only by close()

The connection string is itself a secret: ``mdb.uri`` names the key that the
SecretManager facade resolves (normally an environment variable).
"""

from __future__ import annotations

import asyncio
import base64
import logging
import os
from datetime import UTC, datetime
from typing import Any

from iacpipe.errors import ConfigurationError

from .base import SecretBackend, SecretValue
from .schemas import MongoSecretSettings, SecretOptions

logger = logging.getLogger(__name__)

LOCAL_MASTER_KEY_ENV = "LOCAL_MASTER_KEY"


class MongoSecretBackend(SecretBackend):
    """Secret backend for an encrypted-field MongoDB collection."""

    name = "mdb"

    def __init__(self, manager=None) -> None:
        super().__init__(manager)
        self._client = None
        self._encryption = None
        self._kms_providers: dict[str, dict[str, Any]] | None = None
        self._connect_lock = asyncio.Lock()

    # =========================================================================
    # Connection management
    # =========================================================================

    @staticmethod
    def _settings(options: SecretOptions) -> MongoSecretSettings:
        if options.mdb is None:
            raise ConfigurationError("MongoDB configuration is missing in secret options")
        return options.mdb

    @staticmethod
    def kms_providers(options: SecretOptions) -> dict[str, dict[str, Any]]:
        """KMS provider map for the configured secret source."""
        local_key = base64.b64decode(os.environ.get(LOCAL_MASTER_KEY_ENV, ""))
        providers: dict[str, dict[str, Any]] = {"local": {"key": local_key}}

        settings = options.mdb
        if options.cloud and settings and settings.secret_source == "cloud":
            access_key_id, secret_access_key = options.cloud.credentials()
            if access_key_id and secret_access_key:
                providers["aws"] = {
                    "accessKeyId": access_key_id,
                    "secretAccessKey": secret_access_key,
                }

        return providers

    async def _resolve_uri(self, reference: str) -> str:
        uri = None
        if self.manager is not None:
            # Looked up in the environment backend; this backend is not open yet
            uri = await self.manager.resolve(reference, {"type": "env"})
        else:
            uri = os.environ.get(reference)

        if not uri:
            if reference.startswith(("mongodb://", "mongodb+srv://")):
                return reference
            raise ConfigurationError(f"MongoDB URI '{reference}' could not be resolved")
        return str(uri)

    async def connect(self, options: SecretOptions) -> None:
        """Open the client and the encryption handle if not open yet."""
        settings = self._settings(options)

        async with self._connect_lock:
            if self._client is None:
                from motor.motor_asyncio import AsyncIOMotorClient

                uri = await self._resolve_uri(settings.uri)
                self._client = AsyncIOMotorClient(uri)
                logger.info(f"[secrets:mdb] Connected to MongoDB: {settings.database}")

            if self._encryption is None:
                from bson.codec_options import CodecOptions
                from motor.motor_asyncio import AsyncIOMotorClientEncryption

                self._kms_providers = self.kms_providers(options)
                try:
                    self._encryption = AsyncIOMotorClientEncryption(
                        self._kms_providers,
                        settings.key_vault_namespace,
                        self._client,
                        CodecOptions(),
                    )
                except Exception as e:
                    # Plain values stay readable without an encryption handle
                    logger.warning(f"[secrets:mdb] Field level encryption unavailable: {e}")

    async def close(self) -> None:
        if self._encryption is not None:
            await self._encryption.close()
            self._encryption = None
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("[secrets:mdb] Disconnected from MongoDB")

    def _collection(self, settings: MongoSecretSettings):
        return self._client[settings.database][settings.collection]

    # =========================================================================
    # Backend contract
    # =========================================================================

    async def resolve(self, key: str, options: SecretOptions) -> SecretValue:
        settings = self._settings(options)
        await self.connect(options)

        document = await self._collection(settings).find_one({"key": key})
        if not document:
            logger.warning(f"[secrets:mdb] Secret '{key}' not found in collection '{settings.collection}'")
            return None

        value = document.get("value")
        if document.get("encrypted"):
            if self._encryption is None:
                raise ConfigurationError(f"Secret '{key}' is encrypted but encryption is unavailable")
            value = await self._encryption.decrypt(value)
        return value

    async def save(self, key: str, value: Any, options: SecretOptions) -> bool:
        settings = self._settings(options)
        await self.connect(options)

        encrypted = False
        if settings.key_alt_name and self._encryption is not None:
            from pymongo.encryption import Algorithm

            value = await self._encryption.encrypt(
                value,
                Algorithm.AEAD_AES_256_CBC_HMAC_SHA_512_Deterministic,
                key_alt_name=settings.key_alt_name,
            )
            encrypted = True

        now = datetime.now(UTC)
        await self._collection(settings).update_one(
            {"key": key},
            {
                "$set": {"value": value, "encrypted": encrypted, "updatedAt": now},
                "$setOnInsert": {"createdAt": now},
            },
            upsert=True,
        )
        logger.debug(f"[secrets:mdb] Stored '{key}' (encrypted={encrypted})")
        return True
