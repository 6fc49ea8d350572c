"""
Secret backend options.

Example (JSON):
    {
        "type": "mdb",
        "cloud": {"region": "us-east-1"},
        "mdb": {"database": "iacpipe", "collection": "secrets",
                "uri": "MDB_URI", "secretSource": "local"}
    }

The ``mdb.uri`` field names a secret (usually an environment variable) that
holds the connection string; it is resolved through the secret facade.
"""

from __future__ import annotations

import os

from pydantic import BaseModel, Field


class CloudSettings(BaseModel):
    """Cloud credentials used for KMS providers."""

    region: str | None = None
    access_key_id: str | None = Field(default=None, alias="accessKeyId")
    secret_access_key: str | None = Field(default=None, alias="secretAccessKey")

    class Config:
        populate_by_name = True
        extra = "allow"

    def credentials(self) -> tuple[str | None, str | None]:
        """Access key pair, falling back to the standard AWS variables."""
        return (
            self.access_key_id or os.environ.get("AWS_ACCESS_KEY_ID"),
            self.secret_access_key or os.environ.get("AWS_SECRET_ACCESS_KEY"),
        )


class VaultSettings(BaseModel):
    """HashiCorp Vault KV v2 connection settings."""

    url: str | None = None
    mount: str = "secret"
    field: str = "value"
    token_env: str = Field(default="VAULT_TOKEN", alias="tokenEnv")
    namespace_env: str = Field(default="VAULT_NAMESPACE", alias="namespaceEnv")
    timeout: float = 10.0
    max_retries: int = Field(default=3, alias="maxRetries")
    retry_delay: float = Field(default=0.5, alias="retryDelay")

    class Config:
        populate_by_name = True
        extra = "allow"

    @property
    def address(self) -> str:
        return self.url or os.environ.get("VAULT_ADDR", "http://127.0.0.1:8200")


class MongoSecretSettings(BaseModel):
    """Encrypted document store settings."""

    enabled: bool = True
    database: str = "iacpipe"
    collection: str = "secrets"
    uri: str = "MDB_URI"
    secret_source: str = Field(default="local", alias="secretSource")
    key_alt_name: str | None = Field(default=None, alias="keyAltName")

    class Config:
        populate_by_name = True
        extra = "allow"

    @property
    def key_vault_namespace(self) -> str:
        return f"{self.database}.keyVault"


class SecretOptions(BaseModel):
    """
    Secret facade configuration.

    Attributes:
        type: Backend discriminator (env, vault, mdb or a registered name)
        cloud: Cloud credentials
        vault: Vault settings
        mdb: Document store settings
    """

    type: str = "env"
    cloud: CloudSettings | None = None
    vault: VaultSettings | None = None
    mdb: MongoSecretSettings | None = None

    class Config:
        populate_by_name = True
        extra = "allow"

    @property
    def backend_type(self) -> str:
        return self.type.strip().lower()
