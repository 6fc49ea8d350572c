"""
Template Stores.

Storage backends behind the TemplateManager facade.

Design Principle:
    Start simple, scale as needed.
    - Development: FileTemplateStore (one JSON file per template)
    - Testing: MemoryTemplateStore (in-memory)
    - Production: MongoTemplateStore (one document per template)

Every store speaks raw documents (dicts); validation into PipelineTemplate
happens in the facade.

Usage:
    store = FileTemplateStore("templates/")
    await store.save("demo", {"name": "demo", "engine": "local", "components": []})
    document = await store.load("demo")
"""

from __future__ import annotations

import json
import logging
import os
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from iacpipe.errors import ConfigurationError, TemplateNotFoundError

from .schemas import MongoStoreSettings, TemplateOptions

if TYPE_CHECKING:
    from .manager import TemplateManager

logger = logging.getLogger(__name__)

DEFAULT_VERSION = "1.0.0"


def _stamp(name: str, document: dict[str, Any]) -> dict[str, Any]:
    return {
        **document,
        "name": name,
        "lastModified": datetime.now(UTC).isoformat(),
        "version": document.get("version") or DEFAULT_VERSION,
    }


class TemplateStore(ABC):
    """Storage contract for template documents."""

    name: str = ""

    def __init__(self, options: TemplateOptions | None = None, manager: TemplateManager | None = None):
        self.options = options or TemplateOptions()
        self.manager = manager

    @abstractmethod
    async def load(self, name: str) -> dict[str, Any]:
        """Return the template document, raising TemplateNotFoundError if absent."""
        ...

    @abstractmethod
    async def save(self, name: str, document: dict[str, Any]) -> bool:
        ...

    @abstractmethod
    async def delete(self, name: str) -> bool:
        ...

    @abstractmethod
    async def list(self) -> list[str]:
        """Sorted template names."""
        ...

    async def close(self) -> None:
        return None


class FileTemplateStore(TemplateStore):
    """
    One ``<name>.json`` file per template.

    Directory: ``options.file.path``, else ``IACPIPE_TEMPLATE_PATH``, else
    ``./templates``. Writes go to a temporary file renamed into place.
    """

    name = "file"

    def __init__(
        self,
        options: TemplateOptions | None = None,
        manager: TemplateManager | None = None,
        *,
        base_dir: str | Path | None = None,
    ):
        super().__init__(options, manager)
        self._base_dir = Path(base_dir) if base_dir is not None else None

    @property
    def base_dir(self) -> Path:
        return self._base_dir or Path(self.options.file.directory)

    def _path(self, name: str) -> Path:
        return self.base_dir / f"{name}.json"

    async def load(self, name: str) -> dict[str, Any]:
        path = self._path(name)
        if not path.is_file():
            raise TemplateNotFoundError(name, str(path))

        try:
            with path.open(encoding="utf-8") as f:
                document = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in template {name}: {e}") from e

        logger.info(f"[template:file] Loaded template: {path}")
        return document

    async def save(self, name: str, document: dict[str, Any]) -> bool:
        path = self._path(name)
        tmp_path = path.with_name(f"{path.name}.tmp")
        path.parent.mkdir(parents=True, exist_ok=True)

        try:
            with tmp_path.open("w", encoding="utf-8") as f:
                json.dump(_stamp(name, document), f, indent=2, default=str)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            tmp_path.unlink(missing_ok=True)
            raise ConfigurationError(f"Failed to save template {name}: {e}") from e

        logger.info(f"[template:file] Saved template: {path}")
        return True

    async def delete(self, name: str) -> bool:
        path = self._path(name)
        if not path.is_file():
            raise TemplateNotFoundError(name, str(path))
        path.unlink()
        logger.info(f"[template:file] Deleted template: {path}")
        return True

    async def list(self) -> list[str]:
        if not self.base_dir.is_dir():
            raise ConfigurationError(f"Template directory not found: {self.base_dir}")
        return sorted(p.stem for p in self.base_dir.glob("*.json"))


class MemoryTemplateStore(TemplateStore):
    """
    In-memory template store for testing.

    Usage:
        store = MemoryTemplateStore()
        await store.save("demo", {...})
    """

    name = "memory"

    def __init__(self, options: TemplateOptions | None = None, manager: TemplateManager | None = None):
        super().__init__(options, manager)
        self._documents: dict[str, dict[str, Any]] = {}

    async def load(self, name: str) -> dict[str, Any]:
        if name not in self._documents:
            raise TemplateNotFoundError(name, self.name)
        return dict(self._documents[name])

    async def save(self, name: str, document: dict[str, Any]) -> bool:
        self._documents[name] = _stamp(name, document)
        return True

    async def delete(self, name: str) -> bool:
        if self._documents.pop(name, None) is None:
            raise TemplateNotFoundError(name, self.name)
        return True

    async def list(self) -> list[str]:
        return sorted(self._documents)

    def clear(self) -> None:
        self._documents.clear()


class MongoTemplateStore(TemplateStore):
    """
    One MongoDB document per template, keyed by ``name``.

    The connection string is resolved through the ``secret:manager`` service
    (``mdb.uri`` names the secret); the client is opened once and reused.
    """

    name = "mdb"

    def __init__(self, options: TemplateOptions | None = None, manager: TemplateManager | None = None):
        super().__init__(options, manager)
        self._client = None

    @property
    def settings(self) -> MongoStoreSettings:
        if self.options.mdb is None:
            raise ConfigurationError("MongoDB configuration is missing in template options")
        return self.options.mdb

    async def _resolve_uri(self) -> str:
        reference = self.settings.uri
        secrets = await self.manager.secrets() if self.manager is not None else None
        uri = await secrets.resolve(reference) if secrets is not None else os.environ.get(reference)
        if not uri:
            if reference.startswith(("mongodb://", "mongodb+srv://")):
                return reference
            raise ConfigurationError(f"MongoDB URI '{reference}' could not be resolved")
        return str(uri)

    async def connect(self) -> None:
        if self._client is not None:
            return

        from motor.motor_asyncio import AsyncIOMotorClient

        self._client = AsyncIOMotorClient(await self._resolve_uri())
        logger.info(f"[template:mdb] Connected to MongoDB: {self.settings.database}")

    async def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("[template:mdb] Disconnected from MongoDB")

    async def _collection(self):
        await self.connect()
        settings = self.settings
        return self._client[settings.database][settings.collection]

    async def load(self, name: str) -> dict[str, Any]:
        collection = await self._collection()
        document = await collection.find_one({"name": name})
        if not document:
            raise TemplateNotFoundError(name, self.name)
        document.pop("_id", None)
        return document

    async def save(self, name: str, document: dict[str, Any]) -> bool:
        collection = await self._collection()
        fields = _stamp(name, document)
        fields.pop("_id", None)
        fields.pop("createdAt", None)

        result = await collection.update_one(
            {"name": name},
            {"$set": fields, "$setOnInsert": {"createdAt": datetime.now(UTC)}},
            upsert=True,
        )
        action = "created" if result.upserted_id is not None else "updated"
        logger.info(f"[template:mdb] Template '{name}' {action}")
        return bool(result.acknowledged)

    async def delete(self, name: str) -> bool:
        collection = await self._collection()
        result = await collection.delete_one({"name": name})
        if result.deleted_count == 0:
            raise TemplateNotFoundError(name, self.name)
        return True

    async def list(self) -> list[str]:
        collection = await self._collection()
        names = await collection.distinct("name")
        return sorted(names)
