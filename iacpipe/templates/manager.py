"""
Template Manager facade.

Registered as ``template:manager``. Picks a store by ``options.type``:
    1. ``template:manager:<type>`` registered in the Registry
    2. Built-in stores: file, memory, mdb

Store instances are created once per type and store settings (``file``
or ``mdb``) and reused, so per-call options that point elsewhere get a store
of their own.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Mapping

from pydantic import ValidationError

from iacpipe.errors import ConfigurationError

from .schemas import PipelineTemplate, TemplateOptions
from .stores import FileTemplateStore, MemoryTemplateStore, MongoTemplateStore, TemplateStore

if TYPE_CHECKING:
    from iacpipe.ioc import Registry
    from iacpipe.secrets import SecretManager

logger = logging.getLogger(__name__)

STORE_KEY_PREFIX = "template:manager"

BUILTIN_STORES: dict[str, type[TemplateStore]] = {
    FileTemplateStore.name: FileTemplateStore,
    MemoryTemplateStore.name: MemoryTemplateStore,
    MongoTemplateStore.name: MongoTemplateStore,
}


class TemplateManager:
    """
    Loads, saves, deletes and lists pipeline templates.

    Example:
        manager = TemplateManager({"type": "file", "file": {"path": "templates"}})
        template = await manager.load("demo")
        names = await manager.list()
    """

    def __init__(
        self,
        options: TemplateOptions | Mapping[str, Any] | None = None,
        dependencies: Mapping[str, Any] | None = None,
    ) -> None:
        self.options = self._to_options(options) or TemplateOptions()
        self.registry: Registry | None = (dependencies or {}).get("registry")
        self._secrets: SecretManager | None = (dependencies or {}).get("secret:manager")
        self._stores: dict[str, TemplateStore] = {}

    @staticmethod
    def _to_options(options: TemplateOptions | Mapping[str, Any] | None) -> TemplateOptions | None:
        if options is None or isinstance(options, TemplateOptions):
            return options
        try:
            return TemplateOptions.model_validate(dict(options))
        except ValidationError as e:
            raise ConfigurationError(f"Invalid template options: {e}") from e

    async def secrets(self) -> SecretManager | None:
        if self._secrets is None and self.registry is not None:
            self._secrets = await self.registry.get("secret:manager")
        return self._secrets

    @staticmethod
    def _store_key(options: TemplateOptions) -> str:
        location = options.model_dump_json(include={"file", "mdb"}, exclude_none=True)
        return f"{options.store_type}:{location}"

    async def store(self, options: TemplateOptions | None = None) -> TemplateStore:
        """Store for the given options, defaulting to the configured ones."""
        options = options or self.options
        store_type = options.store_type
        cache_key = self._store_key(options)
        if cache_key in self._stores:
            return self._stores[cache_key]

        store = None
        key = f"{STORE_KEY_PREFIX}:{store_type}"
        if self.registry is not None and self.registry.has(key):
            store = await self.registry.resolve(key)

        if store is None:
            store_cls = BUILTIN_STORES.get(store_type)
            if store_cls is None:
                raise ConfigurationError(f"Unsupported template store type: {store_type}")
            store = store_cls(options, manager=self)

        self._stores[cache_key] = store
        return store

    def _merge(self, options: TemplateOptions | Mapping[str, Any] | None) -> TemplateOptions:
        if options is None:
            return self.options
        if isinstance(options, TemplateOptions):
            return options
        merged = {**self.options.model_dump(exclude_none=True), **dict(options)}
        return self._to_options(merged)

    async def load(
        self,
        name: str,
        options: TemplateOptions | Mapping[str, Any] | None = None,
    ) -> PipelineTemplate:
        """
        Load and validate a template.

        Raises:
            TemplateNotFoundError: If the store has no such template
            ConfigurationError: If the document is not a valid template
        """
        options = self._merge(options)
        store = await self.store(options)
        logger.info(f"[template] Loading template '{name}' from {store.name} (flow={options.flow})")

        document = await store.load(name)
        document.setdefault("name", name)
        try:
            return PipelineTemplate.model_validate(document)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid template '{name}': {e}") from e

    async def save(
        self,
        name: str,
        template: PipelineTemplate | Mapping[str, Any],
        options: TemplateOptions | Mapping[str, Any] | None = None,
    ) -> bool:
        options = self._merge(options)
        store = await self.store(options)

        if isinstance(template, PipelineTemplate):
            document = template.to_document()
        else:
            document = dict(template)

        saved = await store.save(name, document)
        logger.info(f"[template] Template '{name}' saved={saved} ({store.name})")
        return saved

    async def delete(
        self,
        name: str,
        options: TemplateOptions | Mapping[str, Any] | None = None,
    ) -> bool:
        store = await self.store(self._merge(options))
        deleted = await store.delete(name)
        logger.info(f"[template] Template '{name}' deleted={deleted} ({store.name})")
        return deleted

    async def list(self, options: TemplateOptions | Mapping[str, Any] | None = None) -> list[str]:
        store = await self.store(self._merge(options))
        names = await store.list()
        logger.info(f"[template] Listed {len(names)} templates ({store.name})")
        return names

    async def close(self) -> None:
        for store in list(self._stores.values()):
            await store.close()
        self._stores.clear()
