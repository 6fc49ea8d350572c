"""
Tests for pipeline templates and template stores.

Tests for:
- Template schema (components normalisation, variable lists, settings)
- FileTemplateStore (load, save, delete, list, atomic writes)
- MemoryTemplateStore
- MongoTemplateStore (mocked collection)
- TemplateManager facade (store selection, validation, option merging)
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from iacpipe.errors import ConfigurationError, TemplateNotFoundError
from iacpipe.templates import (
    TEMPLATE_PATH_ENV,
    FileTemplateStore,
    MemoryTemplateStore,
    MongoTemplateStore,
    PipelineTemplate,
    TemplateManager,
    TemplateOptions,
)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def file_options(template_dir):
    return TemplateOptions(type="file", file={"path": str(template_dir)})


@pytest.fixture
def file_manager(template_dir):
    return TemplateManager({"type": "file", "file": {"path": str(template_dir)}})


# =============================================================================
# Schema
# =============================================================================


class TestPipelineTemplate:
    """Tests for template validation."""

    def test_stack_components(self, demo_template):
        template = PipelineTemplate.model_validate(demo_template)

        assert [c.name for c in template.components] == ["DemoFirst", "DemoSecond"]
        assert template.stack.orchestrator == "Node"

    def test_top_level_components_moved_into_stack(self):
        template = PipelineTemplate.model_validate(
            {"name": "flat", "engine": "local", "components": [{"name": "A"}, {"name": "B"}]}
        )

        assert [c.name for c in template.components] == ["A", "B"]
        assert template.to_document()["stack"]["components"][0]["name"] == "A"

    def test_variable_lists_accept_maps(self):
        template = PipelineTemplate.model_validate(
            {"name": "t", "components": [{"name": "A", "input": {"region": {"value": "eu"}}}]}
        )

        spec = template.components[0]
        assert spec.variables("input")[0].name == "region"
        assert spec.variables("setup") == []

    def test_unknown_variable_list(self):
        template = PipelineTemplate.model_validate({"name": "t", "components": [{"name": "A"}]})

        with pytest.raises(ValueError):
            template.components[0].variables("teardown")

    def test_component_settings(self):
        template = PipelineTemplate.model_validate(
            {"name": "t", "components": [{"name": "A", "image": "nginx", "replicas": 2}]}
        )

        assert template.components[0].settings == {"image": "nginx", "replicas": 2}

    def test_deployment_mode_alias(self):
        template = PipelineTemplate.model_validate({"name": "t", "deploymentMode": "async"})

        assert template.deployment_mode == "async"
        assert template.version == "1.0.0"


# =============================================================================
# File store
# =============================================================================


class TestFileTemplateStore:
    """Tests for FileTemplateStore."""

    @pytest.mark.asyncio
    async def test_save_and_load(self, file_options, demo_template, template_dir):
        store = FileTemplateStore(file_options)

        assert await store.save("demo", demo_template) is True
        document = await store.load("demo")

        assert document["name"] == "demo"
        assert document["stack"] == demo_template["stack"]
        assert "lastModified" in document
        assert (template_dir / "demo.json").is_file()

    @pytest.mark.asyncio
    async def test_save_uses_file_name(self, file_options):
        store = FileTemplateStore(file_options)

        await store.save("renamed", {"name": "other", "engine": "local"})

        assert (await store.load("renamed"))["name"] == "renamed"

    @pytest.mark.asyncio
    async def test_save_defaults_version(self, file_options):
        store = FileTemplateStore(file_options)

        await store.save("demo", {"engine": "local"})

        assert (await store.load("demo"))["version"] == "1.0.0"

    @pytest.mark.asyncio
    async def test_save_leaves_no_temporary_file(self, file_options, template_dir):
        store = FileTemplateStore(file_options)

        await store.save("demo", {"engine": "local"})

        assert sorted(p.name for p in template_dir.iterdir()) == ["demo.json"]

    @pytest.mark.asyncio
    async def test_failed_save_keeps_previous_version(self, file_options, template_dir):
        store = FileTemplateStore(file_options)
        await store.save("demo", {"engine": "local"})
        loop = {}
        loop["loop"] = loop

        with pytest.raises(ConfigurationError):
            await store.save("demo", {"engine": "remote", "bad": loop})

        assert (await store.load("demo"))["engine"] == "local"
        assert not (template_dir / "demo.json.tmp").exists()

    @pytest.mark.asyncio
    async def test_load_missing(self, file_options):
        with pytest.raises(TemplateNotFoundError) as exc_info:
            await FileTemplateStore(file_options).load("missing")

        assert exc_info.value.name == "missing"

    @pytest.mark.asyncio
    async def test_load_invalid_json(self, file_options, template_dir):
        (template_dir / "broken.json").write_text("{not json")

        with pytest.raises(ConfigurationError):
            await FileTemplateStore(file_options).load("broken")

    @pytest.mark.asyncio
    async def test_delete(self, file_options, template_dir):
        store = FileTemplateStore(file_options)
        await store.save("demo", {"engine": "local"})

        assert await store.delete("demo") is True
        assert not (template_dir / "demo.json").exists()
        with pytest.raises(TemplateNotFoundError):
            await store.delete("demo")

    @pytest.mark.asyncio
    async def test_list_sorted(self, file_options):
        store = FileTemplateStore(file_options)
        for name in ("zeta", "alpha", "mid"):
            await store.save(name, {"engine": "local"})

        assert await store.list() == ["alpha", "mid", "zeta"]

    @pytest.mark.asyncio
    async def test_list_missing_directory(self, tmp_path):
        store = FileTemplateStore(base_dir=tmp_path / "nowhere")

        with pytest.raises(ConfigurationError):
            await store.list()

    def test_directory_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv(TEMPLATE_PATH_ENV, str(tmp_path))

        assert FileTemplateStore().base_dir == tmp_path


# =============================================================================
# Memory store
# =============================================================================


class TestMemoryTemplateStore:
    """Tests for MemoryTemplateStore."""

    @pytest.mark.asyncio
    async def test_round_trip(self, demo_template):
        store = MemoryTemplateStore()
        await store.save("demo", demo_template)

        document = await store.load("demo")

        assert document["engine"] == "local"
        assert await store.list() == ["demo"]

    @pytest.mark.asyncio
    async def test_load_returns_copy(self):
        store = MemoryTemplateStore()
        await store.save("demo", {"engine": "local"})

        (await store.load("demo"))["engine"] = "changed"

        assert (await store.load("demo"))["engine"] == "local"

    @pytest.mark.asyncio
    async def test_delete_and_clear(self):
        store = MemoryTemplateStore()
        await store.save("a", {})
        await store.save("b", {})

        await store.delete("a")
        with pytest.raises(TemplateNotFoundError):
            await store.delete("a")

        store.clear()
        assert await store.list() == []


# =============================================================================
# MongoDB store
# =============================================================================


def _mongo_store(document=None):
    store = MongoTemplateStore(TemplateOptions(type="mdb", mdb={}))
    collection = MagicMock()
    collection.find_one = AsyncMock(return_value=document)
    collection.update_one = AsyncMock(return_value=MagicMock(upserted_id="id", acknowledged=True))
    collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=0))
    collection.distinct = AsyncMock(return_value=["b", "a"])
    client = MagicMock()
    client.__getitem__.return_value.__getitem__.return_value = collection
    store._client = client
    return store, collection


class TestMongoTemplateStore:
    """Tests for MongoTemplateStore with a mocked collection."""

    @pytest.mark.asyncio
    async def test_load_strips_id(self):
        store, collection = _mongo_store({"_id": "x", "name": "demo", "engine": "local"})

        document = await store.load("demo")

        assert document == {"name": "demo", "engine": "local"}
        collection.find_one.assert_awaited_once_with({"name": "demo"})

    @pytest.mark.asyncio
    async def test_load_missing(self):
        store, _ = _mongo_store(None)

        with pytest.raises(TemplateNotFoundError):
            await store.load("demo")

    @pytest.mark.asyncio
    async def test_save_upserts(self):
        store, collection = _mongo_store()

        assert await store.save("demo", {"engine": "local", "createdAt": "old"}) is True

        query, update = collection.update_one.await_args.args
        assert query == {"name": "demo"}
        assert update["$set"]["engine"] == "local"
        assert "createdAt" not in update["$set"]
        assert "createdAt" in update["$setOnInsert"]

    @pytest.mark.asyncio
    async def test_delete_missing(self):
        store, _ = _mongo_store()

        with pytest.raises(TemplateNotFoundError):
            await store.delete("demo")

    @pytest.mark.asyncio
    async def test_list(self):
        store, _ = _mongo_store()

        assert await store.list() == ["a", "b"]

    def test_missing_settings(self):
        store = MongoTemplateStore(TemplateOptions(type="mdb"))

        with pytest.raises(ConfigurationError):
            store.settings


# =============================================================================
# Manager facade
# =============================================================================


class TestTemplateManager:
    """Tests for the TemplateManager facade."""

    def test_invalid_options(self):
        with pytest.raises(ConfigurationError):
            TemplateManager({"type": "file", "file": "not-a-mapping"})

    @pytest.mark.asyncio
    async def test_load_validates(self, file_manager, write_template, demo_template):
        write_template(demo_template)

        template = await file_manager.load("demo")

        assert isinstance(template, PipelineTemplate)
        assert template.engine == "local"

    @pytest.mark.asyncio
    async def test_load_invalid_document(self, file_manager, template_dir):
        (template_dir / "bad.json").write_text(json.dumps({"name": "bad", "stack": {"components": "x"}}))

        with pytest.raises(ConfigurationError):
            await file_manager.load("bad")

    @pytest.mark.asyncio
    async def test_load_missing(self, file_manager):
        with pytest.raises(TemplateNotFoundError):
            await file_manager.load("missing")

    @pytest.mark.asyncio
    async def test_save_model_then_list(self, file_manager, demo_template):
        await file_manager.save("demo", PipelineTemplate.model_validate(demo_template))
        await file_manager.save("other", {"engine": "local"})

        assert await file_manager.list() == ["demo", "other"]

        await file_manager.delete("other")
        assert await file_manager.list() == ["demo"]

    @pytest.mark.asyncio
    async def test_store_cached_per_type(self, file_manager):
        assert await file_manager.store() is await file_manager.store()

    @pytest.mark.asyncio
    async def test_unsupported_store(self):
        with pytest.raises(ConfigurationError):
            await TemplateManager({"type": "s3"}).store()

    @pytest.mark.asyncio
    async def test_registered_store_preferred(self, registry):
        store = MemoryTemplateStore()
        await store.save("demo", {"engine": "k8s"})
        registry.register([{"key": "template:manager:custom", "type": "value", "target": store}])
        manager = TemplateManager({"type": "custom"}, {"registry": registry})

        assert (await manager.load("demo")).engine == "k8s"

    @pytest.mark.asyncio
    async def test_per_call_options_merged(self):
        manager = TemplateManager({"type": "memory"})
        await manager.save("demo", {"engine": "local"}, {"flow": "run-1"})

        assert (await manager.load("demo", {"flow": "run-2"})).engine == "local"
        assert manager.options.flow is None

    @pytest.mark.asyncio
    async def test_close_closes_stores(self):
        manager = TemplateManager({"type": "memory"})
        store = await manager.store()
        store.close = AsyncMock()

        await manager.close()

        store.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_per_call_store_settings(self, tmp_path):
        for folder, version in (("a", "1.0.0"), ("b", "2.0.0")):
            (tmp_path / folder).mkdir()
            (tmp_path / folder / "demo.json").write_text(json.dumps({"engine": "local", "version": version}))
        manager = TemplateManager({"type": "file", "file": {"path": str(tmp_path / "a")}})

        first = await manager.load("demo")
        second = await manager.load("demo", {"file": {"path": str(tmp_path / "b")}})
        again = await manager.load("demo")

        assert (first.version, second.version, again.version) == ("1.0.0", "2.0.0", "1.0.0")
        assert await manager.store() is await manager.store()
