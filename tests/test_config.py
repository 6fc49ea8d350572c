"""
Tests for configuration loading and service wiring.

Tests for:
- get_settings() from IACPIPE_* environment variables
- load_config() for JSON and YAML documents
- configure_logging()
- create_pipeline_manager() and default_dependencies()
"""

import json
import logging
from unittest.mock import patch

import pytest
import yaml

from iacpipe.config import PipelineConfig, configure_logging, get_settings, load_config
from iacpipe.errors import ConfigurationError
from iacpipe.ioc import Registry
from iacpipe.pipeline import SECRET_MANAGER_KEY, create_pipeline_manager, default_dependencies
from iacpipe.secrets import SecretManager
from iacpipe.templates import TemplateManager
from iacpipe.variables import VariableResolver


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def config_document(template_dir):
    return {
        "id": "demo-dev",
        "project": "demo",
        "stack": "dev",
        "name": "demo",
        "template": {"type": "file", "file": {"path": str(template_dir)}},
        "secret": {"type": "vault", "vault": {"mount": "kv"}},
        "dependencies": [{"key": "stage", "type": "value", "target": "dev"}],
    }


# =============================================================================
# Settings
# =============================================================================


class TestSettings:
    """Tests for get_settings."""

    def test_defaults(self, monkeypatch):
        for name in ("IACPIPE_DEBUG", "IACPIPE_TEMPLATE_STORE", "IACPIPE_CONFIG"):
            monkeypatch.delenv(name, raising=False)

        settings = get_settings()

        assert settings.debug is False
        assert settings.template_store == "file"
        assert settings.config_path == "cfg/config.json"

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("IACPIPE_DEBUG", "TRUE")
        monkeypatch.setenv("IACPIPE_SECRET_BACKEND", "vault")

        settings = get_settings()

        assert settings.debug is True
        assert settings.secret_backend == "vault"

    def test_cached(self):
        assert get_settings() is get_settings()


class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_level_name(self):
        with patch("iacpipe.config.loader.logging.basicConfig") as basic_config:
            configure_logging("debug")

        assert basic_config.call_args.kwargs["level"] == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self):
        with patch("iacpipe.config.loader.logging.basicConfig") as basic_config:
            configure_logging("chatty")

        assert basic_config.call_args.kwargs["level"] == logging.INFO

    def test_level_from_settings(self, monkeypatch):
        monkeypatch.delenv("IACPIPE_DEBUG", raising=False)
        monkeypatch.setenv("IACPIPE_LOG_LEVEL", "WARNING")

        with patch("iacpipe.config.loader.logging.basicConfig") as basic_config:
            configure_logging()

        assert basic_config.call_args.kwargs["level"] == logging.WARNING

    def test_debug_setting_forces_debug_level(self, monkeypatch):
        monkeypatch.setenv("IACPIPE_DEBUG", "true")
        monkeypatch.setenv("IACPIPE_LOG_LEVEL", "WARNING")

        with patch("iacpipe.config.loader.logging.basicConfig") as basic_config:
            configure_logging()

        assert basic_config.call_args.kwargs["level"] == logging.DEBUG


# =============================================================================
# Configuration documents
# =============================================================================


class TestLoadConfig:
    """Tests for load_config."""

    def test_json(self, tmp_path, config_document):
        path = tmp_path / "config.json"
        path.write_text(json.dumps(config_document))

        config = load_config(path)

        assert isinstance(config, PipelineConfig)
        assert config.name == "demo"
        assert config.template.store_type == "file"
        assert config.secret.vault.mount == "kv"
        assert config.dependencies == config_document["dependencies"]

    def test_yaml(self, tmp_path, config_document):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump(config_document))

        config = load_config(str(path))

        assert config.project == "demo"
        assert config.secret.backend_type == "vault"

    def test_default_path_from_settings(self, tmp_path, monkeypatch, config_document):
        path = tmp_path / "cfg.json"
        path.write_text(json.dumps(config_document))
        monkeypatch.setenv("IACPIPE_CONFIG", str(path))

        assert load_config().id == "demo-dev"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_config(tmp_path / "nope.json")

    def test_unparsable(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{broken")

        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ConfigurationError):
            load_config(path)

    def test_invalid_document(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"template": "file"}))

        with pytest.raises(ConfigurationError):
            load_config(path)


# =============================================================================
# Wiring
# =============================================================================


class TestCreatePipelineManager:
    """Tests for create_pipeline_manager and default_dependencies."""

    def test_default_dependencies(self):
        descriptors = default_dependencies()

        assert [d["key"] for d in descriptors] == ["secret:manager", "template:manager", "variable:resolver"]
        assert all(d["lifetime"] == "singleton" for d in descriptors)

    @pytest.mark.asyncio
    async def test_from_document(self, config_document):
        manager = create_pipeline_manager(config_document)

        assert manager.config.name == "demo"
        assert await manager.registry.resolve("stage") == "dev"

        secrets = await manager.registry.resolve(SECRET_MANAGER_KEY)
        templates = await manager.registry.resolve("template:manager")
        resolver = await manager.registry.resolve("variable:resolver")

        assert isinstance(secrets, SecretManager)
        assert secrets.options.backend_type == "vault"
        assert secrets.registry is manager.registry
        assert isinstance(templates, TemplateManager)
        assert templates.options.file.path == config_document["template"]["file"]["path"]
        assert isinstance(resolver, VariableResolver)
        assert await resolver.secrets() is secrets

    @pytest.mark.asyncio
    async def test_services_are_singletons(self, config_document):
        registry = create_pipeline_manager(config_document).registry

        assert await registry.resolve("template:manager") is await registry.resolve("template:manager")

    def test_from_path(self, tmp_path, config_document):
        path = tmp_path / "config.json"
        path.write_text(json.dumps(config_document))

        manager = create_pipeline_manager(path)

        assert manager.config.id == "demo-dev"

    def test_existing_registry(self, config_document):
        registry = Registry()

        manager = create_pipeline_manager(config_document, registry=registry)

        assert manager.registry is registry
        assert registry.has("template:manager")

    def test_empty_config(self):
        manager = create_pipeline_manager()

        assert manager.registry.has("secret:manager")

    def test_invalid_document(self):
        with pytest.raises(ConfigurationError):
            create_pipeline_manager({"secret": "env"})

    @pytest.mark.asyncio
    async def test_service_options_from_settings(self, monkeypatch, tmp_path):
        monkeypatch.setenv("IACPIPE_SECRET_BACKEND", "mdb")
        monkeypatch.setenv("IACPIPE_MONGODB_URI_KEY", "OPS_MDB_URI")
        monkeypatch.setenv("IACPIPE_MONGODB_DATABASE", "ops")
        monkeypatch.setenv("IACPIPE_TEMPLATE_STORE", "file")
        monkeypatch.setenv("IACPIPE_TEMPLATE_PATH", str(tmp_path))

        registry = create_pipeline_manager({"name": "demo"}).registry
        secrets = await registry.resolve(SECRET_MANAGER_KEY)
        templates = await registry.resolve("template:manager")

        assert secrets.options.backend_type == "mdb"
        assert secrets.options.mdb.uri == "OPS_MDB_URI"
        assert secrets.options.mdb.database == "ops"
        assert templates.options.file.path == str(tmp_path)

    @pytest.mark.asyncio
    async def test_document_options_win_over_settings(self, monkeypatch, config_document):
        monkeypatch.setenv("IACPIPE_SECRET_BACKEND", "mdb")
        monkeypatch.setenv("IACPIPE_TEMPLATE_STORE", "mdb")

        registry = create_pipeline_manager(config_document).registry

        assert (await registry.resolve(SECRET_MANAGER_KEY)).options.backend_type == "vault"
        assert (await registry.resolve("template:manager")).options.store_type == "file"

    def test_template_store_settings(self, monkeypatch):
        monkeypatch.setenv("IACPIPE_TEMPLATE_STORE", "mdb")
        monkeypatch.setenv("IACPIPE_MONGODB_DATABASE", "ops")

        template = default_dependencies()[1]["args"][0]

        assert template.store_type == "mdb"
        assert template.mdb.database == "ops"
