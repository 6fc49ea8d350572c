"""
Tests for dynamic module loading and location templates.

Tests for:
- Convention detection (hint, extension, manifest, location shape)
- Primary/secondary fallback
- Export selection
- Location template rendering
"""

import json
import textwrap
from types import ModuleType

import pytest

from iacpipe.errors import ModuleLoadError
from iacpipe.ioc import (
    FileModuleLoader,
    PackageModuleLoader,
    detect_convention,
    load_attribute,
    load_module,
    pick_export,
    render,
    select_loader,
)
from iacpipe.ioc.loaders import to_dotted


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def gear_module(tmp_path):
    """Source file defining one class."""
    path = tmp_path / "gear.py"
    path.write_text(
        textwrap.dedent(
            """
            class Gear:
                teeth = 12
            """
        )
    )
    return path


# =============================================================================
# Convention detection
# =============================================================================


class TestDetectConvention:
    """Tests for detect_convention and select_loader."""

    def test_hint_wins(self):
        assert detect_convention("components/Docker.py", hint="package") == "package"
        assert detect_convention("iacpipe.templates", hint="file") == "file"

    def test_unknown_hint_rejected(self):
        with pytest.raises(ValueError):
            detect_convention("x", hint="zip")

    def test_source_extension_is_file(self):
        assert detect_convention("Docker.py") == "file"

    def test_dotted_name_is_package(self):
        assert detect_convention("iacpipe.templates.manager") == "package"

    def test_path_without_manifest_is_file(self, tmp_path):
        assert detect_convention(str(tmp_path / "components" / "Docker")) == "file"

    def test_manifest_declares_convention(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text('[tool.iacpipe]\nloader = "package"\n')
        (tmp_path / "components").mkdir()

        assert detect_convention(str(tmp_path / "components" / "Docker")) == "package"

    def test_manifest_without_setting_ignored(self, tmp_path):
        (tmp_path / "pyproject.toml").write_text('[project]\nname = "demo"\n')

        assert detect_convention(str(tmp_path / "Docker")) == "file"

    def test_select_loader(self):
        assert isinstance(select_loader("json"), PackageModuleLoader)
        assert isinstance(select_loader("./Docker.py"), FileModuleLoader)

    def test_to_dotted(self):
        assert to_dotted("./components/docker/__init__.py") == "components.docker"
        assert to_dotted("components\\Docker.py") == "components.Docker"


# =============================================================================
# Loading and fallback
# =============================================================================


class TestLoadModule:
    """Tests for load_module."""

    def test_package_import(self):
        assert load_module("json") is json

    def test_file_import(self, gear_module):
        module = load_module(str(gear_module))

        assert module.Gear.teeth == 12
        assert module.__name__.startswith("iacpipe_dynamic.gear_")

    def test_file_import_cached(self, gear_module):
        assert load_module(str(gear_module)) is load_module(str(gear_module))

    def test_file_without_extension(self, gear_module):
        module = load_module(str(gear_module.with_suffix("")))

        assert hasattr(module, "Gear")

    def test_package_falls_back_to_file(self, gear_module):
        module = load_module(str(gear_module), hint="package")

        assert hasattr(module, "Gear")

    def test_file_falls_back_to_package(self):
        module = load_module("email.mime.text", hint="file")

        assert module.__name__ == "email.mime.text"

    def test_error_inside_module_does_not_fall_back(self, tmp_path):
        path = tmp_path / "broken.py"
        path.write_text("raise RuntimeError('boom')\n")

        with pytest.raises(ModuleLoadError) as exc_info:
            load_module(str(path))

        assert exc_info.value.location == str(path)
        assert "boom" in str(exc_info.value)

    def test_missing_import_inside_package_does_not_fall_back(self):
        loader = PackageModuleLoader()
        error = ModuleNotFoundError("No module named 'yaml_extra'", name="yaml_extra")

        assert not loader.should_fall_back("components.docker", error)
        assert loader.should_fall_back("components.docker", ModuleNotFoundError(name="components"))

    def test_both_conventions_fail(self, tmp_path):
        with pytest.raises(ModuleLoadError) as exc_info:
            load_module(str(tmp_path / "Nothing"))

        assert "file" in str(exc_info.value)
        assert "package" in str(exc_info.value)

    def test_load_attribute(self):
        assert load_attribute("json:dumps") is json.dumps

    def test_load_attribute_missing(self):
        with pytest.raises(ModuleLoadError):
            load_attribute("json:nothing_here")


# =============================================================================
# Export selection
# =============================================================================


class TestPickExport:
    """Tests for pick_export order."""

    @staticmethod
    def _module():
        module = ModuleType("sample_exports")

        class First:
            pass

        class Second:
            pass

        First.__module__ = Second.__module__ = "sample_exports"
        module.First = First
        module.Second = Second
        return module

    def test_explicit_export(self):
        module = self._module()

        assert pick_export(module, target="First", export="Second") is module.Second

    def test_missing_explicit_export(self):
        with pytest.raises(AttributeError):
            pick_export(self._module(), export="Third")

    def test_target_name(self):
        module = self._module()

        assert pick_export(module, target="components/Second.py") is module.Second

    def test_default_export(self):
        module = self._module()
        module.default = "fallback"

        assert pick_export(module, target="Unknown") == "fallback"

    def test_first_class(self):
        module = self._module()

        assert pick_export(module, target="Unknown") is module.First

    def test_nothing_usable(self):
        with pytest.raises(AttributeError):
            pick_export(ModuleType("empty"))


# =============================================================================
# Location templates
# =============================================================================


class TestRender:
    """Tests for location template rendering."""

    def test_placeholders(self):
        assert render("{path}/{target}.py", {"path": "components", "target": "Docker"}) == "components/Docker.py"

    def test_default_value(self):
        assert render("{stage:dev}/x", {}) == "dev/x"

    def test_value_beats_default(self):
        assert render("{stage:dev}", {"stage": "prod"}) == "prod"

    def test_unknown_placeholder_keeps_name(self):
        assert render("{missing}.py") == "missing.py"
