"""
Module Loaders.

Strategies for loading an implementation named by a descriptor location.

Two conventions exist:
    - package: a dotted module name imported through the normal import system
      (``iacpipe.templates.manager``, ``components.docker``)
    - file: a Python source file executed from its path
      (``./components/Docker.py``)

Convention Selection:
    select_loader() picks the primary convention with a fixed lookup order:
    1. Explicit hint on the descriptor (``loader: "file"``)
    2. File extension (``.py`` -> file)
    3. Nearest ``pyproject.toml`` declaring ``[tool.iacpipe] loader = ...``
    4. Shape of the location (path separators -> file, dotted -> package)

Fallback:
    load_module() tries the primary convention and switches to the other one
    only on the failure signature of the primary:
    - package: ModuleNotFoundError for the requested module itself
    - file: missing file, or a relative import with no known parent package

Usage:
    module = load_module("components/Docker.py")
    cls = pick_export(module, "Docker")

    cls = load_attribute("iacpipe.templates:TemplateManager")
"""

from __future__ import annotations

import hashlib
import importlib
import importlib.util
import inspect
import logging
import sys
import tomllib
from abc import ABC, abstractmethod
from functools import lru_cache
from pathlib import Path
from types import ModuleType
from typing import Any

from iacpipe.errors import ModuleLoadError

logger = logging.getLogger(__name__)

PACKAGE = "package"
FILE = "file"
CONVENTIONS = (PACKAGE, FILE)

MANIFEST_NAME = "pyproject.toml"
SOURCE_SUFFIXES = (".py", ".pyw")


# =============================================================================
# Location helpers
# =============================================================================


def _looks_like_path(location: str) -> bool:
    return "/" in location or "\\" in location or location.startswith(".")


def to_dotted(location: str) -> str:
    """Convert a path-like location into a dotted module name."""
    value = location.replace("\\", "/")
    for suffix in SOURCE_SUFFIXES:
        if value.endswith(suffix):
            value = value[: -len(suffix)]
            break
    parts = [p for p in value.split("/") if p not in ("", ".")]
    if parts and parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join(parts)


def to_file_path(location: str) -> Path | None:
    """Find the source file a location refers to, or None."""
    candidates = [Path(location)]
    if not location.endswith(SOURCE_SUFFIXES):
        candidates.append(Path(f"{location}.py"))
        candidates.append(Path(location) / "__init__.py")
        if not _looks_like_path(location):
            dotted = Path(*location.split("."))
            candidates.append(dotted.with_suffix(".py"))
            candidates.append(dotted / "__init__.py")

    for candidate in candidates:
        if candidate.is_file():
            return candidate.resolve()
    return None


@lru_cache(maxsize=128)
def _manifest_convention(manifest: str) -> str | None:
    try:
        with open(manifest, "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"[loader] Unreadable manifest {manifest}: {e}")
        return None

    value = data.get("tool", {}).get("iacpipe", {}).get("loader")
    if value in CONVENTIONS:
        return value
    return None


def find_manifest(location: str) -> Path | None:
    """Nearest pyproject.toml above a path-like location."""
    start = Path(location).resolve()
    directory = start if start.is_dir() else start.parent
    for folder in (directory, *directory.parents):
        manifest = folder / MANIFEST_NAME
        if manifest.is_file():
            return manifest
    return None


def detect_convention(location: str, hint: str | None = None) -> str:
    """
    Determine the primary loading convention for a location.

    Args:
        location: Dotted module name or source path
        hint: Explicit convention from the descriptor

    Returns:
        "package" or "file"
    """
    if hint:
        if hint not in CONVENTIONS:
            raise ValueError(f"Unknown loader hint '{hint}', expected one of {CONVENTIONS}")
        return hint

    if location.endswith(SOURCE_SUFFIXES):
        return FILE

    if _looks_like_path(location):
        manifest = find_manifest(location)
        if manifest is not None:
            convention = _manifest_convention(str(manifest))
            if convention:
                return convention
        return FILE

    return PACKAGE


# =============================================================================
# Loader strategies
# =============================================================================


class ModuleLoader(ABC):
    """Loads a module for one convention."""

    convention: str = ""

    @abstractmethod
    def load(self, location: str) -> ModuleType:
        """Load and return the module at location."""
        ...

    @abstractmethod
    def should_fall_back(self, location: str, error: Exception) -> bool:
        """True when error is the signature that justifies the other convention."""
        ...

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(convention='{self.convention}')"


class PackageModuleLoader(ModuleLoader):
    """Imports a dotted module name through the import system."""

    convention = PACKAGE

    def load(self, location: str) -> ModuleType:
        return importlib.import_module(to_dotted(location))

    def should_fall_back(self, location: str, error: Exception) -> bool:
        if not isinstance(error, ModuleNotFoundError):
            return False
        # Only a miss of the requested module (or one of its parents) counts,
        # not a missing import inside it.
        dotted = to_dotted(location)
        missing = error.name or ""
        return bool(missing) and (dotted == missing or dotted.startswith(f"{missing}."))


class FileModuleLoader(ModuleLoader):
    """Executes a Python source file as a module."""

    convention = FILE

    def load(self, location: str) -> ModuleType:
        path = to_file_path(location)
        if path is None:
            raise FileNotFoundError(f"No module source found for '{location}'")

        name = self._module_name(path)
        cached = sys.modules.get(name)
        if cached is not None:
            return cached

        spec = importlib.util.spec_from_file_location(name, path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot build an import spec for {path}")

        module = importlib.util.module_from_spec(spec)
        sys.modules[name] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            sys.modules.pop(name, None)
            raise
        return module

    def should_fall_back(self, location: str, error: Exception) -> bool:
        if isinstance(error, FileNotFoundError):
            return True
        if isinstance(error, ImportError):
            message = str(error)
            return "relative import" in message or "no known parent package" in message
        return False

    @staticmethod
    def _module_name(path: Path) -> str:
        digest = hashlib.sha1(str(path).encode()).hexdigest()[:10]
        return f"iacpipe_dynamic.{path.stem}_{digest}"


_LOADERS: dict[str, ModuleLoader] = {
    PACKAGE: PackageModuleLoader(),
    FILE: FileModuleLoader(),
}


def select_loader(location: str, hint: str | None = None) -> ModuleLoader:
    """Primary loader for a location."""
    return _LOADERS[detect_convention(location, hint)]


def fallback_loader(primary: ModuleLoader) -> ModuleLoader:
    """The loader for the other convention."""
    return _LOADERS[FILE if primary.convention == PACKAGE else PACKAGE]


def load_module(location: str, hint: str | None = None) -> ModuleType:
    """
    Load a module with primary/secondary convention fallback.

    Raises:
        ModuleLoadError: If neither convention can load the location
    """
    primary = select_loader(location, hint)
    try:
        return primary.load(location)
    except Exception as e:
        if not primary.should_fall_back(location, e):
            raise ModuleLoadError(f"Failed to import module: {e}", location) from e
        first_error = e

    secondary = fallback_loader(primary)
    logger.debug(
        f"[loader] {primary.convention} import of '{location}' failed "
        f"({first_error}), retrying as {secondary.convention}"
    )
    try:
        return secondary.load(location)
    except Exception as e:
        raise ModuleLoadError(
            f"Failed to import module as {primary.convention} ({first_error}) "
            f"or {secondary.convention} ({e})",
            location,
        ) from e


def pick_export(module: ModuleType, target: str | None = None, export: str | None = None) -> Any:
    """
    Select the implementation exported by a module.

    Order: explicit export name, attribute named like the target's last
    segment, a module-level ``default``, the first class defined in the module.
    """
    if export:
        if not hasattr(module, export):
            raise AttributeError(f"Module '{module.__name__}' has no attribute '{export}'")
        return getattr(module, export)

    if target:
        name = Path(target.replace("\\", "/")).stem.rsplit(".", 1)[-1]
        if hasattr(module, name):
            return getattr(module, name)

    if hasattr(module, "default"):
        return module.default

    for value in vars(module).values():
        if inspect.isclass(value) and value.__module__ == module.__name__:
            return value

    raise AttributeError(f"Module '{module.__name__}' exports no usable implementation")


def load_attribute(reference: str, hint: str | None = None) -> Any:
    """
    Load ``module:attribute`` (or a bare module, using pick_export).

    Example:
        cls = load_attribute("iacpipe.templates.manager:TemplateManager")
    """
    location, _, attribute = reference.partition(":")
    module = load_module(location, hint)
    try:
        return pick_export(module, target=location, export=attribute or None)
    except AttributeError as e:
        raise ModuleLoadError(str(e), location) from e
