"""
Dependency registry for iacpipe.

Exports:
    - Registry: key -> descriptor container with lifetimes and auto-registration
    - DependencyDescriptor, DependencyType, Lifetime: registration records
    - ModuleLoader strategies and load helpers for dynamic targets
    - render: location template rendering
"""

from .loaders import (
    FileModuleLoader,
    ModuleLoader,
    PackageModuleLoader,
    detect_convention,
    load_attribute,
    load_module,
    pick_export,
    select_loader,
)
from .registry import SELF_KEY, Registry
from .schemas import DependencyDescriptor, DependencyType, Lifetime, as_descriptor_list
from .tpl import render

__all__ = [
    "Registry",
    "SELF_KEY",
    "DependencyDescriptor",
    "DependencyType",
    "Lifetime",
    "as_descriptor_list",
    "ModuleLoader",
    "PackageModuleLoader",
    "FileModuleLoader",
    "detect_convention",
    "select_loader",
    "load_module",
    "load_attribute",
    "pick_export",
    "render",
]
