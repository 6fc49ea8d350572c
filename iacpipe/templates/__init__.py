"""
Pipeline templates and template stores.

Exports:
    - TemplateManager: facade registered as ``template:manager``
    - PipelineTemplate, StackSettings, ComponentSpec: template documents
    - FileTemplateStore, MemoryTemplateStore, MongoTemplateStore: stores
"""

from .manager import BUILTIN_STORES, TemplateManager
from .schemas import (
    TEMPLATE_PATH_ENV,
    ComponentSpec,
    FileStoreSettings,
    MongoStoreSettings,
    PipelineTemplate,
    StackSettings,
    TemplateOptions,
)
from .stores import FileTemplateStore, MemoryTemplateStore, MongoTemplateStore, TemplateStore

__all__ = [
    "TemplateManager",
    "BUILTIN_STORES",
    "PipelineTemplate",
    "StackSettings",
    "ComponentSpec",
    "TemplateOptions",
    "FileStoreSettings",
    "MongoStoreSettings",
    "TEMPLATE_PATH_ENV",
    "TemplateStore",
    "FileTemplateStore",
    "MemoryTemplateStore",
    "MongoTemplateStore",
]
