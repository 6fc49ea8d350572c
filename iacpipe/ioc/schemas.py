"""
Dependency Descriptor Schema.

JSON-serializable description of one registry entry. Descriptors are normally
loaded from a configuration document and handed to Registry.register().

Example (JSON):
    [
        {"key": "template:manager", "target": "iacpipe.templates:TemplateManager",
         "lifetime": "singleton", "args": [{"type": "file"}],
         "dependencies": [{"key": "registry"}]},
        {"key": "stage", "type": "value", "target": "dev"},
        {"key": "logger", "type": "alias", "target": "logger:service"},
        {"type": "auto", "regex": "^Demo", "path": "./components", "lifetime": "singleton"}
    ]

Strategies:
    class     - construct target(*args, dependencies)
    value     - return target as-is
    function  - return the callable itself (method is a synonym)
    action    - call target(*args, dependencies) and return its result
    alias     - resolve another key (ref is a synonym)
    auto      - pattern entry, synthesizes a concrete descriptor on a miss
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal, Union

from pydantic import AliasChoices, BaseModel, Field


class DependencyType(str, Enum):
    """Strategy used to turn a descriptor target into an instance."""

    CLASS = "class"
    VALUE = "value"
    FUNCTION = "function"
    METHOD = "method"
    ACTION = "action"
    ALIAS = "alias"
    REF = "ref"
    AUTO = "auto"


class Lifetime(str, Enum):
    """Instance caching policy."""

    SINGLETON = "singleton"
    TRANSIENT = "transient"
    SCOPED = "scoped"


REFERENCE_TYPES = frozenset({DependencyType.ALIAS, DependencyType.REF})
CALLABLE_TYPES = frozenset({DependencyType.FUNCTION, DependencyType.METHOD})
LOADABLE_TYPES = CALLABLE_TYPES | {DependencyType.CLASS, DependencyType.ACTION}


class DependencyDescriptor(BaseModel):
    """
    One registration entry.

    Attributes:
        key: Name used to resolve the entry (inferred from target if absent)
        target: Class, factory, literal, aliased key or module reference
        type: Resolution strategy
        as_: Strategy of descriptors synthesized from an auto entry
        lifetime: Instance caching policy
        args: Literal constructor arguments, applied before dependencies
        dependencies: Nested descriptors injected as one mapping argument
        regex: Auto-registration pattern (``pattern`` is accepted too)
        path: Directory holding dynamically loaded modules
        file: Explicit module file or dotted module name
        template: Location template such as ``{path}/{target}.py``
        loader: Loading convention hint (package or file)
        export: Attribute to take from a loaded module
        category: Free-form grouping label
    """

    key: str | None = None
    target: Any = None
    type: DependencyType = DependencyType.CLASS
    as_: DependencyType | None = Field(default=None, alias="as")
    lifetime: Lifetime = Lifetime.TRANSIENT
    args: list[Any] = Field(default_factory=list)
    dependencies: Union[
        list["DependencyDescriptor"], dict[str, "DependencyDescriptor"], None
    ] = None
    regex: str | None = Field(
        default=None,
        validation_alias=AliasChoices("regex", "pattern"),
    )
    path: str | None = None
    file: str | None = None
    template: str | None = None
    loader: Literal["package", "file"] | None = None
    export: str | None = None
    category: str | None = None

    class Config:
        populate_by_name = True
        extra = "allow"
        arbitrary_types_allowed = True

    @property
    def is_auto(self) -> bool:
        return self.type == DependencyType.AUTO

    @property
    def is_reference(self) -> bool:
        return self.type in REFERENCE_TYPES

    @property
    def needs_import(self) -> bool:
        """True when the target names code that must be loaded before use."""
        return self.type in LOADABLE_TYPES and isinstance(self.target, str)

    def nested(self) -> list["DependencyDescriptor"]:
        """Nested dependencies as a list, map keys applied."""
        return as_descriptor_list(self.dependencies or [])


def as_descriptor_list(
    items: list[Any] | dict[str, Any] | None,
) -> list[DependencyDescriptor]:
    """
    Normalise a list or map of descriptor records into descriptors.

    Map entries take their key from the map, overriding any inner key.
    Records that are already DependencyDescriptor instances are kept as-is
    so key inference on them stays visible to the caller.
    """
    if items is None:
        return []

    if isinstance(items, dict):
        result = []
        for key, item in items.items():
            descriptor = _coerce(item)
            descriptor.key = key
            result.append(descriptor)
        return result

    return [_coerce(item) for item in items]


def _coerce(item: Any) -> DependencyDescriptor:
    if isinstance(item, DependencyDescriptor):
        return item
    if isinstance(item, dict):
        return DependencyDescriptor.model_validate(item)
    raise TypeError(f"Unsupported dependency record: {item!r}")


DependencyDescriptor.model_rebuild()
