"""
Dependency Registry.

Explicit container that maps keys to descriptors and turns them into
instances on demand. One Registry value is created per process (or per test)
and passed to every consumer; there is no hidden global container.

Resolution order for resolve(key):
    1. Cached instance (singleton, or scoped within this scope)
    2. Registered descriptor, built with its strategy
    3. Auto-registration: first pattern whose regex matches the key
    4. ResolutionError naming the key

Design Principles:
    - Registration is idempotent: a key that already exists is skipped
    - Nested dependencies are registered depth-first, before their parent
    - Singletons are cached by key, never by type
    - Auto-registration failures are logged and treated as "no match"

Usage:
    registry = Registry()
    registry.register([
        {"key": "template:manager", "target": TemplateManager,
         "lifetime": "singleton", "args": [{"type": "file"}],
         "dependencies": [{"key": "registry"}]},
        {"type": "auto", "regex": "^Demo", "path": "./components"},
    ])

    manager = await registry.resolve("template:manager")
    demo = await registry.resolve("DemoFirst")  # synthesized from the pattern
"""

from __future__ import annotations

import inspect
import logging
import re
import uuid
from typing import Any, Iterable

from pydantic import ValidationError

from iacpipe.errors import IacPipeError, ModuleLoadError, RegistrationError, ResolutionError

from .loaders import load_attribute, load_module, pick_export
from .schemas import (
    CALLABLE_TYPES,
    LOADABLE_TYPES,
    DependencyDescriptor,
    DependencyType,
    Lifetime,
    as_descriptor_list,
)
from .tpl import render

logger = logging.getLogger(__name__)

SELF_KEY = "registry"

_MISSING = object()


class Registry:
    """
    Key -> descriptor store with lifetime-aware instance caching.

    A registry created with create_scope() shares descriptors, patterns,
    loaded constructors and singletons with its root, and keeps its own
    cache of scoped instances.
    """

    def __init__(self, *, parent: Registry | None = None) -> None:
        if parent is None:
            self._descriptors: dict[str, DependencyDescriptor] = {}
            self._patterns: list[tuple[re.Pattern[str], DependencyDescriptor]] = []
            self._singletons: dict[str, Any] = {}
            self._constructors: dict[str, Any] = {}
        else:
            self._descriptors = parent._descriptors
            self._patterns = parent._patterns
            self._singletons = parent._singletons
            self._constructors = parent._constructors

        self._parent = parent
        self._scoped: dict[str, Any] = {}

        if parent is None:
            self.register([{"key": SELF_KEY, "type": "value", "target": self}])
        else:
            self._scoped[SELF_KEY] = self

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def descriptors(self) -> dict[str, DependencyDescriptor]:
        """Copy of the descriptor store."""
        return dict(self._descriptors)

    @property
    def patterns(self) -> list[str]:
        """Auto-registration regexes in evaluation order."""
        return [pattern.pattern for pattern, _ in self._patterns]

    @property
    def is_scope(self) -> bool:
        return self._parent is not None

    def keys(self) -> list[str]:
        return list(self._descriptors)

    def has(self, key: str) -> bool:
        """True if key is registered or has a cached instance."""
        return key in self._descriptors or key in self._singletons or key in self._scoped

    def cached(self, key: str) -> Any | None:
        """Cached singleton or scoped instance, without constructing anything."""
        value = self._cached(key)
        return None if value is _MISSING else value

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def __len__(self) -> int:
        return len(self._descriptors)

    def __repr__(self) -> str:
        kind = "scope" if self.is_scope else "root"
        return f"Registry({kind}, keys={len(self._descriptors)}, patterns={len(self._patterns)})"

    def create_scope(self) -> Registry:
        """Child registry with its own scoped-instance cache."""
        return Registry(parent=self)

    # =========================================================================
    # Registration
    # =========================================================================

    def register(self, descriptors: list[Any] | dict[str, Any] | DependencyDescriptor) -> list[str]:
        """
        Register descriptors.

        Args:
            descriptors: List or {key: descriptor} map of descriptor records
                (dicts or DependencyDescriptor instances)

        Returns:
            Keys enrolled by this call, nested dependencies included

        Raises:
            RegistrationError: If a descriptor is invalid
        """
        if isinstance(descriptors, DependencyDescriptor):
            descriptors = [descriptors]

        try:
            items = as_descriptor_list(descriptors)
        except (ValidationError, TypeError) as e:
            raise RegistrationError(f"Invalid dependency descriptor: {e}") from e

        enrolled: list[str] = []
        for descriptor in items:
            self._enroll(descriptor, enrolled)
        return enrolled

    def _enroll(self, descriptor: DependencyDescriptor, enrolled: list[str]) -> None:
        if not descriptor.key:
            descriptor.key = self._infer_key(descriptor)
        key = descriptor.key

        if descriptor.is_auto:
            self._store_pattern(descriptor)
            return

        if key in self._descriptors:
            logger.debug(f"[registry] '{key}' already registered, skipping")
            return

        if descriptor.template and not descriptor.file:
            descriptor.file = render(descriptor.template, self._template_vars(descriptor))

        for nested in descriptor.nested():
            if nested.target is None and not nested.is_auto:
                # Pure reference to an existing key
                if not nested.key:
                    raise RegistrationError(
                        f"Nested dependency of '{key}' has neither key nor target", key
                    )
                continue
            self._enroll(nested, enrolled)

        self._validate(descriptor)
        self._descriptors[key] = descriptor
        enrolled.append(key)
        logger.debug(f"[registry] Registered '{key}' (type={descriptor.type.value}, lifetime={descriptor.lifetime.value})")

    @staticmethod
    def _infer_key(descriptor: DependencyDescriptor) -> str:
        target = descriptor.target
        if isinstance(target, str) and target:
            return target
        name = getattr(target, "__name__", None)
        if callable(target) and name and name != "<lambda>":
            return name
        if descriptor.is_auto:
            return f"auto-{uuid.uuid4().hex[:9]}"
        raise RegistrationError(f"Unable to determine dependency key for target {target!r}")

    @staticmethod
    def _template_vars(descriptor: DependencyDescriptor) -> dict[str, Any]:
        variables = dict(descriptor.model_extra or {})
        variables.update(
            key=descriptor.key,
            target=descriptor.target if isinstance(descriptor.target, str) else descriptor.key,
            path=descriptor.path,
            type=descriptor.type.value,
            category=descriptor.category,
        )
        return variables

    @staticmethod
    def _validate(descriptor: DependencyDescriptor) -> None:
        key = descriptor.key
        kind = descriptor.type
        target = descriptor.target

        if kind in LOADABLE_TYPES:
            if not (callable(target) or isinstance(target, str)):
                raise RegistrationError(f"Invalid {kind.value} target for dependency: {key}", key)
        elif descriptor.is_reference:
            if not isinstance(target, str) or not target:
                raise RegistrationError(f"Alias '{key}' must name another key", key)
            if target == key:
                raise RegistrationError(f"Alias '{key}' refers to itself", key)

    def _store_pattern(self, descriptor: DependencyDescriptor) -> None:
        regex = descriptor.regex or ".*"
        if any(pattern.pattern == regex for pattern, _ in self._patterns):
            logger.debug(f"[registry] Auto-registration pattern '{regex}' already stored")
            return
        if descriptor.as_ == DependencyType.AUTO:
            raise RegistrationError(f"Pattern '{regex}' cannot synthesize auto entries", descriptor.key)
        try:
            compiled = re.compile(regex)
        except re.error as e:
            raise RegistrationError(f"Invalid auto-registration pattern '{regex}': {e}", descriptor.key) from e

        self._patterns.append((compiled, descriptor))
        logger.debug(f"[registry] Stored auto-registration pattern '{regex}'")

    # =========================================================================
    # Removal
    # =========================================================================

    def unregister(self, keys: str | Iterable[str]) -> None:
        """Remove descriptors and cached instances; unknown keys are skipped."""
        if isinstance(keys, str):
            keys = [keys]

        for key in keys:
            if not self.has(key):
                logger.warning(f"[registry] Cannot unregister non-existent dependency: {key}")
                continue
            self._forget(key)
            logger.info(f"[registry] Unregistered dependency: {key}")

    def _forget(self, key: str) -> None:
        self._descriptors.pop(key, None)
        self._singletons.pop(key, None)
        self._constructors.pop(key, None)
        self._scoped.pop(key, None)

    # =========================================================================
    # Resolution
    # =========================================================================

    async def resolve(self, key: str) -> Any:
        """
        Resolve a key to an instance.

        Raises:
            ResolutionError: Unknown key, failed import, failed construction
                or circular dependency chain
        """
        return await self._resolve(key, ())

    async def get(self, key: str) -> Any | None:
        """Resolve a key, returning None when it cannot be resolved."""
        try:
            return await self.resolve(key)
        except ResolutionError as e:
            logger.debug(f"[registry] get('{key}') -> None: {e}")
            return None

    def resolve_sync(self, key: str) -> Any:
        """
        Resolve without asynchronous work.

        Raises:
            ResolutionError: Also when the entry needs dynamic module loading,
                auto-registration or an awaitable factory
        """
        return self._resolve_sync(key, ())

    async def _resolve(self, key: str, chain: tuple[str, ...]) -> Any:
        self._check_cycle(key, chain)

        cached = self._cached(key)
        if cached is not _MISSING:
            return cached

        descriptor = self._descriptors.get(key)
        if descriptor is None:
            descriptor = self._auto_register(key)
            if descriptor is None:
                raise ResolutionError("No registration found", key)

        chain = (*chain, key)
        kind = descriptor.type

        if kind == DependencyType.VALUE:
            return descriptor.target
        if descriptor.is_reference:
            return await self._resolve(descriptor.target, chain)
        if kind in CALLABLE_TYPES:
            return self._constructor(descriptor)

        factory = self._constructor(descriptor)
        args = list(descriptor.args)
        nested = descriptor.nested()
        if nested:
            injected = {}
            for dependency in nested:
                injected[dependency.key] = await self._resolve(self._source_key(dependency), chain)
            args.append(injected)

        instance = self._invoke(descriptor, factory, args)
        if inspect.isawaitable(instance):
            try:
                instance = await instance
            except IacPipeError:
                raise
            except Exception as e:
                raise ResolutionError(f"Failed to construct: {e}", key) from e

        return self._remember(descriptor, instance)

    def _resolve_sync(self, key: str, chain: tuple[str, ...]) -> Any:
        self._check_cycle(key, chain)

        cached = self._cached(key)
        if cached is not _MISSING:
            return cached

        descriptor = self._descriptors.get(key)
        if descriptor is None:
            if any(pattern.search(key) for pattern, _ in self._patterns):
                raise ResolutionError("Requires auto-registration, use resolve()", key)
            raise ResolutionError("No registration found", key)

        chain = (*chain, key)
        kind = descriptor.type

        if kind == DependencyType.VALUE:
            return descriptor.target
        if descriptor.is_reference:
            return self._resolve_sync(descriptor.target, chain)
        if isinstance(descriptor.target, str) and key not in self._constructors:
            raise ResolutionError("Requires dynamic module loading, use resolve()", key)
        if kind in CALLABLE_TYPES:
            return self._constructor(descriptor)

        factory = self._constructor(descriptor)
        args = list(descriptor.args)
        nested = descriptor.nested()
        if nested:
            args.append(
                {
                    dependency.key: self._resolve_sync(self._source_key(dependency), chain)
                    for dependency in nested
                }
            )

        instance = self._invoke(descriptor, factory, args)
        if inspect.isawaitable(instance):
            if inspect.iscoroutine(instance):
                instance.close()
            raise ResolutionError("Factory returned an awaitable, use resolve()", key)

        return self._remember(descriptor, instance)

    @staticmethod
    def _check_cycle(key: str, chain: tuple[str, ...]) -> None:
        if key in chain:
            path = " -> ".join((*chain, key))
            raise ResolutionError(f"Circular dependency: {path}", key)

    @staticmethod
    def _source_key(dependency: DependencyDescriptor) -> str:
        if dependency.is_reference and isinstance(dependency.target, str):
            return dependency.target
        return dependency.key

    def _cached(self, key: str) -> Any:
        if key in self._scoped:
            return self._scoped[key]
        return self._singletons.get(key, _MISSING)

    def _remember(self, descriptor: DependencyDescriptor, instance: Any) -> Any:
        if descriptor.lifetime == Lifetime.SINGLETON:
            self._singletons[descriptor.key] = instance
        elif descriptor.lifetime == Lifetime.SCOPED:
            self._scoped[descriptor.key] = instance
        return instance

    @staticmethod
    def _invoke(descriptor: DependencyDescriptor, factory: Any, args: list[Any]) -> Any:
        try:
            return factory(*args)
        except IacPipeError:
            raise
        except Exception as e:
            raise ResolutionError(f"Failed to construct: {e}", descriptor.key) from e

    # =========================================================================
    # Constructors and dynamic loading
    # =========================================================================

    def _constructor(self, descriptor: DependencyDescriptor) -> Any:
        key = descriptor.key
        if key in self._constructors:
            return self._constructors[key]

        target = descriptor.target
        if descriptor.needs_import:
            loaded = self._load(descriptor)
        elif callable(target):
            loaded = target
        else:
            raise ResolutionError(f"Invalid {descriptor.type.value} target: {target!r}", key)

        if not callable(loaded):
            raise ResolutionError(f"Loaded target is not callable: {loaded!r}", key)

        self._constructors[key] = loaded
        return loaded

    def _load(self, descriptor: DependencyDescriptor) -> Any:
        key = descriptor.key
        target = descriptor.target
        location = self._location(descriptor)

        try:
            if location is None:
                if ":" not in target:
                    raise ResolutionError(f"Path required for dynamic import of: {target}", key)
                return load_attribute(target, descriptor.loader)

            module = load_module(location, descriptor.loader)
            try:
                return pick_export(module, target=target, export=descriptor.export)
            except AttributeError as e:
                raise ModuleLoadError(str(e), location, key) from e
        except ModuleLoadError as e:
            e.key = e.key or key
            raise

    @staticmethod
    def _location(descriptor: DependencyDescriptor) -> str | None:
        if descriptor.file:
            return descriptor.file
        if descriptor.path:
            return f"{descriptor.path.rstrip('/')}/{descriptor.target}"
        return None

    # =========================================================================
    # Auto-registration
    # =========================================================================

    def _auto_register(self, key: str) -> DependencyDescriptor | None:
        for pattern, template in self._patterns:
            if not pattern.search(key):
                continue

            try:
                descriptor = self._synthesize(key, template)
                self._enroll(descriptor, [])
                if descriptor.type in (DependencyType.CLASS, DependencyType.ACTION):
                    self._constructor(descriptor)
            except Exception as e:
                self._forget(key)
                logger.warning(
                    f"[registry] Auto-registration failed for '{key}' "
                    f"(pattern '{pattern.pattern}'): {e}"
                )
                continue

            logger.info(f"[registry] Auto-registered dependency: {key}")
            return descriptor

        return None

    @staticmethod
    def _synthesize(key: str, template: DependencyDescriptor) -> DependencyDescriptor:
        kind = template.as_ or DependencyType.CLASS
        if kind == DependencyType.CLASS and not (template.file or template.path or template.template):
            raise RegistrationError(f"No path specified for auto-registration: {key}", key)

        return template.model_copy(
            update={
                "key": key,
                "target": key,
                "type": kind,
                "as_": None,
                "regex": None,
            },
            deep=True,
        )
