"""
Component contract.

Components are pluggable provisioning units resolved from the Registry by the
name used in a template. A component exposes configure(spec) and any of the
lifecycle actions; each action receives the resolved input mapping and the
PipelineContext and returns a result with ``success`` and ``output``.

Failure reporting:
    - Return ComponentResult(success=False, ...) to record the failure and let
      the pipeline continue with the next component
    - Raise to abort the remaining components

Lifecycle:
    configure(spec) -> setup(input, ctx) [deploy only] -> <action>(input, ctx)

Subclasses of BaseComponent must implement:
    - deploy(): the provisioning logic
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Mapping, Protocol, runtime_checkable

if TYPE_CHECKING:
    from iacpipe.ioc import Registry
    from iacpipe.templates import ComponentSpec

    from .context import PipelineContext

logger = logging.getLogger(__name__)

ACTIONS = ("deploy", "undeploy", "destroy", "validate", "status")


@runtime_checkable
class Component(Protocol):
    """Minimal component surface used by the pipeline."""

    def configure(self, spec: ComponentSpec) -> Any:
        ...


@dataclass
class ComponentResult:
    """Result of one component action."""

    success: bool = True
    action: str = ""
    message: str = ""
    output: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @classmethod
    def ok(cls, action: str, output: Mapping[str, Any] | None = None, message: str = "") -> "ComponentResult":
        return cls(success=True, action=action, message=message, output=dict(output or {}))

    @classmethod
    def fail(cls, action: str, error: str, message: str = "") -> "ComponentResult":
        return cls(success=False, action=action, message=message or error, error=error)

    @classmethod
    def from_value(cls, value: Any, action: str = "") -> "ComponentResult | None":
        """
        Normalise a dict or object result; None stays None.

        Only an explicit ``success: False`` marks a failure, and a non-mapping
        output counts as no output.
        """
        if value is None or isinstance(value, ComponentResult):
            return value
        if isinstance(value, Mapping):
            data = value
        else:
            data = {k: getattr(value, k) for k in ("success", "action", "message", "output", "error") if hasattr(value, k)}
        output = data.get("output")
        return cls(
            success=data.get("success", True) is not False,
            action=data.get("action") or action,
            message=data.get("message") or "",
            output=dict(output) if isinstance(output, Mapping) else {},
            error=data.get("error"),
        )

    @property
    def failure(self) -> str | None:
        """Failure message, or None for a successful result."""
        if self.success:
            return None
        return str(self.message or self.error or "component reported failure")

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "action": self.action,
            "message": self.message,
            "output": self.output,
            "error": self.error,
        }


class BaseComponent(ABC):
    """
    Base class for components.

    Registered like any other class; an injected dependencies mapping may
    carry the ``registry``.

    Example:
        class Network(BaseComponent):
            async def deploy(self, input, context):
                ip = await allocate(input["region"])
                return ComponentResult.ok("deploy", {"ip": ip})
    """

    def __init__(self, dependencies: Mapping[str, Any] | None = None) -> None:
        self.dependencies = dict(dependencies or {})
        self.registry: Registry | None = self.dependencies.get("registry")
        self.spec: ComponentSpec | None = None

    @property
    def name(self) -> str:
        return self.spec.name if self.spec else self.__class__.__name__

    def configure(self, spec: ComponentSpec) -> "BaseComponent":
        self.spec = spec
        return self

    async def setup(self, input: dict[str, Any], context: PipelineContext) -> ComponentResult:
        """Pre-provisioning phase; exposes the resolved setup variables."""
        output = dict(input) if self.spec and self.spec.setup else {}
        return ComponentResult.ok("setup", output)

    @abstractmethod
    async def deploy(self, input: dict[str, Any], context: PipelineContext) -> ComponentResult:
        ...

    async def undeploy(self, input: dict[str, Any], context: PipelineContext) -> ComponentResult:
        return ComponentResult.ok("undeploy")

    async def destroy(self, input: dict[str, Any], context: PipelineContext) -> ComponentResult:
        return ComponentResult.ok("destroy")

    async def validate(self, input: dict[str, Any], context: PipelineContext) -> ComponentResult:
        return ComponentResult.ok("validate")

    async def status(self, input: dict[str, Any], context: PipelineContext) -> ComponentResult:
        return ComponentResult.ok("status")

    async def transform_input(
        self,
        spec: ComponentSpec,
        scope: Mapping[str, Any],
        key: str = "input",
    ) -> dict[str, Any]:
        """Resolve one of the component's variable lists against the scope."""
        from iacpipe.variables import VariableResolver

        resolver = None
        if self.registry is not None:
            resolver = await self.registry.get("variable:resolver")
        if resolver is None:
            resolver = VariableResolver({"registry": self.registry})
        return await resolver.process(spec.variables(key), scope)

    def metadata(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "class": self.__class__.__name__,
            "description": self.spec.description if self.spec else None,
            "version": self.spec.version if self.spec else None,
            "settings": self.spec.settings if self.spec else {},
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"
