"""
Pipeline Context and Run Result.

The context carries run-scoped state and is passed to every component action.
The run result is created once per run and reported by the caller.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

if TYPE_CHECKING:
    from iacpipe.ioc import Registry
    from iacpipe.templates import PipelineTemplate


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PipelineArgs(BaseModel):
    """
    Arguments of one pipeline action.

    Attributes:
        template: Template name
        stack: Stack name (environment)
        project: Project name
        config: Path of the configuration document
        id: Run identifier; defaults to ``<project>-<stack>``
    """

    template: str | None = None
    stack: str | None = None
    project: str | None = None
    config: str | None = None
    id: str | None = None

    class Config:
        populate_by_name = True
        extra = "allow"


@dataclass
class PipelineContext:
    """
    Run-scoped context passed to component actions.

    Provides:
    - Run identifier (flow) for log correlation
    - The action arguments and the loaded template
    - Registry access for components that resolve their own services
    - Per-component timings and reported failures
    """

    id: str
    args: PipelineArgs = field(default_factory=PipelineArgs)
    action: str = ""
    template: PipelineTemplate | None = None
    registry: Registry | None = None
    started_at: datetime = field(default_factory=_utc_now)

    component_timings: dict[str, float] = field(default_factory=dict)
    failures: list[str] = field(default_factory=list)

    @property
    def flow(self) -> str:
        return self.id

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since the run started."""
        delta = datetime.now(timezone.utc) - self.started_at
        return delta.total_seconds() * 1000

    def record_timing(self, component: str, action: str, duration_ms: float) -> None:
        self.component_timings[f"{component}:{action}"] = duration_ms

    def record_failure(self, component: str, action: str, message: str) -> None:
        self.failures.append(f"{component}:{action}: {message}")

    def to_audit_dict(self) -> dict[str, Any]:
        """Audit record of the run."""
        return {
            "flow": self.id,
            "action": self.action,
            "template": self.template.name if self.template else self.args.template,
            "stack": self.args.stack,
            "project": self.args.project,
            "started_at": self.started_at.isoformat(),
            "completed_at": _utc_now().isoformat(),
            "duration_ms": self.elapsed_ms,
            "component_timings": self.component_timings,
            "failures": self.failures,
        }

    def copy(self) -> "PipelineContext":
        """Copy sharing registry and template, with its own timings."""
        return PipelineContext(
            id=self.id,
            args=self.args,
            action=self.action,
            template=self.template,
            registry=self.registry,
            started_at=self.started_at,
            component_timings=copy.copy(self.component_timings),
            failures=copy.copy(self.failures),
        )


def _result_to_dict(result: Any) -> Any:
    if result is None or isinstance(result, dict):
        return result
    to_dict = getattr(result, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return result


@dataclass
class PipelineRunResult:
    """
    Result of one pipeline action.

    ``output`` is the merged scope: the union of component outputs, later
    components winning key collisions. ``results`` holds the per-component
    results of the main phase in template order (None where a component has
    no method for the action).
    """

    action: str
    success: bool = True
    timestamp: datetime = field(default_factory=_utc_now)
    duration: float = 0.0
    output: dict[str, Any] = field(default_factory=dict)
    results: list[Any] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    message: str = ""
    template_name: str | None = None
    stack_name: str | None = None
    project_name: str | None = None
    flow: str | None = None
    setup_results: list[Any] = field(default_factory=list)
    exports: dict[str, Any] = field(default_factory=dict)

    def fail(self, error: str, message: str | None = None) -> "PipelineRunResult":
        """Mark the run failed."""
        self.success = False
        self.errors.append(error)
        if message:
            self.message = message
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize result for reporting."""
        return {
            "action": self.action,
            "success": self.success,
            "timestamp": self.timestamp.isoformat(),
            "duration_ms": round(self.duration, 2),
            "output": self.output,
            "results": [_result_to_dict(r) for r in self.results],
            "errors": self.errors,
            "message": self.message,
            "templateName": self.template_name,
            "stackName": self.stack_name,
            "projectName": self.project_name,
            "flow": self.flow,
            "setupResults": [_result_to_dict(r) for r in self.setup_results],
            "exports": self.exports,
        }
