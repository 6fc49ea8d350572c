"""
Observability for iacpipe runs.

Structured (JSON) logging of pipeline lifecycle events on top of the standard
logging module.

Design Philosophy:
- Structured logging by default (JSON-formatted)
- One run identifier (flow) on every event for correlation
- Minimal overhead: records are only built for enabled levels
- Secret-looking context fields are masked before output
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class LogLevel(Enum):
    """Standard log levels."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class StructuredLogger(Protocol):
    """Logger that takes a message plus key-value context."""

    def debug(self, message: str, **context: Any) -> None:
        ...

    def info(self, message: str, **context: Any) -> None:
        ...

    def warning(self, message: str, **context: Any) -> None:
        ...

    def error(self, message: str, **context: Any) -> None:
        ...


# =============================================================================
# JSON Logger Implementation
# =============================================================================

REDACTED = "***"

# Context keys whose values never reach the log output
SENSITIVE_KEYS = re.compile(r"secret|password|passwd|token|api[_-]?key|credential|private[_-]?key", re.IGNORECASE)


def redact(context: Mapping[str, Any], pattern: re.Pattern[str] = SENSITIVE_KEYS) -> dict[str, Any]:
    """Copy of context with sensitive values masked, nested mappings included."""
    masked: dict[str, Any] = {}
    for key, value in context.items():
        if value is not None and pattern.search(str(key)):
            masked[key] = REDACTED
        elif isinstance(value, Mapping):
            masked[key] = redact(value, pattern)
        else:
            masked[key] = value
    return masked


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True)
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, Enum):
        return value.value
    return str(value)


@dataclass
class JSONLogger:
    """
    Structured logger that outputs JSON-formatted logs.

    Records are only built when the underlying logger is enabled for the
    level. Context values under sensitive keys (secret, password, token,
    api key, credential) are masked unless ``redact_sensitive`` is off.
    Pydantic models, results with ``to_dict()`` and dataclasses are
    serialised as objects.

    Example output:
        {"timestamp": "2026-01-02T10:30:00+00:00", "level": "info",
         "message": "Pipeline started", "flow": "demo-dev",
         "components": ["DemoFirst", "DemoSecond"]}
    """

    name: str = "iacpipe"
    flow: str | None = None
    extra_context: dict[str, Any] = field(default_factory=dict)
    redact_sensitive: bool = True
    _python_logger: logging.Logger | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        self._python_logger = logging.getLogger(self.name)

    def _log(self, level: LogLevel, message: str, context: dict[str, Any]) -> None:
        numeric = logging.getLevelName(level.value.upper())
        if not self._python_logger.isEnabledFor(numeric):
            return

        fields = {**self.extra_context, **context}
        if self.redact_sensitive:
            fields = redact(fields)

        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level.value,
            "message": message,
            **fields,
        }
        if self.flow:
            record["flow"] = self.flow

        self._python_logger.log(numeric, json.dumps(record, default=_jsonable))

    def debug(self, message: str, **context: Any) -> None:
        self._log(LogLevel.DEBUG, message, context)

    def info(self, message: str, **context: Any) -> None:
        self._log(LogLevel.INFO, message, context)

    def warning(self, message: str, **context: Any) -> None:
        self._log(LogLevel.WARNING, message, context)

    def error(self, message: str, **context: Any) -> None:
        self._log(LogLevel.ERROR, message, context)

    def with_context(self, **extra: Any) -> "JSONLogger":
        """Create a new logger with additional context."""
        return JSONLogger(
            name=self.name,
            flow=self.flow,
            extra_context={**self.extra_context, **extra},
            redact_sensitive=self.redact_sensitive,
        )


# =============================================================================
# Pipeline Logger
# =============================================================================


@dataclass
class PipelineLogger:
    """
    Run lifecycle events.

    Example:
        events = PipelineLogger(flow="demo-dev", template="demo")
        events.pipeline_started(action="deploy", components=["DemoFirst"])
        events.component_completed("DemoFirst", "deploy", duration_ms=12.5, success=True)
        events.pipeline_completed(action="deploy", success=True, duration_ms=40.0, result_count=1)
    """

    flow: str
    template: str = ""
    inner: StructuredLogger | None = None

    def __post_init__(self) -> None:
        if self.inner is None:
            self.inner = JSONLogger(
                name="iacpipe.pipeline",
                flow=self.flow,
                extra_context={"template": self.template} if self.template else {},
            )

    def pipeline_started(self, action: str, components: list[str]) -> None:
        self.inner.info(
            "Pipeline started",
            action=action,
            components=components,
            component_count=len(components),
        )

    def pipeline_completed(
        self,
        action: str,
        success: bool,
        duration_ms: float,
        result_count: int,
        error: str | None = None,
    ) -> None:
        if success:
            self.inner.info(
                "Pipeline completed",
                action=action,
                success=True,
                duration_ms=round(duration_ms, 2),
                result_count=result_count,
            )
        else:
            self.inner.error(
                "Pipeline failed",
                action=action,
                success=False,
                duration_ms=round(duration_ms, 2),
                result_count=result_count,
                error=error,
            )

    def phase_started(self, phase: str, component_count: int) -> None:
        self.inner.debug("Phase started", phase=phase, component_count=component_count)

    def component_started(self, component: str, action: str) -> None:
        self.inner.debug("Component started", component=component, action=action)

    def component_completed(
        self,
        component: str,
        action: str,
        duration_ms: float,
        success: bool | None,
    ) -> None:
        self.inner.debug(
            "Component completed",
            component=component,
            action=action,
            duration_ms=round(duration_ms, 2),
            success=success,
        )

    def component_failed(self, component: str, action: str, message: str) -> None:
        self.inner.warning(
            "Component reported failure",
            component=component,
            action=action,
            message=message,
        )

    def component_error(self, component: str, action: str, error: str, error_type: str) -> None:
        self.inner.error(
            "Component error",
            component=component,
            action=action,
            error=error,
            error_type=error_type,
        )
