"""
Pipeline orchestration for iacpipe.

Exports:
    - PipelineManager: runs template components for one lifecycle action
    - PipelineContext, PipelineArgs, PipelineRunResult: run state and result
    - BaseComponent, ComponentResult, Component: component contract
    - PipelineLogger, JSONLogger: structured run events
    - create_pipeline_manager, default_dependencies, shutdown_services: wiring
"""

from .component import ACTIONS, BaseComponent, Component, ComponentResult
from .context import PipelineArgs, PipelineContext, PipelineRunResult
from .factory import (
    SECRET_MANAGER_KEY,
    create_pipeline_manager,
    default_dependencies,
    shutdown_services,
)
from .manager import (
    TEMPLATE_MANAGER_KEY,
    VARIABLE_RESOLVER_KEY,
    PipelineManager,
    PipelineState,
)
from .observability import JSONLogger, PipelineLogger

__all__ = [
    "PipelineManager",
    "PipelineState",
    "PipelineContext",
    "PipelineArgs",
    "PipelineRunResult",
    "BaseComponent",
    "Component",
    "ComponentResult",
    "ACTIONS",
    "PipelineLogger",
    "JSONLogger",
    "create_pipeline_manager",
    "default_dependencies",
    "shutdown_services",
    "TEMPLATE_MANAGER_KEY",
    "VARIABLE_RESOLVER_KEY",
    "SECRET_MANAGER_KEY",
]
