"""
Pipeline Manager.

Runs template components in order for one lifecycle action.

State machine:
    IDLE -> CONFIGURED -> EXECUTING -> COMPLETED | FAILED

Per-component loop (process):
    1. component = registry.resolve(spec.name)
    2. component.configure(spec)
    3. input = transform(spec, scope)
    4. result = component.<action>(input, context), if the method exists
    5. results.append(result or None)
    6. scope.update(result.output)

Deploy only:
    - A setup phase runs first; its output seeds the main phase scope
    - Component output lists are resolved into result.exports
    - With IACPIPE_ENV_ACTION=EXPOSE the final output and flow id are set as
      environment variables; a failure there is logged, not raised

Failure semantics:
    - A raised exception aborts the remaining components (fail-fast)
    - A result with success=False is recorded and the loop continues
    - Every fatal path returns PipelineRunResult(success=False, errors=[...])
      with the results and scope gathered so far

Usage:
    manager = PipelineManager(registry=registry)
    manager.configure(load_config("cfg/config.json"))
    result = await manager.deploy({"template": "demo", "stack": "dev", "project": "demo"})
"""

from __future__ import annotations

import inspect
import logging
import time
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping

from pydantic import ValidationError

from iacpipe.config.schemas import PipelineConfig
from iacpipe.errors import ConfigurationError, IacPipeError
from iacpipe.ioc import Registry
from iacpipe.templates import ComponentSpec, PipelineTemplate
from iacpipe.variables import VariableResolver

from .component import ACTIONS, ComponentResult
from .context import PipelineArgs, PipelineContext, PipelineRunResult
from .environment import expose, exposure_enabled
from .observability import PipelineLogger

if TYPE_CHECKING:
    from iacpipe.templates import TemplateManager

logger = logging.getLogger(__name__)

TEMPLATE_MANAGER_KEY = "template:manager"
VARIABLE_RESOLVER_KEY = "variable:resolver"

TransformFn = Callable[[ComponentSpec, dict[str, Any]], Awaitable[dict[str, Any]]]

MESSAGES = {
    "deploy": "Pipeline {name} deployed successfully.",
    "undeploy": "Pipeline {name} undeployed successfully.",
    "destroy": "Pipeline {name} destroyed successfully.",
    "validate": "Pipeline {name} configuration is valid.",
    "status": "Pipeline {name} status collected.",
}


class PipelineState(str, Enum):
    IDLE = "idle"
    CONFIGURED = "configured"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class PipelineManager:
    """
    Orchestrates template components through the Registry.

    The registry is the only shared state: components, the template manager
    (``template:manager``) and the variable resolver (``variable:resolver``)
    are all resolved from it.
    """

    def __init__(
        self,
        config: PipelineConfig | Mapping[str, Any] | None = None,
        dependencies: Mapping[str, Any] | None = None,
        *,
        registry: Registry | None = None,
    ) -> None:
        if registry is None:
            registry = (dependencies or {}).get("registry")
        self.registry: Registry = registry if registry is not None else Registry()
        self.config: PipelineConfig | None = None
        self.state = PipelineState.IDLE
        if config is not None:
            self.configure(config)

    def __repr__(self) -> str:
        return f"PipelineManager(state={self.state.value}, registry={self.registry!r})"

    # =========================================================================
    # Configuration
    # =========================================================================

    def configure(
        self,
        config: PipelineConfig | Mapping[str, Any],
        registry: Registry | None = None,
    ) -> "PipelineManager":
        """
        Store the configuration and register its dependencies.

        Raises:
            ConfigurationError: Invalid document or descriptor
        """
        try:
            if not isinstance(config, PipelineConfig):
                config = PipelineConfig.model_validate(dict(config))
            if registry is not None:
                self.registry = registry
            if config.dependencies:
                self.registry.register(config.dependencies)
        except ConfigurationError:
            raise
        except (ValidationError, IacPipeError, TypeError, ValueError) as e:
            raise ConfigurationError(f"Failed to configure pipeline: {e}") from e

        self.config = config
        self.state = PipelineState.CONFIGURED
        logger.info(f"[pipeline] Configured (registry keys={len(self.registry)})")
        return self

    def get_id(self, args: PipelineArgs | None = None) -> str:
        """Run identifier: explicit id, else ``<project>-<stack>``."""
        if args is not None and args.id:
            return args.id
        if self.config is not None and self.config.id:
            return self.config.id
        project = (args.project if args else None) or (self.config.project if self.config else None)
        stack = (args.stack if args else None) or (self.config.stack if self.config else None)
        return f"{project or ''}-{stack or ''}"

    def _to_args(self, args: PipelineArgs | Mapping[str, Any] | None) -> PipelineArgs:
        if args is None:
            args = PipelineArgs()
        elif not isinstance(args, PipelineArgs):
            args = PipelineArgs.model_validate(dict(args))

        if self.config is not None:
            defaults = {
                "template": self.config.name,
                "stack": self.config.stack,
                "project": self.config.project,
            }
            missing = {k: v for k, v in defaults.items() if getattr(args, k) is None and v is not None}
            if missing:
                args = args.model_copy(update=missing)
        return args

    # =========================================================================
    # Actions
    # =========================================================================

    async def deploy(self, args: PipelineArgs | Mapping[str, Any] | None = None) -> PipelineRunResult:
        """Run the setup phase, then deploy every component."""
        return await self.run("deploy", args)

    async def undeploy(self, args: PipelineArgs | Mapping[str, Any] | None = None) -> PipelineRunResult:
        return await self.run("undeploy", args)

    async def destroy(self, args: PipelineArgs | Mapping[str, Any] | None = None) -> PipelineRunResult:
        return await self.run("destroy", args)

    async def validate(self, args: PipelineArgs | Mapping[str, Any] | None = None) -> PipelineRunResult:
        return await self.run("validate", args)

    async def status(self, args: PipelineArgs | Mapping[str, Any] | None = None) -> PipelineRunResult:
        return await self.run("status", args)

    async def run(self, action: str, args: PipelineArgs | Mapping[str, Any] | None = None) -> PipelineRunResult:
        """
        Run one lifecycle action over the template.

        Never raises for pipeline failures; they are reported in the result.
        """
        if action not in ACTIONS:
            raise ValueError(f"Unknown pipeline action '{action}', expected one of {ACTIONS}")

        args = self._to_args(args)
        context = PipelineContext(id=self.get_id(args), args=args, action=action, registry=self.registry)
        result = PipelineRunResult(
            action=action,
            template_name=args.template,
            stack_name=args.stack,
            project_name=args.project,
            flow=context.id,
        )
        events = PipelineLogger(flow=context.id, template=args.template or "")
        scope: dict[str, Any] = {}

        self.state = PipelineState.EXECUTING
        try:
            if self.config is None:
                raise ConfigurationError("Pipeline is not configured")

            template = await self._load_template(args, context)
            context.template = template
            components = template.components
            events.pipeline_started(action, [c.name for c in components])
            resolver = await self._resolver()

            if action == "deploy":
                events.phase_started("setup", len(components))
                _, seed = await self.process(
                    components,
                    "setup",
                    self._transform(resolver, "setup"),
                    context,
                    results=result.setup_results,
                    events=events,
                )
                scope.update(seed)

            events.phase_started(action, len(components))
            await self.process(
                components,
                action,
                self._transform(resolver, "input"),
                context,
                scope=scope,
                results=result.results,
                events=events,
            )

            if action == "deploy":
                result.exports = await self._exports(components, resolver, scope)
                self._expose(scope, context.id)

            result.message = MESSAGES[action].format(name=template.name)
            result.errors.extend(context.failures)
            self.state = PipelineState.COMPLETED
        except Exception as e:
            result.errors.extend(context.failures)
            result.fail(str(e), f"Pipeline {args.template} {action} failed: {e}")
            self.state = PipelineState.FAILED
            logger.error(f"[pipeline] {action} failed for flow={context.id}: {e}")
        finally:
            result.output = dict(scope)
            result.duration = context.elapsed_ms
            events.pipeline_completed(
                action,
                result.success,
                result.duration,
                len(result.results),
                error=result.errors[-1] if not result.success and result.errors else None,
            )

        return result

    async def process(
        self,
        components: list[ComponentSpec],
        action: str,
        transform: TransformFn,
        context: PipelineContext,
        scope: dict[str, Any] | None = None,
        results: list[Any] | None = None,
        events: PipelineLogger | None = None,
    ) -> tuple[list[Any], dict[str, Any]]:
        """
        Run one action over components in template order.

        ``scope`` and ``results`` are updated in place, so a caller that
        catches an exception still sees what completed before it.

        Returns:
            (results, scope)
        """
        scope = {} if scope is None else scope
        results = [] if results is None else results
        events = events or PipelineLogger(flow=context.id)

        for spec in components:
            started = time.perf_counter()
            events.component_started(spec.name, action)

            try:
                component = await self.registry.resolve(spec.name)
                await _maybe_await(component.configure(spec))
                input = await transform(spec, scope)

                method = getattr(component, action, None)
                result = None
                if callable(method):
                    result = await _maybe_await(method(input, context))
            except Exception as e:
                events.component_error(spec.name, action, str(e), type(e).__name__)
                raise

            results.append(result)
            normalised = ComponentResult.from_value(result, action)
            if normalised is not None:
                scope.update(normalised.output)

            duration_ms = (time.perf_counter() - started) * 1000
            context.record_timing(spec.name, action, duration_ms)

            failure = None if normalised is None else normalised.failure
            if failure is not None:
                context.record_failure(spec.name, action, failure)
                events.component_failed(spec.name, action, failure)
            events.component_completed(
                spec.name, action, duration_ms, None if result is None else failure is None
            )

        return results, scope

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _load_template(self, args: PipelineArgs, context: PipelineContext) -> PipelineTemplate:
        if not args.template:
            raise ConfigurationError("A valid template name was not provided")

        manager: TemplateManager = await self.registry.resolve(TEMPLATE_MANAGER_KEY)
        template = await manager.load(args.template, {"flow": context.id})
        if not isinstance(template, PipelineTemplate):
            template = PipelineTemplate.model_validate(template)

        if not template.engine:
            raise ConfigurationError(f"Template '{template.name}' does not declare an engine")

        logger.debug(
            f"[pipeline] Loaded template '{template.name}' v{template.version} "
            f"(engine={template.engine}, components={len(template.components)})"
        )
        return template

    async def _resolver(self) -> VariableResolver:
        resolver = None
        if self.registry.has(VARIABLE_RESOLVER_KEY):
            resolver = await self.registry.resolve(VARIABLE_RESOLVER_KEY)
        return resolver or VariableResolver({"registry": self.registry})

    @staticmethod
    def _transform(resolver: VariableResolver, key: str) -> TransformFn:
        async def transform(spec: ComponentSpec, scope: dict[str, Any]) -> dict[str, Any]:
            return await resolver.process(spec.variables(key), scope)

        return transform

    @staticmethod
    def _expose(output: dict[str, Any], flow: str) -> None:
        if not exposure_enabled():
            return
        try:
            expose({**output, "flow": flow}, flow=flow)
        except Exception as e:
            logger.warning(f"[pipeline] Could not expose environment variables for flow={flow}: {e}")

    @staticmethod
    async def _exports(
        components: list[ComponentSpec],
        resolver: VariableResolver,
        scope: dict[str, Any],
    ) -> dict[str, Any]:
        exports: dict[str, Any] = {}
        for spec in components:
            if spec.output:
                exports.update(await resolver.process(spec.output, scope))
        return exports
