"""
Modhost - Lifecycle Orchestrator.

============================================================
RESPONSIBILITY
============================================================
Drives module start in resolved order and module stop in the
reverse of the realized start order.

- Resolves each module's configuration just before its start
- Exposes a module's state only after it reaches STARTED
- Halts on the first failing module, then stops every module
  that already started, newest first (best effort)
- Stop is exhaustive: every started module gets a stop call and
  all failures are returned together in a StopReport

============================================================
STATES
============================================================
    PENDING -> STARTING -> STARTED -> STOPPING -> STOPPED
                       +-> FAILED             +-> STOP_FAILED

============================================================
CONCURRENCY
============================================================
Strictly sequential. Each start/stop call completes (or times
out) before the next one begins. Plain functions run inline
unless a timeout is configured, in which case they run in a
worker thread so the timeout can fire; coroutine functions are
awaited under asyncio.wait_for.

============================================================
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, List, Mapping, Optional, Sequence

from hostcore.clock import monotonic, now_utc
from hostcore.exceptions import (
    ModuleNotFound,
    ModuleTimeout,
    OrchestratorStateError,
    StartupFailure,
    StopFailed,
)

from .context import SystemContext
from .hooks import HookRegistry
from .manifest import ManifestRegistry
from .models import ModuleRecord, ModuleStatus, StopReport
from .schema import validate


RawConfig = Mapping[str, Mapping[str, Any]]


class LifecycleOrchestrator:
    """
    Starts and stops the modules of one manifest registry.

    Usage:
        lifecycle = LifecycleOrchestrator(registry, hooks)
        context = await lifecycle.start_all(resolve(registry), raw_config)
        ...
        report = await lifecycle.stop_all(context)
    """

    def __init__(
        self,
        registry: ManifestRegistry,
        hooks: Optional[HookRegistry] = None,
        start_timeout_seconds: Optional[float] = None,
        stop_timeout_seconds: Optional[float] = None,
        cleanup_on_failure: bool = True,
        correlation_id: str = "",
    ):
        """
        Args:
            registry: Registered modules
            hooks: Hook registry populated during start
            start_timeout_seconds: Per-module start timeout (None = unbounded)
            stop_timeout_seconds: Per-module stop timeout (None = unbounded)
            cleanup_on_failure: Stop started modules when startup fails
            correlation_id: Run id exposed to modules through the context
        """
        self._registry = registry
        self._hooks = hooks or HookRegistry()
        self._start_timeout = start_timeout_seconds
        self._stop_timeout = stop_timeout_seconds
        self._cleanup_on_failure = cleanup_on_failure
        self._correlation_id = correlation_id
        self._context: Optional[SystemContext] = None
        self._lock = asyncio.Lock()
        self._logger = logging.getLogger(__name__)

    # --------------------------------------------------------
    # Properties
    # --------------------------------------------------------

    @property
    def context(self) -> Optional[SystemContext]:
        return self._context

    @property
    def hooks(self) -> HookRegistry:
        return self._hooks

    def status(self, name: str) -> ModuleStatus:
        """Current status of a module; PENDING until its start begins."""
        if self._context is None:
            return ModuleStatus.PENDING
        try:
            return self._context.record(name).status
        except ModuleNotFound:
            return ModuleStatus.PENDING

    # --------------------------------------------------------
    # Start
    # --------------------------------------------------------

    async def start_all(
        self,
        order: Sequence[str],
        raw_config: Optional[RawConfig] = None,
    ) -> SystemContext:
        """
        Start modules strictly in the given order.

        Args:
            order: Resolved start order
            raw_config: module -> raw key/value pairs

        Returns:
            The populated system context

        Raises:
            StartupFailure: a module's configuration or start failed;
                already-started modules have been stopped
            OrchestratorStateError: start_all already ran
        """
        async with self._lock:
            if self._context is not None:
                raise OrchestratorStateError("start_all may only run once per orchestrator")

            raw_config = raw_config or {}
            definitions = [self._registry.get_definition(name) for name in order]
            self._warn_unused_config(order, raw_config)

            context = SystemContext(self._hooks, correlation_id=self._correlation_id)
            self._context = context

            for definition in definitions:
                for hook_name, contract in definition.manifest.hooks.items():
                    self._hooks.declare(definition.name, hook_name, contract)

            for definition in definitions:
                name = definition.name
                record = context.create_record(name)
                try:
                    await self._start_module(context, record, definition, raw_config.get(name))
                except Exception as e:
                    await self._handle_start_failure(context, record, e)

            self._hooks.seal()
            self._logger.info(
                f"Started {len(context.start_order)} modules: {', '.join(context.start_order)}"
            )
            return context

    async def _start_module(self, context, record: ModuleRecord, definition, supplied) -> None:
        name = definition.name
        record.status = ModuleStatus.STARTING
        record.config = validate(definition.manifest.config, supplied, module=name)

        began = monotonic()
        with self._hooks.registration_scope(name):
            state = await self._invoke(
                definition.start, "start", name, context.for_module(name), record.config,
            )

        record.state = state
        record.status = ModuleStatus.STARTED
        record.started_at = now_utc()
        record.start_duration_seconds = monotonic() - began
        context.install(name, state, definition.services)

        self._logger.info(f"Started module: {name}")

    async def _handle_start_failure(
        self,
        context: SystemContext,
        record: ModuleRecord,
        error: Exception,
    ) -> None:
        record.status = ModuleStatus.FAILED
        record.error = error
        self._hooks.discard_owner(record.name)
        self._logger.error(f"Module start failed: {record.name}: {error}")

        cleanup_errors: List[StopFailed] = []
        if self._cleanup_on_failure:
            started = context.started_modules()
            if started:
                self._logger.info(f"Stopping {len(started)} started modules after failure")
            report = await self._stop_started(context)
            cleanup_errors = list(report.failures)

        self._hooks.seal()
        raise StartupFailure(record.name, error, cleanup_errors) from error

    def _warn_unused_config(self, order: Sequence[str], raw_config: RawConfig) -> None:
        for name in sorted(set(raw_config) - set(order)):
            self._logger.warning(f"Configuration supplied for unknown module: {name}")

    # --------------------------------------------------------
    # Stop
    # --------------------------------------------------------

    async def stop_all(self, context: Optional[SystemContext] = None) -> StopReport:
        """
        Stop every started module in reverse of the realized start order.

        Never raises for module failures; they are collected in the
        returned report. Calling it again stops nothing.
        """
        context = context or self._context
        if context is None:
            return StopReport()

        async with self._lock:
            report = await self._stop_started(context)

        if report.success:
            self._logger.info(f"Stopped {len(report.stopped)} modules")
        else:
            self._logger.error(
                f"Stopped {len(report.stopped)} modules, "
                f"{len(report.failures)} failed: {', '.join(report.failed_modules)}"
            )
        return report

    async def _stop_started(self, context: SystemContext) -> StopReport:
        report = StopReport()

        for name in reversed(context.start_order):
            record = context.record(name)
            if record.status != ModuleStatus.STARTED:
                continue

            definition = self._registry.get_definition(name)
            record.status = ModuleStatus.STOPPING
            state = context.release(name)
            self._hooks.discard_owner(name)

            began = monotonic()
            try:
                await self._invoke(definition.stop, "stop", name, state)
            except Exception as e:
                record.status = ModuleStatus.STOP_FAILED
                record.error = e
                report.record_failure(StopFailed(name, e))
                self._logger.error(f"Module stop failed: {name}: {e}")
            else:
                record.status = ModuleStatus.STOPPED
                report.record_stopped(name)
                self._logger.info(f"Stopped module: {name}")
            finally:
                record.state = None
                record.stopped_at = now_utc()
                record.stop_duration_seconds = monotonic() - began

        return report

    # --------------------------------------------------------
    # Invocation
    # --------------------------------------------------------

    async def _invoke(
        self,
        fn: Optional[Callable[..., Any]],
        operation: str,
        name: str,
        *args: Any,
    ) -> Any:
        """Call a start/stop entry point, honoring the configured timeout."""
        if fn is None:
            return None

        timeout = self._start_timeout if operation == "start" else self._stop_timeout
        if timeout is None:
            result = fn(*args)
            if inspect.isawaitable(result):
                result = await result
            return result

        try:
            if _is_async_callable(fn):
                return await asyncio.wait_for(fn(*args), timeout=timeout)
            result = await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=timeout)
            if inspect.isawaitable(result):
                result = await asyncio.wait_for(result, timeout=timeout)
            return result
        except asyncio.TimeoutError as e:
            raise ModuleTimeout(name, operation, timeout) from e


def _is_async_callable(fn: Any) -> bool:
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(
        getattr(fn, "__call__", None)
    )


__all__ = [
    "RawConfig",
    "LifecycleOrchestrator",
]
