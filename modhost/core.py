"""
Modhost - Core.

============================================================
RESPONSIBILITY
============================================================
Main orchestrator class: the single entrypoint that wires the
engine components together.

- Collects modules (direct registration and plugin loaders)
- Resolves the start order
- Controls startup and shutdown
- Handles signals (SIGINT, SIGTERM)
- Provides status and a redacted diagnostic dump

============================================================
ARCHITECTURAL POSITION
============================================================
- This orchestrator has NO module logic
- It does NOT interpret module state
- It ONLY coordinates registration, ordering and lifecycle

============================================================
"""

import asyncio
import json
import logging
import signal
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from hostcore.clock import ClockFactory
from hostcore.exceptions import (
    ConfigurationError,
    OrchestratorStateError,
    StartupFailure,
    classify_exception,
)

from .config import OrchestratorConfig
from .context import SystemContext
from .diagnostics import SystemDump, build_dump
from .graph import resolve
from .hooks import HookRegistry
from .lifecycle import LifecycleOrchestrator, RawConfig
from .manifest import Manifest, ManifestRegistry, ModuleDefinition, ServiceFn, StartFn, StopFn
from .models import StopReport
from .plugins import DiscoveryResult, PluginLoader


# ============================================================
# LOGGING SETUP
# ============================================================

def setup_logging(
    level: str = "INFO",
    log_format: str = "json",
    correlation_id: Optional[str] = None,
) -> logging.Logger:
    """
    Set up structured logging.

    Args:
        level: Log level
        log_format: Output format (json or text)
        correlation_id: Correlation ID for tracing

    Returns:
        Configured logger
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
                "correlation_id": correlation_id or "",
            })
        )
    else:
        formatter = logging.Formatter(
            f"%(asctime)s | %(levelname)-8s | %(name)s | {correlation_id or ''} | %(message)s"
        )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logging.getLogger("modhost")


# ============================================================
# ORCHESTRATOR
# ============================================================

class Orchestrator:
    """
    Main system orchestrator.

    Usage:
        orchestrator = create_orchestrator()
        orchestrator.register_module("log", Manifest(), start=log_start, stop=log_stop)
        orchestrator.load_plugins(DirectoryPluginLoader(["plugins"]))

        await orchestrator.start(raw_config)
        ...
        report = await orchestrator.stop()
    """

    def __init__(
        self,
        config: Optional[OrchestratorConfig] = None,
        configure_logging: bool = True,
    ):
        """
        Initialize orchestrator.

        Args:
            config: Orchestrator configuration
            configure_logging: Install the root log handler
        """
        self._config = config or OrchestratorConfig()

        errors = self._config.validate()
        if errors:
            raise ConfigurationError(f"Invalid configuration: {', '.join(errors)}")

        self._correlation_id = (
            f"{self._config.correlation_id_prefix}_"
            f"{datetime.now(timezone.utc).strftime('%Y%m%d_%H%M%S')}"
        )
        if configure_logging:
            self._logger = setup_logging(
                level=self._config.log_level,
                log_format=self._config.log_format,
                correlation_id=self._correlation_id,
            )
        else:
            self._logger = logging.getLogger("modhost")

        self._registry = ManifestRegistry()
        self._hooks = HookRegistry()
        self._lifecycle = LifecycleOrchestrator(
            self._registry,
            self._hooks,
            start_timeout_seconds=self._config.start_timeout_seconds,
            stop_timeout_seconds=self._config.stop_timeout_seconds,
            cleanup_on_failure=self._config.cleanup_on_failure,
            correlation_id=self._correlation_id,
        )

        self._order: Optional[List[str]] = None
        self._plugin_results: List[DiscoveryResult] = []
        self._running = False
        self._stop_report: Optional[StopReport] = None
        self._shutdown_event: Optional[asyncio.Event] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

        self._logger.info(f"Orchestrator initialized | correlation_id={self._correlation_id}")

    # --------------------------------------------------------
    # Properties
    # --------------------------------------------------------

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    @property
    def correlation_id(self) -> str:
        return self._correlation_id

    @property
    def registry(self) -> ManifestRegistry:
        return self._registry

    @property
    def hooks(self) -> HookRegistry:
        return self._hooks

    @property
    def context(self) -> Optional[SystemContext]:
        return self._lifecycle.context

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def has_started_modules(self) -> bool:
        """True while any module is STARTED, including after a failed startup."""
        context = self._lifecycle.context
        return context is not None and bool(context.started_modules())

    # --------------------------------------------------------
    # Module Registration
    # --------------------------------------------------------

    def register_module(
        self,
        name: str,
        manifest: Manifest,
        start: Optional[StartFn] = None,
        stop: Optional[StopFn] = None,
        services: Optional[Mapping[str, ServiceFn]] = None,
    ) -> ModuleDefinition:
        """Register a module directly."""
        definition = self._registry.register(name, manifest, start=start, stop=stop, services=services)
        self._logger.info(f"Registered module: {name}")
        return definition

    def load_plugins(self, loader: PluginLoader) -> DiscoveryResult:
        """
        Discover plugin modules and register them.

        Failing plugins are logged and skipped; the result lists them.
        """
        result = loader.discover()
        registered = result.register_into(self._registry)
        self._plugin_results.append(result)

        if registered:
            self._logger.info(f"Loaded {len(registered)} plugin modules: {', '.join(registered)}")
        for error in result.errors:
            self._logger.warning(f"Plugin skipped: {error.plugin}: {error.reason}")
        return result

    @property
    def plugin_errors(self) -> List[Any]:
        return [e for result in self._plugin_results for e in result.errors]

    # --------------------------------------------------------
    # Lifecycle
    # --------------------------------------------------------

    def resolve(self) -> List[str]:
        """Freeze the registry and compute the start order."""
        if self._order is None:
            self._order = resolve(self._registry)
            self._logger.info(f"Start order: {' -> '.join(self._order) or '(empty)'}")
        return list(self._order)

    async def start(self, raw_config: Optional[RawConfig] = None) -> SystemContext:
        """
        Start every module in dependency order.

        Raises:
            UnresolvedDependency, CyclicDependency: resolution failed
            StartupFailure: a module failed to configure or start
        """
        if self._running:
            raise OrchestratorStateError("Orchestrator already running")

        self._logger.info("=== ORCHESTRATOR STARTUP SEQUENCE ===")
        order = self.resolve()

        try:
            context = await self._lifecycle.start_all(order, raw_config)
        except StartupFailure as e:
            self._logger.error(
                f"Startup failed at {e.failed_module} "
                f"({classify_exception(e.cause).value}): {e.cause}"
            )
            if e.cleanup_errors:
                self._logger.critical(
                    f"{len(e.cleanup_errors)} modules failed to stop during cleanup"
                )
            raise

        self._running = True
        self._logger.info("=== ORCHESTRATOR STARTUP COMPLETE ===")
        return context

    async def stop(self) -> StopReport:
        """
        Stop every started module, newest first.

        Also releases modules left running by a startup failure when
        cleanup_on_failure is off.
        """
        if not self._running and not self.has_started_modules:
            return self._stop_report or StopReport()

        self._logger.info("=== ORCHESTRATOR SHUTDOWN SEQUENCE ===")
        report = await self._lifecycle.stop_all()
        self._running = False
        self._stop_report = report
        self._logger.info("=== ORCHESTRATOR SHUTDOWN COMPLETE ===")
        return report

    async def run_until_signal(self, raw_config: Optional[RawConfig] = None) -> StopReport:
        """
        Start, wait for SIGINT/SIGTERM, then stop.

        This is a long-lived call for process entry points.
        """
        if not self._running:
            await self.start(raw_config)

        self._loop = asyncio.get_running_loop()
        self._shutdown_event = asyncio.Event()
        self._install_signal_handlers()
        try:
            await self._shutdown_event.wait()
        finally:
            self._restore_signal_handlers()
        return await self.stop()

    def request_shutdown(self) -> None:
        """Wake run_until_signal()."""
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    # --------------------------------------------------------
    # Signal Handlers
    # --------------------------------------------------------

    def _install_signal_handlers(self) -> None:
        """Install signal handlers for graceful shutdown."""
        if sys.platform == "win32":
            signal.signal(signal.SIGINT, self._signal_handler)
        else:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, self._async_signal_handler, sig)

    def _restore_signal_handlers(self) -> None:
        """Restore original signal handlers."""
        if sys.platform == "win32":
            signal.signal(signal.SIGINT, signal.default_int_handler)
        else:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)

    def _signal_handler(self, signum: int, frame: Any) -> None:
        """Synchronous signal handler (Windows)."""
        self._logger.info(f"Received signal {signum}")
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self.request_shutdown)

    def _async_signal_handler(self, sig: signal.Signals) -> None:
        """Event loop signal handler (Unix)."""
        self._logger.info(f"Received signal {sig.name}")
        self.request_shutdown()

    # --------------------------------------------------------
    # Health & Status
    # --------------------------------------------------------

    def dump(self) -> SystemDump:
        """Redacted diagnostic dump of every registered module."""
        return build_dump(self._registry, self._lifecycle.context)

    def get_status(self) -> Dict[str, Any]:
        """Get orchestrator status."""
        clock = ClockFactory.get_clock()
        context = self._lifecycle.context

        return {
            "running": self._running,
            "correlation_id": self._correlation_id,
            "current_time": clock.now().isoformat(),
            "registered": sorted(self._registry.all()),
            "start_order": list(self._order) if self._order is not None else None,
            "started": context.started_modules() if context is not None else [],
            "modules": {
                name: self._lifecycle.status(name).value for name in self._registry
            },
            "plugin_errors": [e.to_dict() for e in self.plugin_errors],
            "last_stop": self._stop_report.to_dict() if self._stop_report else None,
        }


# ============================================================
# ORCHESTRATOR FACTORY
# ============================================================

def create_orchestrator(
    config: Optional[OrchestratorConfig] = None,
    configure_logging: bool = True,
) -> Orchestrator:
    """
    Factory function to create an orchestrator.

    Args:
        config: Configuration (or load from environment)
        configure_logging: Install the root log handler

    Returns:
        Configured Orchestrator instance
    """
    if config is None:
        config = OrchestratorConfig.from_env()

    return Orchestrator(config=config, configure_logging=configure_logging)


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
    "Orchestrator",
    "create_orchestrator",
    "setup_logging",
]
