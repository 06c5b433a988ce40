"""
Modhost Package - Module Lifecycle Orchestration.

============================================================
PACKAGE OVERVIEW
============================================================
Starts independently written modules in dependency order,
validates each module's configuration just before its start,
shares started modules' state through a read-only context,
and stops everything in reverse of the realized start order.

============================================================
CORE PRINCIPLES
============================================================
1. A module starts only after every dependency has started
2. Configuration is validated before start, never after
3. A module's state is visible only once it is STARTED
4. Stop is exhaustive: every started module gets a stop call
5. Sensitive configuration values never leave the module

============================================================
ARCHITECTURE
============================================================

    +-----------------------------------------------------+
    |                     Orchestrator                    |
    |-----------------------------------------------------|
    |  ManifestRegistry      |  modules + manifests       |
    |  DependencyGraph       |  deterministic start order |
    |  LifecycleOrchestrator |  start / stop passes       |
    |  SystemContext         |  started modules' state    |
    |  HookRegistry          |  named extension points    |
    |  PluginLoader          |  runtime module discovery  |
    |  CLI                   |  command-line interface    |
    +-----------------------------------------------------+

============================================================
QUICK START
============================================================
Programmatic usage::

    from modhost import FieldSpec, Manifest, create_orchestrator

    orchestrator = create_orchestrator()
    orchestrator.register_module(
        "db",
        Manifest(deps=["log"], config={"url": FieldSpec(type="string", required=True)}),
        start=open_pool,
        stop=close_pool,
    )
    await orchestrator.start({"db": {"url": "postgres://localhost/app"}})
    ...
    report = await orchestrator.stop()

Command line usage::

    modhost --plugin-dir plugins --config modules.yaml run

============================================================
"""

from .config import OrchestratorConfig, load_module_config
from .context import ModuleContext, StateView, SystemContext
from .core import Orchestrator, create_orchestrator, setup_logging
from .diagnostics import ModuleDump, SystemDump, build_dump
from .graph import DependencyGraph, resolve
from .hooks import HookDispatchResult, HookRegistry
from .lifecycle import LifecycleOrchestrator
from .manifest import Manifest, ManifestRegistry, ModuleDefinition
from .models import ModuleRecord, ModuleStatus, StopReport
from .plugins import (
    DirectoryPluginLoader,
    DiscoveryResult,
    EntryPointPluginLoader,
    NamespacePluginLoader,
    PluginLoader,
    discover_all,
)
from .schema import REDACTION_MARKER, FieldSpec, FieldType, ResolvedConfig, validate


__version__ = "1.0.0"

__all__ = [
    # Configuration
    "OrchestratorConfig",
    "load_module_config",
    # Schema
    "REDACTION_MARKER",
    "FieldSpec",
    "FieldType",
    "ResolvedConfig",
    "validate",
    # Manifests
    "Manifest",
    "ManifestRegistry",
    "ModuleDefinition",
    # Ordering
    "DependencyGraph",
    "resolve",
    # Lifecycle
    "LifecycleOrchestrator",
    "ModuleRecord",
    "ModuleStatus",
    "StopReport",
    # Context
    "ModuleContext",
    "StateView",
    "SystemContext",
    # Hooks
    "HookDispatchResult",
    "HookRegistry",
    # Plugins
    "DirectoryPluginLoader",
    "DiscoveryResult",
    "EntryPointPluginLoader",
    "NamespacePluginLoader",
    "PluginLoader",
    "discover_all",
    # Diagnostics
    "ModuleDump",
    "SystemDump",
    "build_dump",
    # Orchestrator
    "Orchestrator",
    "create_orchestrator",
    "setup_logging",
]
