"""
Modhost - Diagnostic Dump.

Pydantic models describing the system at a point in time: the
realized start order and, per module, its status, redacted
configuration and error. Sensitive configuration values never
appear in a dump.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .context import SystemContext
from .manifest import Manifest, ManifestRegistry
from .models import ModuleStatus
from .schema import REDACTION_MARKER


# =======================
# MODELS
# =======================

class ModuleDump(BaseModel):
    name: str
    description: str = ""
    status: str  # ModuleStatus value
    dependencies: List[str] = Field(default_factory=list)
    config: Optional[Dict[str, Any]] = None  # sensitive values redacted
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    stopped_at: Optional[datetime] = None
    start_duration_seconds: Optional[float] = None
    stop_duration_seconds: Optional[float] = None


class SystemDump(BaseModel):
    correlation_id: str = ""
    start_order: List[str] = Field(default_factory=list)
    started: List[str] = Field(default_factory=list)
    modules: List[ModuleDump] = Field(default_factory=list)

    def module(self, name: str) -> ModuleDump:
        for entry in self.modules:
            if entry.name == name:
                return entry
        raise KeyError(name)


# =======================
# BUILDER
# =======================

def _dependency_names(registry: ManifestRegistry, manifest: Manifest) -> List[str]:
    names = []
    for ref in manifest.deps:
        if isinstance(ref, Manifest):
            ref = registry.identity_of(ref) or f"<unregistered manifest {ref.description!r}>"
        names.append(ref)
    return sorted(set(names))


def build_dump(
    registry: ManifestRegistry,
    context: Optional[SystemContext] = None,
) -> SystemDump:
    """
    Describe every registered module.

    Modules the orchestrator has not reached yet are reported as
    pending with no configuration.
    """
    dump = SystemDump()
    if context is not None:
        dump.correlation_id = context.correlation_id
        dump.start_order = context.start_order
        dump.started = context.started_modules()

    for definition in registry.definitions():
        entry = ModuleDump(
            name=definition.name,
            description=definition.manifest.description,
            status=ModuleStatus.PENDING.value,
            dependencies=_dependency_names(registry, definition.manifest),
        )

        record = None
        if context is not None:
            record = next((r for r in context.records() if r.name == definition.name), None)

        if record is not None:
            entry.status = record.status.value
            entry.config = record.config.redacted(REDACTION_MARKER) if record.config is not None else None
            entry.error = record.error_message
            entry.started_at = record.started_at
            entry.stopped_at = record.stopped_at
            entry.start_duration_seconds = record.start_duration_seconds
            entry.stop_duration_seconds = record.stop_duration_seconds

        dump.modules.append(entry)

    return dump


__all__ = [
    "ModuleDump",
    "SystemDump",
    "build_dump",
]
