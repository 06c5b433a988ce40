"""
Modhost - Models.

============================================================
RESPONSIBILITY
============================================================
Defines data models for the lifecycle orchestrator.

- Module lifecycle status
- Per-module lifecycle record
- Aggregate stop report

============================================================
"""

from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from hostcore.exceptions import StopFailed

from .schema import ResolvedConfig


# ============================================================
# MODULE STATUS
# ============================================================

class ModuleStatus(Enum):
    """Module lifecycle status."""

    PENDING = "pending"
    """Module has not been started."""

    STARTING = "starting"
    """Configuration resolved, start function running."""

    STARTED = "started"
    """Start returned; state visible in the system context."""

    FAILED = "failed"
    """Configuration or start failed."""

    STOPPING = "stopping"
    """Stop function running."""

    STOPPED = "stopped"
    """Stop returned; state released."""

    STOP_FAILED = "stop_failed"
    """Stop raised or timed out."""

    @property
    def is_terminal(self) -> bool:
        """Check if no further transition is expected."""
        return self in (
            ModuleStatus.STARTED,
            ModuleStatus.FAILED,
            ModuleStatus.STOPPED,
            ModuleStatus.STOP_FAILED,
        )

    @property
    def is_active(self) -> bool:
        """Check if module holds live resources."""
        return self in (ModuleStatus.STARTING, ModuleStatus.STARTED, ModuleStatus.STOPPING)


# ============================================================
# LIFECYCLE RECORD
# ============================================================

@dataclass
class ModuleRecord:
    """
    Runtime record of one module.

    Created when the orchestrator begins the module's start. The
    state object is owned here until stop consumes it.
    """

    name: str
    status: ModuleStatus = ModuleStatus.PENDING
    config: Optional[ResolvedConfig] = None
    state: Any = None
    error: Optional[BaseException] = None
    started_at: Optional[datetime] = None
    stopped_at: Optional[datetime] = None
    start_duration_seconds: Optional[float] = None
    stop_duration_seconds: Optional[float] = None

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize without state and with the config redacted."""
        return {
            "name": self.name,
            "status": self.status.value,
            "config": self.config.redacted() if self.config is not None else None,
            "error": self.error_message,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "stopped_at": self.stopped_at.isoformat() if self.stopped_at else None,
        }


# ============================================================
# STOP REPORT
# ============================================================

@dataclass
class StopReport:
    """
    Result of a stop pass.

    Every module gets a stop attempt; failures are collected here
    instead of being raised one by one.
    """

    attempted: List[str] = field(default_factory=list)
    """Every module that received a stop call, in stop order."""

    stopped: List[str] = field(default_factory=list)
    """Modules stopped cleanly, in stop order."""

    failures: List[StopFailed] = field(default_factory=list)
    """One entry per module whose stop failed, in stop order."""

    @property
    def success(self) -> bool:
        return not self.failures

    @property
    def failed_modules(self) -> List[str]:
        return [f.module for f in self.failures]

    def record_stopped(self, name: str) -> None:
        self.attempted.append(name)
        self.stopped.append(name)

    def record_failure(self, failure: StopFailed) -> None:
        self.attempted.append(failure.module)
        self.failures.append(failure)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "attempted": list(self.attempted),
            "stopped": list(self.stopped),
            "failures": [f.to_dict() for f in self.failures],
        }


__all__ = [
    "ModuleStatus",
    "ModuleRecord",
    "StopReport",
]
