"""
Host Core - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the orchestration engine.

- Provides clear exception hierarchy
- Every error names the offending module and the violated rule
- Supports error categorization for operators
- Includes context for debugging

============================================================
EXCEPTION HIERARCHY
============================================================
ModhostError (base)
├── ConfigurationError
├── ValidationFailure
│   ├── MissingRequiredField
│   ├── TypeMismatch
│   ├── ValidatorRejected
│   └── UnknownField
├── ManifestError
│   ├── InvalidManifest
│   ├── DuplicateModule
│   ├── ModuleNotFound
│   └── RegistryFrozen
├── GraphError
│   ├── UnresolvedDependency
│   └── CyclicDependency
├── LifecycleError
│   ├── StartupFailure
│   ├── StopFailed
│   ├── ModuleTimeout
│   ├── ModuleNotAvailable
│   └── OrchestratorStateError
├── HookError
│   ├── UnknownHook
│   ├── DuplicateHook
│   ├── HookRegistrationClosed
│   └── HookHandlerFailed
└── PluginLoadError

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels."""

    LOW = "low"
    """Minor issue, informational."""

    MEDIUM = "medium"
    """Moderate issue, requires attention."""

    HIGH = "high"
    """Serious issue, the system cannot run as declared."""

    CRITICAL = "critical"
    """Critical issue, resources may have leaked."""


# ============================================================
# ERROR CLASSIFICATION
# ============================================================

class ErrorClassification(Enum):
    """Classification of error recoverability."""

    RECOVERABLE = "recoverable"
    """Error is contained, the rest of the system continues."""

    TRANSIENT = "transient"
    """Temporary error, an operator retry may succeed."""

    NON_RECOVERABLE = "non_recoverable"
    """Permanent error, the manifest set or config must be fixed."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class ModhostError(Exception):
    """
    Base exception for all orchestration engine errors.

    All exceptions carry:
    - severity: for operator attention
    - context: structured fields naming module and rule
    - classification: recoverability
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    default_classification: ErrorClassification = ErrorClassification.RECOVERABLE

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.classification = classification or self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause is not None:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_recoverable(self) -> bool:
        """Check if error is recoverable."""
        return self.classification in (
            ErrorClassification.RECOVERABLE,
            ErrorClassification.TRANSIENT,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/diagnostics."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "classification": self.classification.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "cause": str(self.cause) if self.cause else None,
        }

    def to_log_format(self) -> str:
        """Format exception for structured logging."""
        ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        line = f"[{self.severity.value.upper()}] {type(self).__name__}: {self.message}"
        if ctx_str:
            line += f" | {ctx_str}"
        return line


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(ModhostError):
    """Error in orchestrator settings or raw module configuration input."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        source: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if source:
            context["source"] = source

        super().__init__(message, context=context, **kwargs)


# ============================================================
# VALIDATION ERRORS
# ============================================================

class ValidationFailure(ModhostError):
    """A module's supplied configuration does not satisfy its schema."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE
    rule: str = "validation"

    def __init__(
        self,
        message: str,
        key: str,
        module: Optional[str] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        context["rule"] = self.rule
        context["key"] = key
        if module:
            context["module"] = module

        self.key = key
        self.module = module

        super().__init__(message, context=context, **kwargs)


class MissingRequiredField(ValidationFailure):
    """Required field absent and no default to fall back on."""

    rule = "missing_required_field"

    def __init__(self, key: str, module: Optional[str] = None):
        super().__init__(
            message=f"Missing required configuration field: {key}",
            key=key,
            module=module,
        )


class TypeMismatch(ValidationFailure):
    """Supplied value has the wrong primitive kind."""

    rule = "type_mismatch"

    def __init__(
        self,
        key: str,
        expected_type: str,
        actual_type: str,
        module: Optional[str] = None,
    ):
        self.expected_type = expected_type
        self.actual_type = actual_type
        super().__init__(
            message=(
                f"Configuration field {key} expects {expected_type}, "
                f"got {actual_type}"
            ),
            key=key,
            module=module,
            context={"expected_type": expected_type, "actual_type": actual_type},
        )


class ValidatorRejected(ValidationFailure):
    """
    Field validator returned a falsy result or raised.

    The rejected value is kept on the instance but never placed in the
    message or context when the field is sensitive. A validator's own
    exception usually quotes the value, so for sensitive fields only
    its type is recorded and it is not kept as the cause.
    """

    rule = "validator_rejected"

    def __init__(
        self,
        key: str,
        value: Any,
        module: Optional[str] = None,
        sensitive: bool = False,
        cause: Optional[BaseException] = None,
    ):
        self.value = value
        self.sensitive = sensitive

        shown = "<redacted>" if sensitive else repr(value)[:100]
        context = {} if sensitive else {"value": shown}
        if sensitive and cause is not None:
            context["cause_type"] = type(cause).__name__

        super().__init__(
            message=f"Validator rejected configuration field {key}: {shown}",
            key=key,
            module=module,
            context=context,
            cause=None if sensitive else cause,
        )


class UnknownField(ValidationFailure):
    """Supplied key is not declared in the schema."""

    rule = "unknown_field"

    def __init__(self, key: str, module: Optional[str] = None):
        super().__init__(
            message=f"Unknown configuration field: {key}",
            key=key,
            module=module,
        )


# ============================================================
# MANIFEST ERRORS
# ============================================================

class ManifestError(ModhostError):
    """Base class for manifest registry errors."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(self, message: str, module: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if module:
            context["module"] = module
        self.module = module
        super().__init__(message, context=context, **kwargs)


class InvalidManifest(ManifestError):
    """Manifest is not well formed."""

    def __init__(self, module: str, reason: str, key: Optional[str] = None):
        self.reason = reason
        context = {"reason": reason}
        if key:
            context["key"] = key
        super().__init__(
            message=f"Invalid manifest for module {module}: {reason}",
            module=module,
            context=context,
        )


class DuplicateModule(ManifestError):
    """Module identity registered twice."""

    def __init__(self, module: str):
        super().__init__(
            message=f"Module already registered: {module}",
            module=module,
        )


class ModuleNotFound(ManifestError):
    """Lookup of an unregistered module (or an unknown service)."""

    def __init__(self, module: str, service: Optional[str] = None):
        self.service = service
        if service:
            message = f"Module {module} exposes no service: {service}"
            context = {"service": service}
        else:
            message = f"Module not found: {module}"
            context = {}
        super().__init__(message=message, module=module, context=context)


class RegistryFrozen(ManifestError):
    """Registration attempted after dependency resolution started."""

    def __init__(self, module: str):
        super().__init__(
            message=f"Manifest registry is frozen, cannot register: {module}",
            module=module,
        )


# ============================================================
# GRAPH ERRORS
# ============================================================

class GraphError(ModhostError):
    """Base class for dependency graph errors."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE


class UnresolvedDependency(GraphError):
    """A manifest names a dependency that is not registered."""

    def __init__(self, module: str, missing: str):
        self.module = module
        self.missing = missing
        super().__init__(
            message=f"Module {module} depends on unregistered module: {missing}",
            context={"module": module, "missing_dependency": missing},
        )


class CyclicDependency(GraphError):
    """The dependency graph contains at least one cycle."""

    def __init__(self, cycle: Sequence[str]):
        self.cycle: List[str] = list(cycle)
        super().__init__(
            message=f"Circular dependency detected: {' -> '.join(self.cycle)}",
            context={"cycle": self.cycle},
        )

    @property
    def members(self) -> List[str]:
        """Distinct modules on the reported cycle."""
        return list(dict.fromkeys(self.cycle))


# ============================================================
# LIFECYCLE ERRORS
# ============================================================

class LifecycleError(ModhostError):
    """Base class for start/stop errors."""

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE


class StartupFailure(LifecycleError):
    """
    Startup halted at a module.

    Carries the failing module, the underlying cause and every error
    collected while stopping the modules that had already started.
    """

    def __init__(
        self,
        failed_module: str,
        cause: BaseException,
        cleanup_errors: Optional[List["StopFailed"]] = None,
    ):
        self.failed_module = failed_module
        self.cleanup_errors = list(cleanup_errors or [])

        super().__init__(
            message=f"Module start failed: {failed_module}: {cause}",
            context={
                "module": failed_module,
                "cleanup_errors": [e.module for e in self.cleanup_errors],
            },
            cause=cause,
            severity=Severity.CRITICAL if self.cleanup_errors else None,
        )


class StopFailed(LifecycleError):
    """A module's stop function raised or timed out."""

    default_severity = Severity.MEDIUM
    default_classification = ErrorClassification.RECOVERABLE

    def __init__(self, module: str, cause: BaseException):
        self.module = module
        super().__init__(
            message=f"Module stop failed: {module}: {cause}",
            context={"module": module},
            cause=cause,
        )


class ModuleTimeout(LifecycleError):
    """A module's start or stop exceeded the configured timeout."""

    default_classification = ErrorClassification.TRANSIENT

    def __init__(self, module: str, operation: str, timeout_seconds: float):
        self.module = module
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        super().__init__(
            message=f"Module {operation} timeout after {timeout_seconds}s: {module}",
            context={
                "module": module,
                "operation": operation,
                "timeout_seconds": timeout_seconds,
            },
        )


class ModuleNotAvailable(LifecycleError):
    """A module's state was requested before it reached STARTED."""

    default_severity = Severity.MEDIUM

    def __init__(self, module: str, requested_by: Optional[str] = None):
        self.module = module
        self.requested_by = requested_by
        context = {"module": module}
        if requested_by:
            context["requested_by"] = requested_by
        super().__init__(
            message=f"Module not started: {module}",
            context=context,
        )


class OrchestratorStateError(LifecycleError):
    """Operation not valid in the orchestrator's current phase."""


# ============================================================
# HOOK ERRORS
# ============================================================

class HookError(ModhostError):
    """Base class for hook registry errors."""

    def __init__(self, message: str, hook_name: str, **kwargs):
        context = kwargs.pop("context", {})
        context["hook"] = hook_name
        self.hook_name = hook_name
        super().__init__(message, context=context, **kwargs)


class UnknownHook(HookError):
    """No module declared the hook."""

    default_severity = Severity.HIGH

    def __init__(self, hook_name: str):
        super().__init__(
            message=f"Unknown hook: {hook_name}",
            hook_name=hook_name,
        )


class DuplicateHook(HookError):
    """Hook declared by more than one owner."""

    default_severity = Severity.HIGH

    def __init__(self, hook_name: str, owner: str, existing_owner: str):
        self.owner = owner
        self.existing_owner = existing_owner
        super().__init__(
            message=(
                f"Hook {hook_name} already declared by {existing_owner}, "
                f"cannot be declared by {owner}"
            ),
            hook_name=hook_name,
            context={"owner": owner, "existing_owner": existing_owner},
        )


class HookRegistrationClosed(HookError):
    """Registration attempted outside of a module's start phase."""

    default_severity = Severity.HIGH

    def __init__(self, hook_name: str):
        super().__init__(
            message=f"Hook registration closed: {hook_name}",
            hook_name=hook_name,
        )


class HookHandlerFailed(HookError):
    """A handler raised during dispatch."""

    def __init__(self, hook_name: str, handler_index: int, cause: BaseException):
        self.handler_index = handler_index
        super().__init__(
            message=f"Hook {hook_name} handler #{handler_index} failed: {cause}",
            hook_name=hook_name,
            context={"handler_index": handler_index},
            cause=cause,
        )


# ============================================================
# PLUGIN ERRORS
# ============================================================

class PluginLoadError(ModhostError):
    """A single plugin artifact could not be turned into a module."""

    def __init__(
        self,
        plugin: str,
        reason: str,
        cause: Optional[BaseException] = None,
    ):
        self.plugin = plugin
        self.reason = reason
        super().__init__(
            message=f"Failed to load plugin {plugin}: {reason}",
            context={"plugin": plugin, "reason": reason},
            cause=cause,
        )


# ============================================================
# EXCEPTION UTILITIES
# ============================================================

def classify_exception(exc: BaseException) -> ErrorClassification:
    """Classify an exception for error handling."""
    if isinstance(exc, ModhostError):
        return exc.classification

    if isinstance(exc, (ConnectionError, TimeoutError, OSError)):
        return ErrorClassification.TRANSIENT

    if isinstance(exc, (ValueError, TypeError, KeyError)):
        return ErrorClassification.RECOVERABLE

    if isinstance(exc, (SystemExit, KeyboardInterrupt, MemoryError)):
        return ErrorClassification.NON_RECOVERABLE

    return ErrorClassification.RECOVERABLE


def wrap_exception(
    exc: BaseException,
    wrapper_class: type = ModhostError,
    message: Optional[str] = None,
    **kwargs,
) -> ModhostError:
    """Wrap a foreign exception in a ModhostError."""
    if isinstance(exc, ModhostError) and wrapper_class is ModhostError:
        return exc
    msg = message or f"{type(exc).__name__}: {exc}"
    return wrapper_class(message=msg, cause=exc, **kwargs)


__all__ = [
    "Severity",
    "ErrorClassification",
    "ModhostError",
    "ConfigurationError",
    "ValidationFailure",
    "MissingRequiredField",
    "TypeMismatch",
    "ValidatorRejected",
    "UnknownField",
    "ManifestError",
    "InvalidManifest",
    "DuplicateModule",
    "ModuleNotFound",
    "RegistryFrozen",
    "GraphError",
    "UnresolvedDependency",
    "CyclicDependency",
    "LifecycleError",
    "StartupFailure",
    "StopFailed",
    "ModuleTimeout",
    "ModuleNotAvailable",
    "OrchestratorStateError",
    "HookError",
    "UnknownHook",
    "DuplicateHook",
    "HookRegistrationClosed",
    "HookHandlerFailed",
    "PluginLoadError",
    "classify_exception",
    "wrap_exception",
]
