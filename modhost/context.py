"""
Modhost - System Context.

============================================================
RESPONSIBILITY
============================================================
The one piece of shared mutable state: maps module identity to
the state returned by that module's start.

- Only the lifecycle orchestrator installs or removes states,
  from its single sequential start/stop pass
- A state becomes visible only once its module is STARTED
- Other modules get a read-only view; the owning module may ask
  for its raw state
- After startup the mapping is only read, so concurrent request
  handlers can share it without a lock

============================================================
"""

import functools
import logging
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from hostcore.exceptions import ModuleNotAvailable, ModuleNotFound

from .hooks import HookDispatchResult, HookRegistry, HookHandlerFn
from .manifest import ServiceFn
from .models import ModuleRecord, ModuleStatus


_IMMUTABLE_TYPES = (type(None), bool, int, float, complex, str, bytes, frozenset)

# In-place mutators of the builtin containers; refused through a view.
_MUTATORS = frozenset({
    "add", "append", "clear", "difference_update", "discard", "extend",
    "insert", "intersection_update", "pop", "popitem", "remove", "reverse",
    "setdefault", "sort", "symmetric_difference_update", "update",
})


# ============================================================
# READ-ONLY STATE VIEW
# ============================================================

class StateView:
    """
    Read-only proxy over another module's state.

    Attribute reads, item reads, iteration and method results are
    wrapped again, so nested containers stay read-only. Assignments,
    deletions and the in-place mutators of dict, list and set are
    refused. Methods of custom state objects are still callable;
    a module that needs to expose mutation should do so through a
    service.
    """

    __slots__ = ("_target", "_owner")

    def __init__(self, target: Any, owner: str):
        object.__setattr__(self, "_target", target)
        object.__setattr__(self, "_owner", owner)

    def _refuse(self, what: str) -> str:
        return f"State of module {self._owner} is read-only ({what})"

    def __getattr__(self, item: str) -> Any:
        if item in _MUTATORS:
            raise AttributeError(self._refuse(f"{item}() refused"))
        value = getattr(self._target, item)
        if callable(value) and not isinstance(value, type):
            return _read_only_call(value, self._owner)
        return _read_only(value, self._owner)

    def __setattr__(self, key: str, value: Any) -> None:
        raise AttributeError(self._refuse(f"cannot set {key}"))

    def __delattr__(self, item: str) -> None:
        raise AttributeError(self._refuse(f"cannot delete {item}"))

    def __getitem__(self, key: Any) -> Any:
        return _read_only(self._target[key], self._owner)

    def __setitem__(self, key: Any, value: Any) -> None:
        raise TypeError(self._refuse("item assignment"))

    def __delitem__(self, key: Any) -> None:
        raise TypeError(self._refuse("item deletion"))

    def __contains__(self, item: Any) -> bool:
        return item in self._target

    def __iter__(self) -> Iterator[Any]:
        for value in self._target:
            yield _read_only(value, self._owner)

    def __len__(self) -> int:
        return len(self._target)

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, StateView):
            other = other._target
        return self._target == other

    __hash__ = None

    def __repr__(self) -> str:
        return f"StateView({self._owner}: {self._target!r})"


def _read_only(state: Any, owner: str) -> Any:
    if isinstance(state, (_IMMUTABLE_TYPES, StateView)):
        return state
    return StateView(state, owner)


def _read_only_call(fn: Callable[..., Any], owner: str) -> Callable[..., Any]:
    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return _read_only(fn(*args, **kwargs), owner)
    return wrapper


# ============================================================
# SYSTEM CONTEXT
# ============================================================

class SystemContext:
    """
    Registry of started modules' states, owned by the orchestrator.

    Modules never receive this object directly; they get a
    ModuleContext scoped to their own identity.
    """

    def __init__(self, hooks: HookRegistry, correlation_id: str = ""):
        self._hooks = hooks
        self._correlation_id = correlation_id
        self._records: Dict[str, ModuleRecord] = {}
        self._states: Dict[str, Any] = {}
        self._services: Dict[str, Mapping[str, ServiceFn]] = {}
        self._start_order: List[str] = []
        self._logger = logging.getLogger(__name__)

    # --------------------------------------------------------
    # Orchestrator-side mutation
    # --------------------------------------------------------

    def create_record(self, name: str) -> ModuleRecord:
        record = ModuleRecord(name=name)
        self._records[name] = record
        return record

    def install(self, name: str, state: Any, services: Mapping[str, ServiceFn]) -> None:
        """Expose a module's state. Called once its record is STARTED."""
        self._states[name] = state
        self._services[name] = services
        self._start_order.append(name)
        self._logger.debug(f"Installed state of {name} in system context")

    def release(self, name: str) -> Any:
        """Withdraw a module's state ahead of its stop call."""
        self._logger.debug(f"Released state of {name} from system context")
        self._services.pop(name, None)
        return self._states.pop(name, None)

    # --------------------------------------------------------
    # Queries
    # --------------------------------------------------------

    @property
    def hooks(self) -> HookRegistry:
        return self._hooks

    @property
    def correlation_id(self) -> str:
        return self._correlation_id

    @property
    def start_order(self) -> List[str]:
        """Modules in the order they actually reached STARTED."""
        return list(self._start_order)

    def is_started(self, name: str) -> bool:
        record = self._records.get(name)
        return record is not None and record.status == ModuleStatus.STARTED and name in self._states

    def started_modules(self) -> List[str]:
        """Currently started modules, in start order."""
        return [name for name in self._start_order if self.is_started(name)]

    def record(self, name: str) -> ModuleRecord:
        try:
            return self._records[name]
        except KeyError:
            raise ModuleNotFound(name) from None

    def records(self) -> List[ModuleRecord]:
        """Records in creation order."""
        return list(self._records.values())

    def get(self, name: str, requested_by: Optional[str] = None) -> Any:
        """
        Read-only view of a started module's state.

        Raises:
            ModuleNotAvailable: module has not reached STARTED
        """
        if not self.is_started(name):
            raise ModuleNotAvailable(name, requested_by=requested_by)
        return _read_only(self._states[name], name)

    def raw_state(self, name: str) -> Any:
        if name not in self._states:
            raise ModuleNotAvailable(name, requested_by=name)
        return self._states[name]

    def call(
        self,
        module: str,
        service: str,
        params: Any = None,
        requested_by: Optional[str] = None,
    ) -> Any:
        """
        Invoke a service exposed by a started module.

        The service receives the callee's own ModuleContext.
        """
        if not self.is_started(module):
            raise ModuleNotAvailable(module, requested_by=requested_by)
        fn = self._services[module].get(service)
        if fn is None:
            raise ModuleNotFound(module, service=service)
        return fn(self.for_module(module), params)

    def for_module(self, name: str) -> "ModuleContext":
        return ModuleContext(self, name)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.is_started(name)

    def __len__(self) -> int:
        return len(self.started_modules())


# ============================================================
# MODULE CONTEXT
# ============================================================

class ModuleContext:
    """
    The system context as seen by one module.

    Passed to start(context, config) and to service(context, params).
    """

    def __init__(self, system: SystemContext, name: str):
        self._system = system
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @property
    def correlation_id(self) -> str:
        return self._system.correlation_id

    @property
    def modules(self) -> List[str]:
        """Started modules visible to this module."""
        return self._system.started_modules()

    def is_started(self, module: str) -> bool:
        return self._system.is_started(module)

    def get(self, module: str) -> Any:
        """Read-only view of another started module's state."""
        return self._system.get(module, requested_by=self._name)

    def own_state(self) -> Any:
        """Privileged access to this module's raw state."""
        return self._system.raw_state(self._name)

    def call(self, module: str, service: str, params: Any = None) -> Any:
        return self._system.call(module, service, params, requested_by=self._name)

    # --------------------------------------------------------
    # Hooks
    # --------------------------------------------------------

    def declare_hook(self, hook_name: str, contract: str = "") -> None:
        self._system.hooks.declare(self._name, hook_name, contract)

    def register_hook(self, hook_name: str, handler: HookHandlerFn) -> int:
        return self._system.hooks.register(hook_name, handler, owner=self._name)

    def dispatch(self, hook_name: str, *args: Any, **kwargs: Any) -> HookDispatchResult:
        return self._system.hooks.dispatch(hook_name, *args, **kwargs)

    def __repr__(self) -> str:
        return f"ModuleContext({self._name})"


__all__ = [
    "StateView",
    "SystemContext",
    "ModuleContext",
]
