"""
Modhost - Hook Registry & Dispatcher.

============================================================
RESPONSIBILITY
============================================================
Named extension points that modules declare, and the ordered
handlers other modules attach to them.

- A hook must be declared before handlers can be registered
- Handlers are registered only inside a module's start phase;
  once startup completes the registry is sealed
- Dispatch calls handlers in registration order
- Dispatch never stops at a failing handler: every handler runs
  and all failures are collected on the result

============================================================
"""

import inspect
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generator, List, Optional

from hostcore.exceptions import (
    DuplicateHook,
    HookHandlerFailed,
    HookRegistrationClosed,
    UnknownHook,
)


HookHandlerFn = Callable[..., Any]


@dataclass(frozen=True)
class HookDeclaration:
    """An extension point and the module that owns it."""

    name: str
    owner: str
    contract: str = ""
    """Free-form description of the arguments handlers receive."""


@dataclass(frozen=True)
class HookRegistration:
    """One handler bound to a hook."""

    hook: str
    owner: str
    handler: HookHandlerFn
    index: int = 0
    """Position at registration; kept when other handlers are discarded."""


@dataclass
class HookDispatchResult:
    """Outcome of one dispatch call."""

    hook_name: str
    values: List[Any] = field(default_factory=list)
    """Return values of the handlers that succeeded, in dispatch order."""

    failures: List[HookHandlerFailed] = field(default_factory=list)
    """One entry per handler that raised."""

    handler_count: int = 0

    @property
    def success(self) -> bool:
        return not self.failures


class HookRegistry:
    """
    Registry of hook declarations and handlers.

    Usage:
        hooks = HookRegistry()
        hooks.declare("api", "api.routes", contract="handler(router)")

        with hooks.registration_scope("users"):
            hooks.register("api.routes", add_user_routes)

        hooks.seal()
        result = hooks.dispatch("api.routes", router)
    """

    def __init__(self) -> None:
        self._declarations: Dict[str, HookDeclaration] = {}
        self._registrations: Dict[str, List[HookRegistration]] = {}
        self._issued: Dict[str, int] = {}
        self._active_module: Optional[str] = None
        self._sealed = False
        self._logger = logging.getLogger(__name__)

    # --------------------------------------------------------
    # Declaration
    # --------------------------------------------------------

    def declare(self, owner: str, hook_name: str, contract: str = "") -> HookDeclaration:
        """
        Declare an extension point.

        Redeclaring a hook by the same owner returns the existing
        declaration.

        Raises:
            DuplicateHook: another module already owns the name
            HookRegistrationClosed: registry sealed
        """
        if self._sealed:
            raise HookRegistrationClosed(hook_name)

        existing = self._declarations.get(hook_name)
        if existing is not None:
            if existing.owner != owner:
                raise DuplicateHook(hook_name, owner=owner, existing_owner=existing.owner)
            return existing

        declaration = HookDeclaration(name=hook_name, owner=owner, contract=contract)
        self._declarations[hook_name] = declaration
        self._registrations[hook_name] = []
        self._issued[hook_name] = 0
        self._logger.debug(f"Declared hook: {hook_name} (owner={owner})")
        return declaration

    def is_declared(self, hook_name: str) -> bool:
        return hook_name in self._declarations

    def declaration(self, hook_name: str) -> HookDeclaration:
        try:
            return self._declarations[hook_name]
        except KeyError:
            raise UnknownHook(hook_name) from None

    def declarations(self) -> List[HookDeclaration]:
        return [self._declarations[name] for name in sorted(self._declarations)]

    # --------------------------------------------------------
    # Registration
    # --------------------------------------------------------

    @contextmanager
    def registration_scope(self, module: str) -> Generator["HookRegistry", None, None]:
        """Open registration for the duration of a module's start."""
        if self._sealed:
            raise HookRegistrationClosed(f"<start of {module}>")
        previous = self._active_module
        self._active_module = module
        try:
            yield self
        finally:
            self._active_module = previous

    def register(
        self,
        hook_name: str,
        handler: HookHandlerFn,
        owner: Optional[str] = None,
    ) -> int:
        """
        Attach a handler to a declared hook.

        Returns:
            Index of the handler, as reported by HookHandlerFailed.
            Indices are never reused, so they stay valid after
            another module's handlers are discarded.

        Raises:
            HookRegistrationClosed: outside a start phase or after seal
            UnknownHook: no module declared the hook
        """
        if self._sealed or self._active_module is None:
            raise HookRegistrationClosed(hook_name)
        if hook_name not in self._declarations:
            raise UnknownHook(hook_name)
        if not callable(handler):
            raise TypeError(f"Hook handler for {hook_name} is not callable")

        owner = owner or self._active_module
        index = self._issued[hook_name]
        self._issued[hook_name] = index + 1
        self._registrations[hook_name].append(
            HookRegistration(hook=hook_name, owner=owner, handler=handler, index=index)
        )

        self._logger.debug(f"Registered handler #{index} on {hook_name} (owner={owner})")
        return index

    def seal(self) -> None:
        """Reject every further declaration and registration."""
        if not self._sealed:
            self._sealed = True
            self._active_module = None
            total = sum(len(r) for r in self._registrations.values())
            self._logger.debug(
                f"Hook registry sealed: {len(self._declarations)} hooks, {total} handlers"
            )

    @property
    def is_sealed(self) -> bool:
        return self._sealed

    @property
    def active_module(self) -> Optional[str]:
        return self._active_module

    def discard_owner(self, owner: str) -> int:
        """
        Drop every handler registered by a module.

        Used when the module stops so dispatch never reaches a
        released state. Returns the number of handlers removed.
        """
        removed = 0
        for hook_name, registrations in self._registrations.items():
            kept = [r for r in registrations if r.owner != owner]
            removed += len(registrations) - len(kept)
            self._registrations[hook_name] = kept
        if removed:
            self._logger.debug(f"Discarded {removed} hook handlers of {owner}")
        return removed

    def handlers(self, hook_name: str) -> List[HookRegistration]:
        """Registrations of a hook, in dispatch order."""
        if hook_name not in self._declarations:
            raise UnknownHook(hook_name)
        return list(self._registrations[hook_name])

    # --------------------------------------------------------
    # Dispatch
    # --------------------------------------------------------

    def dispatch(self, hook_name: str, *args: Any, **kwargs: Any) -> HookDispatchResult:
        """
        Call every handler of a hook, in registration order.

        Raises:
            UnknownHook: hook not declared
        """
        result = HookDispatchResult(hook_name=hook_name)
        for registration in self.handlers(hook_name):
            result.handler_count += 1
            try:
                value = registration.handler(*args, **kwargs)
                if inspect.isawaitable(value):
                    _close(value)
                    raise TypeError("coroutine handler requires dispatch_async")
            except Exception as e:
                self._record_failure(result, registration, e)
                continue
            result.values.append(value)
        return result

    async def dispatch_async(self, hook_name: str, *args: Any, **kwargs: Any) -> HookDispatchResult:
        """Like dispatch(), awaiting handlers that return awaitables."""
        result = HookDispatchResult(hook_name=hook_name)
        for registration in self.handlers(hook_name):
            result.handler_count += 1
            try:
                value = registration.handler(*args, **kwargs)
                if inspect.isawaitable(value):
                    value = await value
            except Exception as e:
                self._record_failure(result, registration, e)
                continue
            result.values.append(value)
        return result

    def _record_failure(
        self,
        result: HookDispatchResult,
        registration: HookRegistration,
        error: Exception,
    ) -> None:
        index = registration.index
        failure = HookHandlerFailed(result.hook_name, index, error)
        failure.context["owner"] = registration.owner
        result.failures.append(failure)
        self._logger.error(
            f"Hook handler failed: {result.hook_name}#{index} (owner={registration.owner}): {error}"
        )


def _close(awaitable: Any) -> None:
    close = getattr(awaitable, "close", None)
    if close is not None:
        close()


__all__ = [
    "HookHandlerFn",
    "HookDeclaration",
    "HookRegistration",
    "HookDispatchResult",
    "HookRegistry",
]
