"""
Modhost - Manifest Registry.

============================================================
RESPONSIBILITY
============================================================
Holds, per module, its identity, declared dependencies and
configuration schema, together with its entry points.

- Rejects duplicate identities
- Enforces manifest well-formedness at registration
- Does NOT check that dependencies exist (the resolver does)
- Frozen once dependency resolution starts

============================================================
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, Iterator, List, Mapping, Optional, Tuple, Union

from hostcore.exceptions import (
    DuplicateModule,
    InvalidManifest,
    ModuleNotFound,
    RegistryFrozen,
)

from .schema import FieldSpec


StartFn = Callable[[Any, Any], Any]
"""start(context, resolved_config) -> state (may be a coroutine function)."""

StopFn = Callable[[Any], Any]
"""stop(state) -> None (may be a coroutine function)."""

ServiceFn = Callable[[Any, Any], Any]
"""service(context, params) -> result."""


# ============================================================
# MANIFEST
# ============================================================

@dataclass(frozen=True, eq=False)
class Manifest:
    """
    Declarative description of a module.

    Dependencies are references to other modules: either the module
    identity string or the other module's Manifest object. Manifests
    compare by identity so they can be used as references.
    """

    description: str = ""
    """Human-readable description."""

    deps: Tuple[Union[str, "Manifest"], ...] = ()
    """Modules that must be started before this one."""

    config: Mapping[str, FieldSpec] = field(default_factory=dict)
    """Configuration schema, key -> FieldSpec."""

    hooks: Mapping[str, str] = field(default_factory=dict)
    """Hooks this module declares, name -> contract description."""

    def __post_init__(self) -> None:
        object.__setattr__(self, "deps", tuple(self.deps or ()))
        object.__setattr__(self, "config", MappingProxyType(dict(self.config or {})))
        object.__setattr__(self, "hooks", MappingProxyType(dict(self.hooks or {})))

    def __repr__(self) -> str:
        deps = [d if isinstance(d, str) else f"<Manifest {d.description!r}>" for d in self.deps]
        return f"Manifest(description={self.description!r}, deps={deps}, config={list(self.config)})"


# ============================================================
# MODULE DEFINITION
# ============================================================

@dataclass(frozen=True)
class ModuleDefinition:
    """A registered module: identity, manifest and entry points."""

    name: str
    """Unique module identity."""

    manifest: Manifest
    """Dependencies and configuration schema."""

    start: Optional[StartFn] = None
    """Called with (context, resolved_config); returns the module state."""

    stop: Optional[StopFn] = None
    """Called with the state returned by start."""

    services: Mapping[str, ServiceFn] = field(default_factory=dict)
    """Functions other modules may call through the context."""

    def __post_init__(self) -> None:
        object.__setattr__(self, "services", MappingProxyType(dict(self.services or {})))


# ============================================================
# MANIFEST REGISTRY
# ============================================================

class ManifestRegistry:
    """
    Registry of all known modules.

    Usage:
        registry = ManifestRegistry()
        registry.register("db", Manifest(deps=["log"]), start=db_start, stop=db_stop)

        registry.get("db")      # -> Manifest
        registry.all()          # -> frozenset({"db", ...})
    """

    def __init__(self) -> None:
        self._definitions: Dict[str, ModuleDefinition] = {}
        self._identities: Dict[int, str] = {}
        self._frozen = False
        self._logger = logging.getLogger(__name__)

    # --------------------------------------------------------
    # Registration
    # --------------------------------------------------------

    def register(
        self,
        module_id: str,
        manifest: Manifest,
        start: Optional[StartFn] = None,
        stop: Optional[StopFn] = None,
        services: Optional[Mapping[str, ServiceFn]] = None,
    ) -> ModuleDefinition:
        """
        Register a module.

        Raises:
            DuplicateModule: identity already registered
            InvalidManifest: manifest or entry points malformed
            RegistryFrozen: resolution already started
        """
        definition = ModuleDefinition(
            name=module_id,
            manifest=manifest,
            start=start,
            stop=stop,
            services=services or {},
        )
        self.register_definition(definition)
        return definition

    def register_definition(self, definition: ModuleDefinition) -> None:
        """Register a module from a definition."""
        name = definition.name
        if self._frozen:
            raise RegistryFrozen(name)
        if name in self._definitions:
            raise DuplicateModule(name)

        self._check_well_formed(definition)

        existing = self._identities.get(id(definition.manifest))
        if existing is not None:
            raise InvalidManifest(
                name, f"manifest object already registered as {existing}",
            )

        self._definitions[name] = definition
        self._identities[id(definition.manifest)] = name
        self._logger.debug(f"Registered module: {name}")

    def _check_well_formed(self, definition: ModuleDefinition) -> None:
        name = definition.name
        if not isinstance(name, str) or not name:
            raise InvalidManifest(str(name), "module identity must be a non-empty string")

        manifest = definition.manifest
        if not isinstance(manifest, Manifest):
            raise InvalidManifest(name, f"expected Manifest, got {type(manifest).__name__}")

        for ref in manifest.deps:
            if not isinstance(ref, (str, Manifest)) or ref == "":
                raise InvalidManifest(name, f"invalid dependency reference: {ref!r}")

        for key, spec in manifest.config.items():
            if not isinstance(key, str) or not key:
                raise InvalidManifest(name, f"invalid configuration key: {key!r}")
            if not isinstance(spec, FieldSpec):
                raise InvalidManifest(name, "configuration entry is not a FieldSpec", key=key)
            problems = spec.problems()
            if problems:
                raise InvalidManifest(name, problems[0], key=key)

        for hook_name in manifest.hooks:
            if not isinstance(hook_name, str) or not hook_name:
                raise InvalidManifest(name, f"invalid hook name: {hook_name!r}")

        for label, fn in (("start", definition.start), ("stop", definition.stop)):
            if fn is not None and not callable(fn):
                raise InvalidManifest(name, f"{label} entry point is not callable")

        for service_name, fn in definition.services.items():
            if not callable(fn):
                raise InvalidManifest(name, f"service {service_name} is not callable")

    def freeze(self) -> None:
        """Stop accepting registrations."""
        if not self._frozen:
            self._frozen = True
            self._logger.debug(f"Manifest registry frozen with {len(self)} modules")

    @property
    def is_frozen(self) -> bool:
        return self._frozen

    # --------------------------------------------------------
    # Lookup
    # --------------------------------------------------------

    def get(self, module_id: str) -> Manifest:
        """Get a module's manifest, raising ModuleNotFound."""
        return self.get_definition(module_id).manifest

    def get_definition(self, module_id: str) -> ModuleDefinition:
        try:
            return self._definitions[module_id]
        except KeyError:
            raise ModuleNotFound(module_id) from None

    def all(self) -> FrozenSet[str]:
        """All registered module identities."""
        return frozenset(self._definitions)

    def identity_of(self, manifest: Manifest) -> Optional[str]:
        """Identity a manifest object is registered under, if any."""
        return self._identities.get(id(manifest))

    def definitions(self) -> List[ModuleDefinition]:
        """All definitions, sorted by identity."""
        return [self._definitions[name] for name in sorted(self._definitions)]

    def __contains__(self, module_id: object) -> bool:
        return module_id in self._definitions

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._definitions))

    def __len__(self) -> int:
        return len(self._definitions)


__all__ = [
    "StartFn",
    "StopFn",
    "ServiceFn",
    "Manifest",
    "ModuleDefinition",
    "ManifestRegistry",
]
