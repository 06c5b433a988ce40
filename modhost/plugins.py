"""
Modhost - Plugin Loader.

============================================================
RESPONSIBILITY
============================================================
Supplies additional modules to the manifest registry from
artifacts discovered at runtime.

- Runs before dependency resolution
- A unit that fails to load is reported and skipped; discovery
  of the other units continues
- A skipped unit is simply absent from the registry, so anything
  depending on it fails later with UnresolvedDependency

============================================================
UNIT NAMING CONVENTION
============================================================
A loadable unit (Python module or namespace) must expose:

    MANIFEST    Manifest instance              (required)
    start       start(context, config)         (required)
    stop        stop(state)                    (required)
    MODULE_ID   str, overrides the unit name   (optional)
    SERVICES    {name: service(context, params)} (optional)

============================================================
"""

import importlib.util
import logging
import sys
import types
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from importlib import metadata
from pathlib import Path
from typing import Any, Callable, Iterable, List, Mapping, Union

from hostcore.exceptions import ManifestError, PluginLoadError

from .manifest import Manifest, ManifestRegistry, ModuleDefinition


logger = logging.getLogger(__name__)


DEFAULT_ENTRY_POINT_GROUP = "modhost.modules"


# ============================================================
# DISCOVERY RESULT
# ============================================================

@dataclass
class DiscoveryResult:
    """Modules found by one or more loaders, plus per-unit failures."""

    modules: List[ModuleDefinition] = field(default_factory=list)
    errors: List[PluginLoadError] = field(default_factory=list)

    @property
    def names(self) -> List[str]:
        return [m.name for m in self.modules]

    def merge(self, other: "DiscoveryResult") -> "DiscoveryResult":
        return DiscoveryResult(
            modules=self.modules + other.modules,
            errors=self.errors + other.errors,
        )

    def register_into(self, registry: ManifestRegistry) -> List[str]:
        """
        Register every discovered module.

        A module the registry rejects (duplicate identity, malformed
        manifest) is moved to errors instead of aborting the rest.

        Returns:
            Names that were registered
        """
        registered = []
        for definition in self.modules:
            try:
                registry.register_definition(definition)
            except ManifestError as e:
                self.errors.append(
                    PluginLoadError(definition.name, "registration rejected", cause=e)
                )
                logger.error(f"Plugin {definition.name} rejected by registry: {e}")
                continue
            registered.append(definition.name)
        return registered


# ============================================================
# NAMING CONVENTION
# ============================================================

def module_from_namespace(
    unit_name: str,
    namespace: Mapping[str, Any],
) -> ModuleDefinition:
    """
    Build a module definition from a unit's exported names.

    Raises:
        PluginLoadError: a required entry point is missing or wrong
    """
    manifest = namespace.get("MANIFEST")
    if manifest is None:
        raise PluginLoadError(unit_name, "missing MANIFEST")
    if not isinstance(manifest, Manifest):
        raise PluginLoadError(unit_name, f"MANIFEST is {type(manifest).__name__}, expected Manifest")

    for entry in ("start", "stop"):
        fn = namespace.get(entry)
        if fn is None:
            raise PluginLoadError(unit_name, f"missing {entry} entry point")
        if not callable(fn):
            raise PluginLoadError(unit_name, f"{entry} entry point is not callable")

    name = namespace.get("MODULE_ID") or unit_name
    if not isinstance(name, str):
        raise PluginLoadError(unit_name, "MODULE_ID must be a string")

    services = namespace.get("SERVICES") or {}
    if not isinstance(services, Mapping):
        raise PluginLoadError(unit_name, "SERVICES must be a mapping")

    return ModuleDefinition(
        name=name,
        manifest=manifest,
        start=namespace["start"],
        stop=namespace["stop"],
        services=services,
    )


def _namespace_of(obj: Any) -> Mapping[str, Any]:
    if isinstance(obj, Mapping):
        return obj
    return vars(obj)


# ============================================================
# LOADERS
# ============================================================

class PluginLoader(ABC):
    """Source of modules discovered at runtime."""

    @abstractmethod
    def discover(self) -> DiscoveryResult:
        """Load every unit; never raises for a single bad unit."""

    def _load_unit(self, result: DiscoveryResult, unit_name: str, load: Callable[[], Any]) -> None:
        try:
            loaded = load()
            if isinstance(loaded, ModuleDefinition):
                definition = loaded
            else:
                definition = module_from_namespace(unit_name, _namespace_of(loaded))
        except PluginLoadError as e:
            result.errors.append(e)
            logger.error(str(e))
            return
        except Exception as e:
            error = PluginLoadError(unit_name, "import failed", cause=e)
            result.errors.append(error)
            logger.error(f"{error}: {e}")
            return

        result.modules.append(definition)
        logger.debug(f"Discovered plugin module: {definition.name}")


class NamespacePluginLoader(PluginLoader):
    """
    Loads units that are already in memory.

    Each unit is a Python module object, a namespace mapping, or a
    ready-made ModuleDefinition.
    """

    def __init__(self, units: Mapping[str, Any]):
        self._units = dict(units)

    def discover(self) -> DiscoveryResult:
        result = DiscoveryResult()
        for unit_name in sorted(self._units):
            unit = self._units[unit_name]
            self._load_unit(result, unit_name, lambda unit=unit: unit)
        return result


class DirectoryPluginLoader(PluginLoader):
    """
    Imports every *.py file in the given directories.

    Files whose name starts with an underscore are skipped. Each
    file is imported under a private module name so plugins cannot
    shadow installed packages.
    """

    def __init__(
        self,
        paths: Iterable[Union[str, Path]],
        module_prefix: str = "modhost_plugin_",
    ):
        self._paths = [Path(p) for p in paths]
        self._module_prefix = module_prefix

    def discover(self) -> DiscoveryResult:
        result = DiscoveryResult()
        for directory in self._paths:
            if not directory.is_dir():
                error = PluginLoadError(str(directory), "plugin directory not found")
                result.errors.append(error)
                logger.error(str(error))
                continue

            for path in sorted(directory.glob("*.py")):
                if path.name.startswith("_"):
                    continue
                self._load_unit(result, path.stem, lambda path=path: self._import_file(path))

        logger.info(
            f"Plugin discovery: {len(result.modules)} loaded, {len(result.errors)} failed"
        )
        return result

    def _import_file(self, path: Path) -> types.ModuleType:
        module_name = f"{self._module_prefix}{path.stem}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise PluginLoadError(path.stem, f"cannot create import spec for {path}")

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            sys.modules.pop(module_name, None)
            raise
        return module


class EntryPointPluginLoader(PluginLoader):
    """
    Loads units advertised by installed distributions.

    pyproject.toml of a plugin distribution:

        [project.entry-points."modhost.modules"]
        cache = "my_cache.module"
    """

    def __init__(self, group: str = DEFAULT_ENTRY_POINT_GROUP):
        self._group = group

    def discover(self) -> DiscoveryResult:
        result = DiscoveryResult()
        try:
            entry_points = sorted(metadata.entry_points(group=self._group), key=lambda ep: ep.name)
        except Exception as e:
            error = PluginLoadError(self._group, "entry point enumeration failed", cause=e)
            result.errors.append(error)
            logger.error(f"{error}: {e}")
            return result

        for entry_point in entry_points:
            self._load_unit(result, entry_point.name, entry_point.load)
        return result


def discover_all(loaders: Iterable[PluginLoader]) -> DiscoveryResult:
    """Run several loaders and merge their results."""
    result = DiscoveryResult()
    for loader in loaders:
        result = result.merge(loader.discover())
    return result


__all__ = [
    "DEFAULT_ENTRY_POINT_GROUP",
    "DiscoveryResult",
    "module_from_namespace",
    "PluginLoader",
    "NamespacePluginLoader",
    "DirectoryPluginLoader",
    "EntryPointPluginLoader",
    "discover_all",
]
