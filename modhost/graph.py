"""
Modhost - Dependency Graph Resolver.

============================================================
RESPONSIBILITY
============================================================
Builds the module dependency graph from the manifest registry
and produces a deterministic start order.

- Every dependency must name a registered module
- Topological sort by repeated removal of modules whose
  dependencies are all placed (Kahn)
- Ties between independent modules are broken by identity,
  lexicographically, so the same manifest set always yields the
  same start sequence
- On a cycle nothing is returned; one concrete cycle is reported

============================================================
"""

import heapq
import logging
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

from hostcore.exceptions import CyclicDependency, UnresolvedDependency

from .manifest import Manifest, ManifestRegistry


logger = logging.getLogger(__name__)


class DependencyGraph:
    """
    Directed graph of module -> modules it requires.

    Immutable once built. All query methods are pure.
    """

    def __init__(self, edges: Mapping[str, Iterable[str]]):
        """
        Args:
            edges: module -> names of the modules it depends on.
                   Every dependency must itself be a key.
        """
        self._edges: Dict[str, FrozenSet[str]] = {
            name: frozenset(deps) for name, deps in edges.items()
        }
        self._dependents: Dict[str, Set[str]] = {name: set() for name in self._edges}
        for name, deps in self._edges.items():
            for dep in deps:
                if dep not in self._edges:
                    raise UnresolvedDependency(name, dep)
                self._dependents[dep].add(name)

    @classmethod
    def from_registry(cls, registry: ManifestRegistry) -> "DependencyGraph":
        """
        Build the graph from registered manifests.

        Raises:
            UnresolvedDependency: a manifest names an unregistered module
        """
        edges: Dict[str, Set[str]] = {}
        known = registry.all()

        for name in sorted(known):
            deps = set()
            for ref in registry.get(name).deps:
                deps.add(_resolve_reference(registry, name, ref))
            for dep in sorted(deps):
                if dep not in known:
                    raise UnresolvedDependency(name, dep)
            edges[name] = deps

        return cls(edges)

    # --------------------------------------------------------
    # Queries
    # --------------------------------------------------------

    @property
    def nodes(self) -> FrozenSet[str]:
        return frozenset(self._edges)

    def dependencies(self, name: str) -> List[str]:
        """Direct dependencies of a module, sorted."""
        return sorted(self._edges[name])

    def dependents(self, name: str) -> List[str]:
        """Modules that directly depend on the given module, sorted."""
        return sorted(self._dependents[name])

    def topological_order(self) -> List[str]:
        """
        Get modules in start order (dependencies first).

        Raises:
            CyclicDependency: the graph is not acyclic
        """
        order, remaining = self._kahn()
        if remaining:
            raise CyclicDependency(self._walk_cycle(remaining))
        return order

    def shutdown_order(self) -> List[str]:
        """Reverse of the start order."""
        return list(reversed(self.topological_order()))

    def find_cycle(self) -> Optional[List[str]]:
        """
        One concrete cycle, closing on its first member, or None.

        e.g. ["a", "b", "a"] when a requires b and b requires a.
        """
        _, remaining = self._kahn()
        if not remaining:
            return None
        return self._walk_cycle(remaining)

    # --------------------------------------------------------
    # Internals
    # --------------------------------------------------------

    def _kahn(self) -> Tuple[List[str], Set[str]]:
        in_degree = {name: len(deps) for name, deps in self._edges.items()}
        ready = [name for name, degree in in_degree.items() if degree == 0]
        heapq.heapify(ready)

        order: List[str] = []
        while ready:
            name = heapq.heappop(ready)
            order.append(name)
            for dependent in self._dependents[name]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    heapq.heappush(ready, dependent)

        remaining = set(self._edges) - set(order)
        return order, remaining

    def _walk_cycle(self, remaining: Set[str]) -> List[str]:
        # Every leftover module still has a leftover dependency, so
        # following the smallest one must revisit a module.
        path: List[str] = []
        seen: Dict[str, int] = {}
        current = min(remaining)
        while current not in seen:
            seen[current] = len(path)
            path.append(current)
            current = min(dep for dep in self._edges[current] if dep in remaining)
        return path[seen[current]:] + [current]


def _resolve_reference(registry: ManifestRegistry, module: str, ref) -> str:
    if isinstance(ref, Manifest):
        name = registry.identity_of(ref)
        if name is None:
            raise UnresolvedDependency(module, f"<unregistered manifest {ref.description!r}>")
        return name
    return ref


def resolve(registry: ManifestRegistry) -> List[str]:
    """
    Resolve the start order for every registered module.

    Freezes the registry: no module may be added once ordering has
    been computed. Pure otherwise; repeated calls return the same order.

    Raises:
        UnresolvedDependency, CyclicDependency
    """
    registry.freeze()
    order = DependencyGraph.from_registry(registry).topological_order()
    logger.debug(f"Resolved start order: {order}")
    return order


__all__ = [
    "DependencyGraph",
    "resolve",
]
