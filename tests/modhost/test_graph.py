"""
Tests for Dependency Graph Resolution.

============================================================
PURPOSE
============================================================
TEST PRINCIPLES:
- Every module starts after all of its dependencies
- Ties are broken lexicographically, so order is deterministic
- Missing dependencies and cycles are reported, never ordered

============================================================
"""

import pytest

from hostcore.exceptions import CyclicDependency, UnresolvedDependency
from modhost.graph import DependencyGraph, resolve
from modhost.manifest import Manifest, ManifestRegistry


def build_registry(deps):
    registry = ManifestRegistry()
    for name, requires in deps.items():
        registry.register(name, Manifest(deps=requires))
    return registry


class TestResolve:

    def test_chain(self):
        registry = build_registry({"api": ["db"], "db": ["log"], "log": []})
        assert resolve(registry) == ["log", "db", "api"]

    def test_independent_modules_sorted(self):
        registry = build_registry({"b": [], "a": []})
        assert resolve(registry) == ["a", "b"]

    def test_lexicographic_ties_respect_dependencies(self):
        registry = build_registry({
            "z": [],
            "m": ["z"],
            "a": ["m"],
            "b": [],
        })
        assert resolve(registry) == ["b", "z", "m", "a"]

    def test_every_module_after_its_dependencies(self):
        deps = {
            "web": ["auth", "cache"],
            "auth": ["db", "log"],
            "cache": ["log"],
            "db": ["log"],
            "log": [],
            "jobs": ["db", "cache"],
        }
        order = resolve(build_registry(deps))
        assert sorted(order) == sorted(deps)
        for name, requires in deps.items():
            for dep in requires:
                assert order.index(dep) < order.index(name)

    def test_deterministic(self):
        deps = {"c": ["a"], "b": ["a"], "a": [], "d": ["b", "c"]}
        assert resolve(build_registry(deps)) == resolve(build_registry(deps))

    def test_empty_registry(self):
        assert resolve(ManifestRegistry()) == []

    def test_resolution_freezes_registry(self):
        registry = build_registry({"a": []})
        resolve(registry)
        assert registry.is_frozen

    def test_unresolved_dependency(self):
        registry = build_registry({"api": ["db"]})
        with pytest.raises(UnresolvedDependency) as exc_info:
            resolve(registry)
        assert exc_info.value.module == "api"
        assert exc_info.value.missing == "db"

    def test_two_cycle(self):
        registry = build_registry({"a": ["b"], "b": ["a"]})
        with pytest.raises(CyclicDependency) as exc_info:
            resolve(registry)
        assert exc_info.value.cycle == ["a", "b", "a"]

    def test_self_dependency(self):
        registry = build_registry({"a": ["a"]})
        with pytest.raises(CyclicDependency) as exc_info:
            resolve(registry)
        assert exc_info.value.cycle == ["a", "a"]

    def test_cycle_reported_without_acyclic_members(self):
        registry = build_registry({"log": [], "x": ["log", "y"], "y": ["z"], "z": ["x"]})
        with pytest.raises(CyclicDependency) as exc_info:
            resolve(registry)
        assert set(exc_info.value.members) == {"x", "y", "z"}
        assert exc_info.value.cycle[0] == exc_info.value.cycle[-1]


class TestManifestReferences:

    def test_manifest_object_reference(self):
        registry = ManifestRegistry()
        log = Manifest(description="log")
        registry.register("log", log)
        registry.register("db", Manifest(deps=[log]))
        assert resolve(registry) == ["log", "db"]

    def test_unregistered_manifest_reference(self):
        registry = ManifestRegistry()
        registry.register("db", Manifest(deps=[Manifest(description="ghost")]))
        with pytest.raises(UnresolvedDependency):
            resolve(registry)


class TestDependencyGraph:

    @pytest.fixture
    def graph(self):
        return DependencyGraph({
            "log": [],
            "db": ["log"],
            "cache": ["log"],
            "api": ["db", "cache"],
        })

    def test_queries(self, graph):
        assert graph.nodes == frozenset({"log", "db", "cache", "api"})
        assert graph.dependencies("api") == ["cache", "db"]
        assert graph.dependents("log") == ["cache", "db"]
        assert graph.dependents("api") == []

    def test_orders(self, graph):
        assert graph.topological_order() == ["log", "cache", "db", "api"]
        assert graph.shutdown_order() == ["api", "db", "cache", "log"]

    def test_find_cycle(self, graph):
        assert graph.find_cycle() is None
        cyclic = DependencyGraph({"a": ["b"], "b": ["c"], "c": ["a"]})
        assert cyclic.find_cycle() == ["a", "b", "c", "a"]

    def test_dangling_edge(self):
        with pytest.raises(UnresolvedDependency):
            DependencyGraph({"a": ["b"]})
