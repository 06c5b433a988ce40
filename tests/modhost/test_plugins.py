"""
Tests for Plugin Discovery.

============================================================
PURPOSE
============================================================
TEST PRINCIPLES:
- A broken plugin is reported and skipped
- Healthy plugins are still loaded and registered
- Anything depending on a skipped plugin fails at resolution

============================================================
"""

import textwrap
import types
from unittest.mock import MagicMock, patch

import pytest

from hostcore.exceptions import PluginLoadError, UnresolvedDependency
from modhost.graph import resolve
from modhost.manifest import Manifest, ManifestRegistry, ModuleDefinition
from modhost.plugins import (
    DirectoryPluginLoader,
    DiscoveryResult,
    EntryPointPluginLoader,
    NamespacePluginLoader,
    discover_all,
    module_from_namespace,
)


# ============================================================
# FIXTURES
# ============================================================

GOOD_PLUGIN = """
from modhost.manifest import Manifest
from modhost.schema import FieldSpec

MANIFEST = Manifest(
    description="in-memory cache",
    deps=["log"],
    config={"size": FieldSpec(type="integer", default=128)},
)

def start(context, config):
    return {"size": config["size"]}

def stop(state):
    pass
"""

LOG_PLUGIN = """
from modhost.manifest import Manifest

MODULE_ID = "log"
MANIFEST = Manifest(description="logging")

def start(context, config):
    return None

def stop(state):
    pass

def tail(context, params):
    return []

SERVICES = {"tail": tail}
"""

NO_MANIFEST_PLUGIN = """
def start(context, config):
    return None

def stop(state):
    pass
"""

BROKEN_PLUGIN = """
raise ImportError("optional dependency missing")
"""


def write(directory, name, source):
    path = directory / name
    path.write_text(textwrap.dedent(source))
    return path


@pytest.fixture
def plugin_dir(tmp_path):
    write(tmp_path, "cache.py", GOOD_PLUGIN)
    write(tmp_path, "logging_plugin.py", LOG_PLUGIN)
    write(tmp_path, "_helpers.py", "VALUE = 1\n")
    write(tmp_path, "README.txt", "not a plugin")
    return tmp_path


def namespace(**overrides):
    ns = {
        "MANIFEST": Manifest(),
        "start": lambda context, config: None,
        "stop": lambda state: None,
    }
    ns.update(overrides)
    return ns


# ============================================================
# NAMING CONVENTION
# ============================================================

class TestModuleFromNamespace:

    def test_builds_definition(self):
        definition = module_from_namespace("cache", namespace())
        assert isinstance(definition, ModuleDefinition)
        assert definition.name == "cache"

    def test_module_id_overrides_unit_name(self):
        assert module_from_namespace("file", namespace(MODULE_ID="cache")).name == "cache"

    @pytest.mark.parametrize(
        "overrides, reason",
        [
            ({"MANIFEST": None}, "missing MANIFEST"),
            ({"start": None}, "missing start entry point"),
            ({"stop": "nope"}, "stop entry point is not callable"),
            ({"SERVICES": ["x"]}, "SERVICES must be a mapping"),
            ({"MODULE_ID": 7}, "MODULE_ID must be a string"),
        ],
    )
    def test_invalid_units(self, overrides, reason):
        with pytest.raises(PluginLoadError) as exc_info:
            module_from_namespace("unit", namespace(**overrides))
        assert exc_info.value.reason == reason

    def test_manifest_wrong_type(self):
        with pytest.raises(PluginLoadError):
            module_from_namespace("unit", namespace(MANIFEST={"deps": []}))


# ============================================================
# DIRECTORY LOADER
# ============================================================

class TestDirectoryPluginLoader:

    def test_discovers_plugins(self, plugin_dir):
        result = DirectoryPluginLoader([plugin_dir]).discover()

        assert result.names == ["cache", "log"]
        assert result.errors == []
        cache = result.modules[0]
        assert cache.manifest.description == "in-memory cache"
        log = result.modules[1]
        assert "tail" in log.services

    def test_broken_plugins_isolated(self, plugin_dir):
        write(plugin_dir, "broken.py", BROKEN_PLUGIN)
        write(plugin_dir, "incomplete.py", NO_MANIFEST_PLUGIN)

        result = DirectoryPluginLoader([plugin_dir]).discover()

        assert result.names == ["cache", "log"]
        failed = {e.plugin: e for e in result.errors}
        assert set(failed) == {"broken", "incomplete"}
        assert isinstance(failed["broken"].cause, ImportError)
        assert failed["incomplete"].reason == "missing MANIFEST"

    def test_missing_directory(self, tmp_path):
        result = DirectoryPluginLoader([tmp_path / "absent"]).discover()
        assert result.modules == []
        assert len(result.errors) == 1

    def test_register_and_start_order(self, plugin_dir):
        registry = ManifestRegistry()
        registered = DirectoryPluginLoader([plugin_dir]).discover().register_into(registry)
        assert registered == ["cache", "log"]
        assert resolve(registry) == ["log", "cache"]

    def test_skipped_dependency_fails_resolution(self, tmp_path):
        write(tmp_path, "cache.py", GOOD_PLUGIN)
        write(tmp_path, "logging_plugin.py", BROKEN_PLUGIN)

        registry = ManifestRegistry()
        result = DirectoryPluginLoader([tmp_path]).discover()
        result.register_into(registry)

        assert [e.plugin for e in result.errors] == ["logging_plugin"]
        with pytest.raises(UnresolvedDependency) as exc_info:
            resolve(registry)
        assert exc_info.value.missing == "log"


# ============================================================
# OTHER LOADERS
# ============================================================

class TestNamespacePluginLoader:

    def test_accepts_modules_mappings_and_definitions(self):
        unit = types.ModuleType("metrics")
        unit.MANIFEST = Manifest()
        unit.start = lambda context, config: None
        unit.stop = lambda state: None

        ready = ModuleDefinition(name="ready", manifest=Manifest())
        loader = NamespacePluginLoader({
            "metrics": unit,
            "mapping": namespace(),
            "ready": ready,
            "bad": {"start": None},
        })
        result = loader.discover()

        assert result.names == ["mapping", "metrics", "ready"]
        assert [e.plugin for e in result.errors] == ["bad"]


class TestEntryPointPluginLoader:

    def test_loads_entry_points(self):
        good = MagicMock()
        good.name = "cache"
        good.load.return_value = namespace()

        bad = MagicMock()
        bad.name = "auth"
        bad.load.side_effect = ModuleNotFoundError("no module named auth_plugin")

        with patch("modhost.plugins.metadata.entry_points", return_value=[good, bad]) as eps:
            result = EntryPointPluginLoader().discover()

        eps.assert_called_once_with(group="modhost.modules")
        assert result.names == ["cache"]
        assert [e.plugin for e in result.errors] == ["auth"]

    def test_enumeration_failure_is_reported(self):
        with patch("modhost.plugins.metadata.entry_points", side_effect=TypeError("bad metadata")):
            result = EntryPointPluginLoader(group="custom.group").discover()

        assert result.modules == []
        assert [e.plugin for e in result.errors] == ["custom.group"]


class TestDiscoveryResult:

    def test_duplicate_becomes_plugin_error(self):
        registry = ManifestRegistry()
        registry.register("cache", Manifest())

        result = NamespacePluginLoader({"cache": namespace(), "log": namespace()}).discover()
        registered = result.register_into(registry)

        assert registered == ["log"]
        assert [e.plugin for e in result.errors] == ["cache"]

    def test_discover_all_merges(self, plugin_dir):
        result = discover_all([
            DirectoryPluginLoader([plugin_dir]),
            NamespacePluginLoader({"extra": namespace()}),
        ])
        assert isinstance(result, DiscoveryResult)
        assert result.names == ["cache", "log", "extra"]
