"""
Tests for the System Context.
"""

import pytest

from hostcore.exceptions import ModuleNotAvailable, ModuleNotFound
from modhost.context import ModuleContext, StateView, SystemContext
from modhost.hooks import HookRegistry
from modhost.models import ModuleStatus


class Pool:
    def __init__(self):
        self.size = 5
        self.connections = ["c1", "c2"]


def install(context, name, state, services=None):
    record = context.create_record(name)
    record.status = ModuleStatus.STARTED
    record.state = state
    context.install(name, state, services or {})
    return record


@pytest.fixture
def context():
    return SystemContext(HookRegistry(), correlation_id="run_1")


class TestStateView:

    def test_attribute_reads_pass_through(self):
        view = StateView(Pool(), "db")
        assert view.size == 5

    def test_attribute_writes_refused(self):
        view = StateView(Pool(), "db")
        with pytest.raises(AttributeError):
            view.size = 10
        with pytest.raises(AttributeError):
            del view.size

    def test_item_access(self):
        view = StateView({"k": 1}, "cache")
        assert view["k"] == 1
        assert "k" in view
        assert list(view) == ["k"]
        assert len(view) == 1
        with pytest.raises(TypeError):
            view["k"] = 2
        with pytest.raises(TypeError):
            del view["k"]

    def test_mutator_methods_refused(self):
        state = {"pool": "p1", "items": [1, 2]}
        view = StateView(state, "db")
        with pytest.raises(AttributeError):
            view.update({"pool": "other"})
        with pytest.raises(AttributeError):
            view.clear()
        with pytest.raises(AttributeError):
            view["items"].append(99)
        with pytest.raises(AttributeError):
            view.get("items").append(99)
        assert state == {"pool": "p1", "items": [1, 2]}

    def test_nested_values_are_views(self):
        state = {"items": [{"id": 1}]}
        view = StateView(state, "db")
        items = view["items"]
        assert isinstance(items, StateView)
        first = next(iter(items))
        with pytest.raises(TypeError):
            first["id"] = 2
        assert view.get("items") == [{"id": 1}]
        assert state["items"][0]["id"] == 1

    def test_nested_attributes_are_views(self):
        pool = Pool()
        view = StateView(pool, "db")
        with pytest.raises(AttributeError):
            view.connections.append("c3")
        assert pool.connections == ["c1", "c2"]

    def test_equality(self):
        assert StateView({"a": 1}, "x") == {"a": 1}
        assert StateView([1], "x") == StateView([1], "y")


class TestSystemContext:

    def test_visible_only_after_install(self, context):
        record = context.create_record("db")
        record.status = ModuleStatus.STARTING
        assert not context.is_started("db")
        with pytest.raises(ModuleNotAvailable):
            context.get("db", requested_by="api")

    def test_get_returns_read_only_view(self, context):
        pool = Pool()
        install(context, "db", pool)
        view = context.get("db")
        assert isinstance(view, StateView)
        assert view.connections == ["c1", "c2"]
        with pytest.raises(AttributeError):
            view.size = 0
        assert pool.size == 5

    def test_immutable_state_returned_directly(self, context):
        install(context, "config", "v1")
        assert context.get("config") == "v1"

    def test_start_order_and_membership(self, context):
        install(context, "log", None)
        install(context, "db", Pool())
        assert context.start_order == ["log", "db"]
        assert context.started_modules() == ["log", "db"]
        assert "db" in context
        assert len(context) == 2

    def test_release(self, context):
        pool = Pool()
        record = install(context, "db", pool)
        record.status = ModuleStatus.STOPPING
        assert context.release("db") is pool
        assert "db" not in context
        assert context.start_order == ["db"]

    def test_record_lookup(self, context):
        install(context, "log", None)
        assert context.record("log").status == ModuleStatus.STARTED
        with pytest.raises(ModuleNotFound):
            context.record("ghost")


class TestModuleContext:

    def test_scoped_identity(self, context):
        install(context, "db", Pool())
        scoped = context.for_module("api")
        assert isinstance(scoped, ModuleContext)
        assert scoped.name == "api"
        assert scoped.correlation_id == "run_1"
        assert scoped.modules == ["db"]
        assert scoped.is_started("db")

    def test_get_names_requester(self, context):
        with pytest.raises(ModuleNotAvailable) as exc_info:
            context.for_module("api").get("db")
        assert exc_info.value.requested_by == "api"

    def test_own_state_is_raw(self, context):
        pool = Pool()
        install(context, "db", pool)
        assert context.for_module("db").own_state() is pool

    def test_call_service(self, context):
        def lookup(ctx, params):
            return (ctx.name, ctx.own_state()[params])

        install(context, "users", {"42": "ada"}, services={"lookup": lookup})
        assert context.for_module("api").call("users", "lookup", "42") == ("users", "ada")

    def test_call_unknown_service(self, context):
        install(context, "users", {}, services={})
        with pytest.raises(ModuleNotFound) as exc_info:
            context.for_module("api").call("users", "delete")
        assert exc_info.value.service == "delete"

    def test_call_not_started(self, context):
        with pytest.raises(ModuleNotAvailable):
            context.for_module("api").call("users", "lookup")

    def test_hooks_through_context(self, context):
        scoped = context.for_module("api")
        scoped.declare_hook("api.routes")
        with context.hooks.registration_scope("users"):
            context.for_module("users").register_hook("api.routes", lambda: "users")
        result = scoped.dispatch("api.routes")
        assert result.values == ["users"]
        assert context.hooks.handlers("api.routes")[0].owner == "users"
