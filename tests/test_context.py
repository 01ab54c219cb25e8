"""Tests for contexts, the memo cache and context providers."""

from layr import ContextScope, MemoCache, Signal, build_provider_key, parse_component
from layr.context import ActionContext, exposed_formulas, exposed_workflows, is_context_provider


class TestMemoCache:
    def test_single_entry_per_name(self):
        cache = MemoCache()
        cache.store("total", "[1]", 10)
        assert cache.lookup("total", "[1]") == 10
        cache.store("total", "[2]", 20)
        assert cache.lookup("total", "[1]") is MemoCache.MISS
        assert cache.lookup("total", "[2]") == 20

    def test_cached_none_is_a_hit(self):
        cache = MemoCache()
        cache.store("f", "{}", None)
        assert cache.lookup("f", "{}") is None

    def test_clear(self):
        cache = MemoCache()
        cache.store("a", "x", 1)
        cache.store("b", "x", 2)
        cache.clear("a")
        assert "a" not in cache
        assert len(cache) == 1
        cache.clear()
        assert len(cache) == 0


class TestActionContext:
    def test_formula_context_layers_overlay_and_event(self):
        ctx = ActionContext(signal=Signal({"Variables": {"a": 1}}))
        ctx = ctx.with_overlay(Parameters={"id": 7})
        fctx = ctx.formula_context(event={"x": 1})
        assert fctx.data == {"Variables": {"a": 1}, "Parameters": {"id": 7}, "Event": {"x": 1}}

    def test_owner_name(self):
        component = parse_component({"name": "Cart"})
        assert ActionContext(signal=Signal({}), component=component, package="shop").owner_name == "shop/Cart"


class TestContextScope:
    def test_provide_and_consume(self):
        scope = ContextScope()
        scope.provide("Cart", "value")
        assert scope.has("Cart")
        assert scope.consume("Cart") == "value"
        assert scope.consume("Missing", "fallback") == "fallback"

    def test_parent_chain(self):
        root = ContextScope()
        root.provide("Theme", "dark")
        child = ContextScope(parent=root)
        assert child.consume("Theme") == "dark"
        child.provide("Theme", "light")
        assert child.consume("Theme") == "light"

    def test_signals_are_unwrapped(self):
        scope = ContextScope()
        signal = Signal(3)
        scope.provide("count", signal)
        assert scope.consume("count") == 3
        assert scope.consume_signal("count") is signal

    def test_unprovide(self):
        scope = ContextScope()
        scope.provide("a", None)
        assert scope.unprovide("a")
        assert not scope.unprovide("a")
        assert not scope.has("a")


class TestProviderHelpers:
    def test_build_provider_key(self):
        assert build_provider_key("Cart") == "Cart"
        assert build_provider_key("Cart", "shop") == "shop/Cart"

    def test_exposed_members(self):
        component = parse_component(
            {
                "name": "Cart",
                "formulas": {"total": {"exposeInContext": True}, "hidden": {}},
                "workflows": {"add": {"exposeInContext": True}},
            }
        )
        assert exposed_formulas(component) == ["total"]
        assert exposed_workflows(component) == ["add"]
        assert is_context_provider(component)
        assert not is_context_provider(parse_component({"name": "Plain"}))
        assert not is_context_provider(None)
