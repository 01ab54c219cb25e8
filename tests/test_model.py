"""Tests for parsing persisted JSON into formula, action and component nodes."""

from layr import parse_action, parse_actions, parse_component, parse_formula
from layr import actions as act
from layr import formulas as fx
from layr.components import ComponentNode, ElementNode, SlotNode, TextNode, parse_api, parse_node


class TestFormulas:
    def test_value(self):
        assert parse_formula({"type": "value", "value": 42}) == fx.Value(42)

    def test_path_segments_are_strings(self):
        assert parse_formula({"type": "path", "path": ["items", 0]}) == fx.Path(("items", "0"))

    def test_function_arguments(self):
        formula = parse_formula(
            {
                "type": "function",
                "name": "map",
                "package": "lists",
                "arguments": [
                    {"name": "List", "formula": {"type": "path", "path": ["Variables", "xs"]}},
                    {"name": "Fx", "isFunction": True, "formula": {"type": "value", "value": 1}},
                ],
            }
        )
        assert isinstance(formula, fx.Function)
        assert formula.package == "lists"
        assert formula.arguments[1].is_function
        assert formula.arguments[0].name == "List"

    def test_switch(self):
        formula = parse_formula(
            {
                "type": "switch",
                "cases": [{"condition": {"type": "value", "value": True}, "formula": {"type": "value", "value": "a"}}],
                "default": {"type": "value", "value": "b"},
            }
        )
        assert formula.cases[0].formula == fx.Value("a")
        assert formula.default == fx.Value("b")

    def test_unknown_type_is_none(self):
        assert parse_formula({"type": "teleport"}) is None
        assert parse_formula("not a mapping") is None

    def test_existing_node_passes_through(self):
        node = fx.value(1)
        assert parse_formula(node) is node

    def test_helpers(self):
        assert fx.path("a", "b") == fx.Path(("a", "b"))
        assert fx.type_tag(fx.Or()) == "or"


class TestActions:
    def test_missing_type_is_custom(self):
        action = parse_action({"name": "confetti", "package": "fx", "arguments": [{"name": "n", "formula": None}]})
        assert isinstance(action, act.Custom)
        assert action.package == "fx"
        assert action.arguments == (act.NamedFormula("n", None),)

    def test_switch_default(self):
        action = parse_action(
            {
                "type": "Switch",
                "cases": [{"condition": None, "actions": [{"type": "SetVariable", "name": "a"}]}],
                "default": {"actions": [{"type": "TriggerEvent", "name": "b"}]},
            }
        )
        assert isinstance(action.cases[0].actions[0], act.SetVariable)
        assert isinstance(action.default[0], act.TriggerEvent)

    def test_fetch_callbacks(self):
        action = parse_action(
            {"type": "Fetch", "name": "load", "onSuccess": {"actions": [{"type": "AbortFetch", "name": "x"}]}}
        )
        assert action.on_success == (act.AbortFetch("x"),)
        assert action.on_error == ()

    def test_trigger_workflow_provider_aliases(self):
        a = parse_action({"type": "TriggerWorkflow", "name": "w", "contextProvider": "Cart"})
        b = parse_action({"type": "TriggerWorkflow", "name": "w", "componentName": "Cart"})
        assert a.context_provider == b.context_provider == "Cart"

    def test_named_formulas_accept_mapping(self):
        action = parse_action(
            {"type": "SetURLParameters", "parameters": {"page": {"formula": {"type": "value", "value": 2}}}}
        )
        assert action.parameters == (act.NamedFormula("page", fx.Value(2)),)

    def test_unknown_actions_dropped_from_lists(self):
        assert parse_actions([{"type": "Nope"}, {"type": "AbortFetch", "name": "a"}]) == (act.AbortFetch("a"),)


class TestComponents:
    def test_component_sections(self):
        component = parse_component(
            {
                "name": "Page",
                "formulas": {"total": {"formula": {"type": "value", "value": 1}, "memoize": True}},
                "workflows": {"save": {"actions": [], "exposeInContext": True, "parameters": [{"name": "id"}]}},
                "variables": {"count": {"initialValue": {"type": "value", "value": 0}}},
                "apis": {"items": {"url": {"type": "value", "value": "/items"}, "client": {"onCompleted": {"actions": []}}}},
                "onLoad": {"actions": [{"type": "SetVariable", "name": "count"}]},
                "route": {"info": {"title": {"formula": {"type": "value", "value": "Home"}}}},
            }
        )
        assert component.formulas["total"].memoize
        assert component.workflows["save"].expose_in_context
        assert component.workflows["save"].parameters == ("id",)
        assert component.variables["count"] == fx.Value(0)
        assert component.apis["items"].url == fx.Value("/items")
        assert component.apis["items"].on_completed == ()
        assert len(component.on_load) == 1
        assert component.route.title == fx.Value("Home")

    def test_nodes(self):
        assert isinstance(parse_node({"type": "element", "tag": "p"}), ElementNode)
        assert isinstance(parse_node({"type": "text"}), TextNode)
        assert isinstance(parse_node({"type": "slot"}), SlotNode)
        node = parse_node({"type": "component", "name": "Card", "package": "ui", "repeatKey": {"type": "value"}})
        assert isinstance(node, ComponentNode)
        assert node.repeat_key == fx.Value(None)
        assert parse_node({"type": "hologram"}) is None

    def test_api_toggled_headers(self):
        api = parse_api({"headers": {"auth": {"formula": {"type": "value", "value": "t"}}}}, "load")
        assert api.name == "load"
        assert api.headers["auth"].formula == fx.Value("t")
        assert api.headers["auth"].enabled is None

    def test_not_a_component(self):
        assert parse_component(None) is None
