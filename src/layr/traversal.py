"""Read-only structural walks over formula, action and component trees.

Every walk is a generator: lazy, ordered, and restartable by calling the
function again. Nothing is evaluated. Each visit carries the structural
path to the node, spelled with the persisted JSON keys ("arguments", 0,
"formula", ...), because tooling keys off those paths.
"""

from __future__ import annotations

from typing import Callable, Iterator, NamedTuple, Sequence, Union

from layr import actions as act
from layr import formulas as fx
from layr.components import Component, ComponentAPI, ComponentNode, ElementNode, Node, TextNode

PathSegment = Union[str, int]
PathTuple = tuple[PathSegment, ...]


class FormulaVisit(NamedTuple):
    path: PathTuple
    formula: fx.Formula
    package: str | None = None


class ActionVisit(NamedTuple):
    path: PathTuple
    action: act.Action


# ─── Formulas ────────────────────────────────────────────────────────────────


def formulas_in_formula(
    formula: fx.Formula | None,
    path: PathTuple = (),
    package: str | None = None,
) -> Iterator[FormulaVisit]:
    """Pre-order walk of a formula tree.

    Arguments of a Function that names a package inherit that package.
    """
    if formula is None:
        return
    yield FormulaVisit(path, formula, package)

    if isinstance(formula, fx.Switch):
        for i, case in enumerate(formula.cases):
            yield from formulas_in_formula(case.condition, (*path, "cases", i, "condition"), package)
            yield from formulas_in_formula(case.formula, (*path, "cases", i, "formula"), package)
        yield from formulas_in_formula(formula.default, (*path, "default"), package)
    elif isinstance(formula, (fx.Value, fx.Path)):
        return
    else:
        inner = (formula.package or package) if isinstance(formula, fx.Function) else package
        for i, arg in enumerate(formula.arguments):
            yield from formulas_in_formula(arg.formula, (*path, "arguments", i, "formula"), inner)


# ─── Actions ─────────────────────────────────────────────────────────────────


def formulas_in_action(
    action: act.Action | Sequence[act.Action] | None,
    path: PathTuple = (),
    package: str | None = None,
) -> Iterator[FormulaVisit]:
    """Every formula reachable from an action or action list."""
    if action is None:
        return
    if isinstance(action, (list, tuple)):
        for i, item in enumerate(action):
            yield from formulas_in_action(item, (*path, i), package)
        return

    if isinstance(action, (act.SetVariable, act.TriggerEvent, act.TriggerWorkflowCallback, act.SetURLParameter)):
        yield from formulas_in_formula(action.data, (*path, "data"), package)
    elif isinstance(action, act.Fetch):
        yield from _named(action.inputs, (*path, "inputs"), package)
        yield from formulas_in_action(action.on_success, (*path, "onSuccess", "actions"), package)
        yield from formulas_in_action(action.on_error, (*path, "onError", "actions"), package)
        yield from formulas_in_action(action.on_message, (*path, "onMessage", "actions"), package)
    elif isinstance(action, act.SetURLParameters):
        yield from _named(action.parameters, (*path, "parameters"), package)
    elif isinstance(action, act.TriggerWorkflow):
        yield from _named(action.parameters, (*path, "parameters"), package)
        for name, body in action.callbacks.items():
            yield from formulas_in_action(body, (*path, "callbacks", name, "actions"), package)
    elif isinstance(action, act.Switch):
        yield from formulas_in_formula(action.data, (*path, "data"), package)
        for i, case in enumerate(action.cases):
            yield from formulas_in_formula(case.condition, (*path, "cases", i, "condition"), package)
            yield from formulas_in_action(case.actions, (*path, "cases", i, "actions"), package)
        yield from formulas_in_action(action.default, (*path, "default", "actions"), package)
    elif isinstance(action, act.Custom):
        yield from _named(action.arguments, (*path, "arguments"), package)
        for name, body in action.events.items():
            yield from formulas_in_action(body, (*path, "events", name, "actions"), package)


def actions_in_action(
    action: act.Action | Sequence[act.Action] | None,
    path: PathTuple = (),
) -> Iterator[ActionVisit]:
    """Pre-order walk of every action node, nested bodies included."""
    if action is None:
        return
    if isinstance(action, (list, tuple)):
        for i, item in enumerate(action):
            yield from actions_in_action(item, (*path, i))
        return

    yield ActionVisit(path, action)
    if isinstance(action, act.Fetch):
        yield from actions_in_action(action.on_success, (*path, "onSuccess", "actions"))
        yield from actions_in_action(action.on_error, (*path, "onError", "actions"))
        yield from actions_in_action(action.on_message, (*path, "onMessage", "actions"))
    elif isinstance(action, act.Custom):
        for name, body in action.events.items():
            yield from actions_in_action(body, (*path, "events", name, "actions"))
    elif isinstance(action, act.TriggerWorkflow):
        for name, body in action.callbacks.items():
            yield from actions_in_action(body, (*path, "callbacks", name, "actions"))
    elif isinstance(action, act.Switch):
        for i, case in enumerate(action.cases):
            yield from actions_in_action(case.actions, (*path, "cases", i, "actions"))
        yield from actions_in_action(action.default, (*path, "default", "actions"))


def _named(named: tuple[act.NamedFormula, ...], path: PathTuple, package: str | None) -> Iterator[FormulaVisit]:
    for i, entry in enumerate(named):
        yield from formulas_in_formula(entry.formula, (*path, i, "formula"), package)


# ─── Nodes ───────────────────────────────────────────────────────────────────


def formulas_in_node(node: Node, node_id: str, package: str | None = None) -> Iterator[FormulaVisit]:
    base = ("nodes", node_id)
    yield from formulas_in_formula(node.condition, (*base, "condition"), package)
    yield from formulas_in_formula(node.repeat, (*base, "repeat"), package)
    yield from formulas_in_formula(node.repeat_key, (*base, "repeatKey"), package)

    if isinstance(node, TextNode):
        yield from formulas_in_formula(node.value, (*base, "value"), package)
    elif isinstance(node, ElementNode):
        for name, formula in node.attrs.items():
            yield from formulas_in_formula(formula, (*base, "attrs", name), package)
        for name, body in node.events.items():
            yield from formulas_in_action(body, (*base, "events", name, "actions"), package)
        for name, formula in node.classes.items():
            yield from formulas_in_formula(formula, (*base, "classes", name, "formula"), package)
        for name, formula in node.custom_properties.items():
            yield from formulas_in_formula(formula, (*base, "customProperties", name, "formula"), package)
        for i, variant in enumerate(node.variants):
            for name, formula in variant.custom_properties.items():
                yield from formulas_in_formula(
                    formula, (*base, "variants", i, "customProperties", name, "formula"), package
                )
    elif isinstance(node, ComponentNode):
        inner = node.package or package
        for name, formula in node.attrs.items():
            yield from formulas_in_formula(formula, (*base, "attrs", name), inner)
        for name, body in node.events.items():
            yield from formulas_in_action(body, (*base, "events", name, "actions"), inner)
        for name, formula in node.custom_properties.items():
            yield from formulas_in_formula(formula, (*base, "customProperties", name, "formula"), inner)


def actions_in_node(node: Node, node_id: str, path: PathTuple | None = None) -> Iterator[ActionVisit]:
    base = path if path is not None else ("nodes", node_id)
    if isinstance(node, (ElementNode, ComponentNode)):
        for name, body in node.events.items():
            yield from actions_in_action(body, (*base, "events", name, "actions"))


# ─── APIs and components ─────────────────────────────────────────────────────


def formulas_in_api(api: ComponentAPI, path: PathTuple = ("api",), package: str | None = None) -> Iterator[FormulaVisit]:
    yield from formulas_in_formula(api.auto_fetch, (*path, "autoFetch"), package)
    yield from formulas_in_formula(api.url, (*path, "url"), package)
    yield from formulas_in_formula(api.method, (*path, "method"), package)
    yield from formulas_in_formula(api.body, (*path, "body"), package)
    for group, entries in (("headers", api.headers), ("queryParams", api.query_params)):
        for name, toggled in entries.items():
            yield from formulas_in_formula(toggled.formula, (*path, group, name, "formula"), package)
            yield from formulas_in_formula(toggled.enabled, (*path, group, name, "enabled"), package)
    yield from formulas_in_action(api.on_completed, (*path, "client", "onCompleted", "actions"), package)
    yield from formulas_in_action(api.on_failed, (*path, "client", "onFailed", "actions"), package)
    yield from formulas_in_action(api.on_message, (*path, "client", "onMessage", "actions"), package)


def formulas_in_component(component: Component, package: str | None = None) -> Iterator[FormulaVisit]:
    """Every formula in a component, in a fixed section order."""
    if component.route is not None:
        yield from formulas_in_formula(component.route.title, ("route", "info", "title", "formula"), package)
        yield from formulas_in_formula(
            component.route.description, ("route", "info", "description", "formula"), package
        )
    for name, definition in component.formulas.items():
        yield from formulas_in_formula(definition.formula, ("formulas", name, "formula"), package)
    for name, initial in component.variables.items():
        yield from formulas_in_formula(initial, ("variables", name, "initialValue"), package)
    for name, workflow in component.workflows.items():
        yield from formulas_in_action(workflow.actions, ("workflows", name, "actions"), package)
    for name, api in component.apis.items():
        yield from formulas_in_api(api, ("apis", name), package)
    yield from formulas_in_action(component.on_load, ("onLoad", "actions"), package)
    yield from formulas_in_action(component.on_attribute_change, ("onAttributeChange", "actions"), package)
    for node_id, node in component.nodes.items():
        yield from formulas_in_node(node, node_id, package)


def actions_in_component(component: Component, path: PathTuple = ()) -> Iterator[ActionVisit]:
    for name, workflow in component.workflows.items():
        yield from actions_in_action(workflow.actions, (*path, "workflows", name, "actions"))
    for name, api in component.apis.items():
        yield from actions_in_action(api.on_completed, (*path, "apis", name, "client", "onCompleted", "actions"))
        yield from actions_in_action(api.on_failed, (*path, "apis", name, "client", "onFailed", "actions"))
    yield from actions_in_action(component.on_load, (*path, "onLoad", "actions"))
    yield from actions_in_action(component.on_attribute_change, (*path, "onAttributeChange", "actions"))
    for node_id, node in component.nodes.items():
        yield from actions_in_node(node, node_id, (*path, "nodes", node_id))


# ─── Reference collection ────────────────────────────────────────────────────


def collect_formula_references(component: Component) -> set[str]:
    """Names of every Function used, plus package-qualified names where known."""
    references: set[str] = set()
    for visit in formulas_in_component(component):
        if isinstance(visit.formula, fx.Function):
            references.add(visit.formula.name)
            if visit.package:
                references.add(f"{visit.package}/{visit.formula.name}")
    return references


def collect_action_references(component: Component) -> set[str]:
    return {
        visit.action.name
        for visit in actions_in_component(component)
        if isinstance(visit.action, act.Custom) and visit.action.name
    }


def collect_sub_component_names(
    component: Component,
    get_component: Callable[[str, str | None], Component | None],
    package: str | None = None,
    visited: set[str] | None = None,
) -> list[str]:
    """Transitively referenced sub-components, each listed once.

    Names are package-qualified when a package applies.
    """
    if visited is None:
        visited = set()
    names: list[str] = []
    for node in component.nodes.values():
        if not isinstance(node, ComponentNode):
            continue
        node_package = node.package or package
        key = f"{node_package}/{node.name}" if node_package else node.name
        if key in visited:
            continue
        visited.add(key)
        names.append(key)
        sub = get_component(node.name, node_package)
        if sub is not None:
            names.extend(collect_sub_component_names(sub, get_component, node_package, visited))
    return names
