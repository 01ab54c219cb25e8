"""Component model — the containers that own formulas, workflows and nodes.

Only the parts the interpreter and the traversal read are modelled:
formula/workflow tables, variables, APIs (their formula fields and client
callbacks), lifecycle events, route info and the node tree.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from layr.actions import Action, parse_actions
from layr.formulas import Formula, parse_formula


@dataclass(frozen=True)
class ComponentFormula:
    name: str
    formula: Formula | None
    arguments: tuple[str, ...] = ()
    memoize: bool = False
    expose_in_context: bool = False


@dataclass(frozen=True)
class Workflow:
    name: str
    actions: tuple[Action, ...] = ()
    parameters: tuple[str, ...] = ()
    callbacks: tuple[str, ...] = ()
    expose_in_context: bool = False


@dataclass(frozen=True)
class ToggledFormula:
    """A header or query parameter: value formula plus optional enabled flag."""

    formula: Formula | None
    enabled: Formula | None = None


@dataclass(frozen=True)
class ComponentAPI:
    name: str
    url: Formula | None = None
    method: Formula | None = None
    body: Formula | None = None
    auto_fetch: Formula | None = None
    headers: Mapping[str, ToggledFormula] = field(default_factory=dict)
    query_params: Mapping[str, ToggledFormula] = field(default_factory=dict)
    on_completed: tuple[Action, ...] | None = None
    on_failed: tuple[Action, ...] | None = None
    on_message: tuple[Action, ...] | None = None


@dataclass(frozen=True)
class StyleVariant:
    name: str = ""
    custom_properties: Mapping[str, Formula | None] = field(default_factory=dict)


@dataclass(frozen=True)
class ElementNode:
    tag: str = "div"
    attrs: Mapping[str, Formula | None] = field(default_factory=dict)
    events: Mapping[str, tuple[Action, ...]] = field(default_factory=dict)
    classes: Mapping[str, Formula | None] = field(default_factory=dict)
    custom_properties: Mapping[str, Formula | None] = field(default_factory=dict)
    variants: tuple[StyleVariant, ...] = ()
    children: tuple[str, ...] = ()
    condition: Formula | None = None
    repeat: Formula | None = None
    repeat_key: Formula | None = None


@dataclass(frozen=True)
class TextNode:
    value: Formula | None = None
    condition: Formula | None = None
    repeat: Formula | None = None
    repeat_key: Formula | None = None


@dataclass(frozen=True)
class ComponentNode:
    name: str
    package: str | None = None
    attrs: Mapping[str, Formula | None] = field(default_factory=dict)
    events: Mapping[str, tuple[Action, ...]] = field(default_factory=dict)
    custom_properties: Mapping[str, Formula | None] = field(default_factory=dict)
    children: tuple[str, ...] = ()
    condition: Formula | None = None
    repeat: Formula | None = None
    repeat_key: Formula | None = None


@dataclass(frozen=True)
class SlotNode:
    name: str | None = None
    children: tuple[str, ...] = ()
    condition: Formula | None = None
    repeat: Formula | None = None
    repeat_key: Formula | None = None


Node = Union[ElementNode, TextNode, ComponentNode, SlotNode]


@dataclass(frozen=True)
class RouteInfo:
    title: Formula | None = None
    description: Formula | None = None


@dataclass(frozen=True)
class Component:
    name: str
    formulas: Mapping[str, ComponentFormula] = field(default_factory=dict)
    workflows: Mapping[str, Workflow] = field(default_factory=dict)
    variables: Mapping[str, Formula | None] = field(default_factory=dict)
    apis: Mapping[str, ComponentAPI] = field(default_factory=dict)
    nodes: Mapping[str, Node] = field(default_factory=dict)
    on_load: tuple[Action, ...] | None = None
    on_attribute_change: tuple[Action, ...] | None = None
    route: RouteInfo | None = None
    package: str | None = None


def parse_component(data: Any) -> Component | None:
    if isinstance(data, Component):
        return data
    if not isinstance(data, Mapping):
        return None

    formulas = {}
    for name, entry in _mapping(data.get("formulas")).items():
        if isinstance(entry, Mapping):
            formulas[name] = ComponentFormula(
                name=entry.get("name") or name,
                formula=parse_formula(entry.get("formula")),
                arguments=_names(entry.get("arguments")),
                memoize=bool(entry.get("memoize", False)),
                expose_in_context=bool(entry.get("exposeInContext", False)),
            )

    workflows = {}
    for name, entry in _mapping(data.get("workflows")).items():
        if isinstance(entry, Mapping):
            workflows[name] = Workflow(
                name=entry.get("name") or name,
                actions=parse_actions(entry.get("actions")),
                parameters=_names(entry.get("parameters")),
                callbacks=_names(entry.get("callbacks")),
                expose_in_context=bool(entry.get("exposeInContext", False)),
            )

    variables = {
        name: parse_formula(entry.get("initialValue")) if isinstance(entry, Mapping) else None
        for name, entry in _mapping(data.get("variables")).items()
    }

    apis = {}
    for name, entry in _mapping(data.get("apis")).items():
        api = parse_api(entry, name)
        if api is not None:
            apis[name] = api

    nodes = {}
    for node_id, entry in _mapping(data.get("nodes")).items():
        node = parse_node(entry)
        if node is not None:
            nodes[node_id] = node

    route = None
    info = _mapping(_mapping(data.get("route")).get("info"))
    if info:
        route = RouteInfo(
            title=parse_formula(_mapping(info.get("title")).get("formula")),
            description=parse_formula(_mapping(info.get("description")).get("formula")),
        )

    return Component(
        name=str(data.get("name") or ""),
        formulas=formulas,
        workflows=workflows,
        variables=variables,
        apis=apis,
        nodes=nodes,
        on_load=_event_actions(data.get("onLoad")),
        on_attribute_change=_event_actions(data.get("onAttributeChange")),
        route=route,
        package=data.get("package") or None,
    )


def parse_api(data: Any, name: str = "") -> ComponentAPI | None:
    if isinstance(data, ComponentAPI):
        return data
    if not isinstance(data, Mapping):
        return None
    client = _mapping(data.get("client"))
    return ComponentAPI(
        name=data.get("name") or name,
        url=parse_formula(data.get("url")),
        method=parse_formula(data.get("method")),
        body=parse_formula(data.get("body")),
        auto_fetch=parse_formula(data.get("autoFetch")),
        headers=_toggled(data.get("headers")),
        query_params=_toggled(data.get("queryParams")),
        on_completed=_event_actions(client.get("onCompleted")),
        on_failed=_event_actions(client.get("onFailed")),
        on_message=_event_actions(client.get("onMessage")),
    )


def parse_node(data: Any) -> Node | None:
    if isinstance(data, (ElementNode, TextNode, ComponentNode, SlotNode)):
        return data
    if not isinstance(data, Mapping):
        return None

    common = {
        "condition": parse_formula(data.get("condition")),
        "repeat": parse_formula(data.get("repeat")),
        "repeat_key": parse_formula(data.get("repeatKey")),
    }
    kind = data.get("type")
    children = tuple(str(c) for c in data.get("children") or ())
    if kind == "element":
        return ElementNode(
            tag=str(data.get("tag") or "div"),
            attrs=_formula_map(data.get("attrs")),
            events=_events(data.get("events")),
            classes={
                name: parse_formula(entry.get("formula")) if isinstance(entry, Mapping) else None
                for name, entry in _mapping(data.get("classes")).items()
            },
            custom_properties=_custom_properties(data.get("customProperties")),
            variants=tuple(
                StyleVariant(
                    name=str(variant.get("name") or ""),
                    custom_properties=_custom_properties(variant.get("customProperties")),
                )
                for variant in data.get("variants") or ()
                if isinstance(variant, Mapping)
            ),
            children=children,
            **common,
        )
    if kind == "text":
        return TextNode(value=parse_formula(data.get("value")), **common)
    if kind == "component":
        return ComponentNode(
            name=str(data.get("name") or ""),
            package=data.get("package") or None,
            attrs=_formula_map(data.get("attrs")),
            events=_events(data.get("events")),
            custom_properties=_custom_properties(data.get("customProperties")),
            children=children,
            **common,
        )
    if kind == "slot":
        return SlotNode(name=data.get("name"), children=children, **common)
    return None


def _mapping(data: Any) -> Mapping[str, Any]:
    return data if isinstance(data, Mapping) else {}


def _names(data: Any) -> tuple[str, ...]:
    names = []
    for entry in data or ():
        if isinstance(entry, Mapping) and entry.get("name"):
            names.append(str(entry["name"]))
        elif isinstance(entry, str):
            names.append(entry)
    return tuple(names)


def _event_actions(data: Any) -> tuple[Action, ...] | None:
    if isinstance(data, Mapping):
        return parse_actions(data.get("actions"))
    return None


def _events(data: Any) -> dict[str, tuple[Action, ...]]:
    return {name: _event_actions(entry) or () for name, entry in _mapping(data).items()}


def _formula_map(data: Any) -> dict[str, Formula | None]:
    return {name: parse_formula(entry) for name, entry in _mapping(data).items()}


def _custom_properties(data: Any) -> dict[str, Formula | None]:
    return {
        name: parse_formula(entry.get("formula")) if isinstance(entry, Mapping) else None
        for name, entry in _mapping(data).items()
    }


def _toggled(data: Any) -> dict[str, ToggledFormula]:
    return {
        name: ToggledFormula(parse_formula(entry.get("formula")), parse_formula(entry.get("enabled")))
        for name, entry in _mapping(data).items()
        if isinstance(entry, Mapping)
    }
