"""Action nodes — the effect language.

Actions are persisted as JSON objects tagged by "type". A missing type
means a Custom action (user action from a package). Several variants
carry nested action lists; those are stored as tuples of actions.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Union

from layr.formulas import Formula, parse_formula


@dataclass(frozen=True)
class NamedFormula:
    name: str
    formula: Formula | None = None


@dataclass(frozen=True)
class SetVariable:
    name: str
    data: Formula | None = None


@dataclass(frozen=True)
class TriggerEvent:
    name: str
    data: Formula | None = None


@dataclass(frozen=True)
class SwitchCase:
    condition: Formula | None
    actions: tuple[Action, ...] = ()


@dataclass(frozen=True)
class Switch:
    cases: tuple[SwitchCase, ...] = ()
    default: tuple[Action, ...] | None = None
    data: Formula | None = None


@dataclass(frozen=True)
class Fetch:
    name: str
    inputs: tuple[NamedFormula, ...] = ()
    on_success: tuple[Action, ...] = ()
    on_error: tuple[Action, ...] = ()
    on_message: tuple[Action, ...] = ()


@dataclass(frozen=True)
class AbortFetch:
    name: str


@dataclass(frozen=True)
class Custom:
    name: str
    package: str | None = None
    arguments: tuple[NamedFormula, ...] = ()
    events: Mapping[str, tuple[Action, ...]] = field(default_factory=dict)


@dataclass(frozen=True)
class SetURLParameter:
    name: str
    data: Formula | None = None
    history_mode: str | None = None


@dataclass(frozen=True)
class SetURLParameters:
    parameters: tuple[NamedFormula, ...] = ()
    history_mode: str | None = None


@dataclass(frozen=True)
class TriggerWorkflow:
    name: str
    parameters: tuple[NamedFormula, ...] = ()
    callbacks: Mapping[str, tuple[Action, ...]] = field(default_factory=dict)
    context_provider: str | None = None
    package: str | None = None


@dataclass(frozen=True)
class TriggerWorkflowCallback:
    name: str
    data: Formula | None = None


Action = Union[
    SetVariable,
    TriggerEvent,
    Switch,
    Fetch,
    AbortFetch,
    Custom,
    SetURLParameter,
    SetURLParameters,
    TriggerWorkflow,
    TriggerWorkflowCallback,
]

ACTION_TYPES = (
    SetVariable,
    TriggerEvent,
    Switch,
    Fetch,
    AbortFetch,
    Custom,
    SetURLParameter,
    SetURLParameters,
    TriggerWorkflow,
    TriggerWorkflowCallback,
)


def is_action(value: object) -> bool:
    return isinstance(value, ACTION_TYPES)


def parse_action(data: Any) -> Action | None:
    """Build an action node from its persisted JSON shape."""
    if is_action(data):
        return data
    if not isinstance(data, Mapping):
        return None

    kind = data.get("type")
    name = str(data.get("name") or "")
    if kind == "SetVariable":
        return SetVariable(name, parse_formula(data.get("data")))
    if kind == "TriggerEvent":
        return TriggerEvent(name, parse_formula(data.get("data")))
    if kind == "Switch":
        cases = tuple(
            SwitchCase(parse_formula(case.get("condition")), parse_actions(case.get("actions")))
            for case in data.get("cases") or ()
            if isinstance(case, Mapping)
        )
        default = data.get("default")
        return Switch(
            cases,
            parse_actions(default.get("actions")) if isinstance(default, Mapping) else None,
            parse_formula(data.get("data")),
        )
    if kind == "Fetch":
        return Fetch(
            name,
            parse_named_formulas(data.get("inputs")),
            _callback_actions(data.get("onSuccess")),
            _callback_actions(data.get("onError")),
            _callback_actions(data.get("onMessage")),
        )
    if kind == "AbortFetch":
        return AbortFetch(name)
    if kind in (None, "Custom"):
        return Custom(
            name,
            package=data.get("package") or None,
            arguments=parse_named_formulas(data.get("arguments")),
            events=_event_map(data.get("events")),
        )
    if kind == "SetURLParameter":
        return SetURLParameter(name, parse_formula(data.get("data")), data.get("historyMode"))
    if kind == "SetURLParameters":
        return SetURLParameters(parse_named_formulas(data.get("parameters")), data.get("historyMode"))
    if kind == "TriggerWorkflow":
        return TriggerWorkflow(
            name,
            parse_named_formulas(data.get("parameters")),
            _event_map(data.get("callbacks")),
            context_provider=data.get("contextProvider") or data.get("componentName") or None,
            package=data.get("package") or None,
        )
    if kind == "TriggerWorkflowCallback":
        return TriggerWorkflowCallback(name, parse_formula(data.get("data")))
    return None


def parse_actions(data: Any) -> tuple[Action, ...]:
    """Parse an action list, dropping entries that are not actions."""
    actions = []
    for item in data or ():
        action = parse_action(item)
        if action is not None:
            actions.append(action)
    return tuple(actions)


def parse_named_formulas(data: Any) -> tuple[NamedFormula, ...]:
    """Accept either [{name, formula}] or {name: {formula}}."""
    if isinstance(data, Mapping):
        return tuple(
            NamedFormula(str(key), parse_formula(entry.get("formula") if isinstance(entry, Mapping) else None))
            for key, entry in data.items()
        )
    named = []
    for entry in data or ():
        if isinstance(entry, Mapping):
            named.append(NamedFormula(str(entry.get("name") or ""), parse_formula(entry.get("formula"))))
    return tuple(named)


def _callback_actions(data: Any) -> tuple[Action, ...]:
    if isinstance(data, Mapping):
        return parse_actions(data.get("actions"))
    return ()


def _event_map(data: Any) -> dict[str, tuple[Action, ...]]:
    if not isinstance(data, Mapping):
        return {}
    return {str(name): _callback_actions(body) for name, body in data.items()}
