"""Formula nodes — the expression language.

Formulas are persisted as JSON objects tagged by a "type" field. Here
each variant is a frozen dataclass; the Formula union is what the
evaluator and the traversal dispatch on.

parse_formula() turns the persisted shape into nodes. It is lenient:
missing optional fields become empty, unknown variants become None.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Union


@dataclass(frozen=True)
class FunctionArgument:
    """A (possibly named) argument slot holding a formula.

    is_function marks a higher-order argument: it is passed to the callee
    as a closure instead of being evaluated up front.
    """

    formula: Formula | None
    name: str | None = None
    is_function: bool = False


@dataclass(frozen=True)
class Value:
    value: Any = None


@dataclass(frozen=True)
class Path:
    path: tuple[str, ...] = ()


@dataclass(frozen=True)
class Function:
    name: str
    arguments: tuple[FunctionArgument, ...] = ()
    package: str | None = None


@dataclass(frozen=True)
class Apply:
    """Call a formula defined on the enclosing component."""

    name: str
    arguments: tuple[FunctionArgument, ...] = ()


@dataclass(frozen=True)
class Object:
    arguments: tuple[FunctionArgument, ...] = ()


@dataclass(frozen=True)
class Record:
    """Deprecated alias of Object."""

    arguments: tuple[FunctionArgument, ...] = ()


@dataclass(frozen=True)
class Array:
    arguments: tuple[FunctionArgument, ...] = ()


@dataclass(frozen=True)
class Or:
    arguments: tuple[FunctionArgument, ...] = ()


@dataclass(frozen=True)
class And:
    arguments: tuple[FunctionArgument, ...] = ()


@dataclass(frozen=True)
class SwitchCase:
    condition: Formula | None
    formula: Formula | None


@dataclass(frozen=True)
class Switch:
    cases: tuple[SwitchCase, ...] = ()
    default: Formula | None = field(default_factory=Value)


Formula = Union[Value, Path, Function, Apply, Object, Record, Array, Or, And, Switch]

FORMULA_TYPES = (Value, Path, Function, Apply, Object, Record, Array, Or, And, Switch)

# Persisted "type" tag for each variant.
TYPE_TAGS: dict[type, str] = {
    Value: "value",
    Path: "path",
    Function: "function",
    Apply: "apply",
    Object: "object",
    Record: "record",
    Array: "array",
    Or: "or",
    And: "and",
    Switch: "switch",
}


def type_tag(formula: Formula) -> str:
    return TYPE_TAGS.get(type(formula), "unknown")


def is_formula(value: object) -> bool:
    return isinstance(value, FORMULA_TYPES)


def parse_formula(data: Any) -> Formula | None:
    """Build a formula node from its persisted JSON shape."""
    if data is None:
        return None
    if is_formula(data):
        return data
    if not isinstance(data, Mapping):
        return None

    kind = data.get("type")
    if kind == "value":
        return Value(data.get("value"))
    if kind == "path":
        return Path(tuple(str(segment) for segment in data.get("path") or ()))
    if kind == "function":
        return Function(
            name=str(data.get("name", "")),
            arguments=parse_arguments(data.get("arguments")),
            package=data.get("package") or None,
        )
    if kind == "apply":
        return Apply(name=str(data.get("name", "")), arguments=parse_arguments(data.get("arguments")))
    if kind == "object":
        return Object(parse_arguments(data.get("arguments")))
    if kind == "record":
        return Record(parse_arguments(data.get("arguments")))
    if kind == "array":
        return Array(parse_arguments(data.get("arguments")))
    if kind == "or":
        return Or(parse_arguments(data.get("arguments")))
    if kind == "and":
        return And(parse_arguments(data.get("arguments")))
    if kind == "switch":
        cases = tuple(
            SwitchCase(parse_formula(case.get("condition")), parse_formula(case.get("formula")))
            for case in data.get("cases") or ()
            if isinstance(case, Mapping)
        )
        return Switch(cases, parse_formula(data.get("default")))
    return None


def parse_arguments(data: Any) -> tuple[FunctionArgument, ...]:
    arguments = []
    for arg in data or ():
        if not isinstance(arg, Mapping):
            continue
        arguments.append(
            FunctionArgument(
                formula=parse_formula(arg.get("formula")),
                name=arg.get("name") or None,
                is_function=bool(arg.get("isFunction", False)),
            )
        )
    return tuple(arguments)


def value(v: Any) -> Value:
    return Value(v)


def path(*segments: str) -> Path:
    return Path(tuple(segments))
