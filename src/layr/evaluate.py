"""Formula evaluation.

evaluate(formula, ctx) never raises. Every failure is recorded to the
context's error sink and turned into None, so one bad node can never take
down the surrounding evaluation.

Recursion is bounded twice: a depth counter checked against
formula.max_depth before any work, and a cycle detector that rejects an
Apply/definition call re-entered with identical arguments.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Callable, Mapping

from layr.context import FormulaContext, MemoCache
from layr.cycles import guard
from layr.errors import FormulaError, LayrError
from layr.formulas import (
    And,
    Apply,
    Array,
    Formula,
    Function,
    FunctionArgument,
    Object,
    Or,
    Path,
    Record,
    Switch,
    Value,
    is_formula,
    parse_formula,
    type_tag,
)
from layr.limits import LimitExceeded, check_limit, get_limits
from layr.registry import FormulaDefinition

logger = logging.getLogger("layr.evaluate")

# Segments that are never resolved, whatever the data holds.
RESERVED_SEGMENTS = frozenset({"__proto__", "constructor", "prototype"})


class FormulaClosure:
    """A higher-order argument: a formula plus the context it was written in.

    Calling it evaluates the formula with "Args" bound to the given mapping.
    """

    __slots__ = ("formula", "ctx", "depth")

    def __init__(self, formula: Formula | None, ctx: FormulaContext, depth: int) -> None:
        self.formula = formula
        self.ctx = ctx
        self.depth = depth

    def invoke(self, args: Mapping[str, Any] | None = None) -> Any:
        return evaluate(self.formula, self.ctx.with_data(Args=dict(args or {})), self.depth + 1)

    __call__ = invoke

    def __repr__(self) -> str:
        tag = type_tag(self.formula) if self.formula is not None else "none"
        return f"<FormulaClosure {tag} at {id(self):#x}>"


def evaluate(formula: Formula | Mapping | None, ctx: FormulaContext, depth: int = 0) -> Any:
    """Evaluate a formula against ctx. Returns None on any failure."""
    if formula is not None and not is_formula(formula):
        formula = parse_formula(formula)
    if formula is None:
        return None
    if depth == 0 and ctx.metrics is not None:
        name = getattr(formula, "name", None) or type_tag(formula)
        with ctx.metrics.time(name, "formula", get_limits().formula.max_evaluation_time):
            return _evaluate(formula, ctx, depth)
    return _evaluate(formula, ctx, depth)


def _evaluate(formula: Formula | None, ctx: FormulaContext, depth: int) -> Any:
    if formula is None:
        return None
    try:
        check_limit("formula", "max_depth", depth)
    except LimitExceeded as exc:
        _record(ctx, exc)
        return None

    try:
        return _EVALUATORS[type(formula)](formula, ctx, depth)
    except LayrError as exc:
        _record(ctx, exc)
    except Exception as exc:
        _record(
            ctx,
            FormulaError(
                getattr(formula, "name", type_tag(formula)),
                type_tag(formula),
                f"Formula evaluation error: {exc}",
                path=ctx.trail.path,
                component=ctx.component.name if ctx.component else None,
                cause=exc,
            ),
        )
    return None


def to_boolean(value: Any) -> bool:
    """Formula truthiness: None, False, 0, NaN and empty containers are falsy."""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return not (isinstance(value, float) and math.isnan(value)) and value != 0
    if isinstance(value, (str, bytes, list, tuple, Mapping, set, frozenset)):
        return len(value) > 0
    return True


def argument_fingerprint(args: Mapping[str, Any]) -> str | None:
    """Serialized form of an argument mapping, or None if it can't be serialized."""
    try:
        return json.dumps(args, sort_keys=True, default=repr, separators=(",", ":"))
    except (TypeError, ValueError):
        return None


# ─── Variants ────────────────────────────────────────────────────────────────


def _value(formula: Value, ctx: FormulaContext, depth: int) -> Any:
    return formula.value


def _path(formula: Path, ctx: FormulaContext, depth: int) -> Any:
    current: Any = ctx.data
    for segment in formula.path:
        segment = str(segment)
        if current is None:
            return None
        if segment in RESERVED_SEGMENTS or (segment.startswith("__") and segment.endswith("__")):
            return None
        if isinstance(current, (list, tuple)):
            if not (segment.isascii() and segment.isdigit()):
                return None
            index = int(segment)
            if index >= len(current):
                return None
            current = current[index]
        elif isinstance(current, Mapping):
            if segment not in current:
                return None
            current = current[segment]
        else:
            return None
    return current


def _function(formula: Function, ctx: FormulaContext, depth: int) -> Any:
    package = formula.package or ctx.package
    resolved = ctx.registry.resolve_formula(formula.name, package)
    if resolved is None:
        qualified = f"{package}/{formula.name}" if package else formula.name
        logger.warning("Formula not found: %s", qualified)
        _record(ctx, FormulaError(formula.name, "function", f"Formula not found: {qualified}"))
        return None

    tier, entry, found_in = resolved
    if tier == "legacy":
        positional = [_argument(arg, ctx, depth) for arg in formula.arguments]
        return entry(positional, ctx)

    args = _named_arguments(formula.arguments, ctx, depth)
    if isinstance(entry, FormulaDefinition):
        body_ctx = ctx.with_data(Args=args).with_package(found_in or package)
        key = f"{found_in or ''}/{entry.name}"
        return _guarded(entry.formula, body_ctx, depth, key, argument_fingerprint(args))
    return entry(args, ctx)


def _apply(formula: Apply, ctx: FormulaContext, depth: int) -> Any:
    component = ctx.component
    definition = component.formulas.get(formula.name) if component is not None else None
    if definition is None:
        logger.warning("Component formula not found: %s", formula.name)
        _record(ctx, FormulaError(formula.name, "apply", f"Component formula not found: {formula.name}"))
        return None

    args = _named_arguments(formula.arguments, ctx, depth)
    fingerprint = argument_fingerprint(args)
    body_ctx = ctx.with_data(Args=args)
    key = f"{component.name}/{formula.name}"

    cache = ctx.formula_cache
    if not (definition.memoize and cache is not None and fingerprint is not None):
        return _guarded(definition.formula, body_ctx, depth, key, fingerprint)

    cached = cache.lookup(formula.name, fingerprint)
    if ctx.metrics is not None:
        ctx.metrics.record_cache(formula.name, cached is not MemoCache.MISS)
    if cached is not MemoCache.MISS:
        return cached
    errors_before = ctx.errors.total
    result = _guarded(definition.formula, body_ctx, depth, key, fingerprint)
    if ctx.errors.total == errors_before:
        cache.store(formula.name, fingerprint, result)
    return result


def _object(formula: Object | Record, ctx: FormulaContext, depth: int) -> dict[str, Any]:
    return {
        arg.name: _evaluate(arg.formula, ctx, depth + 1)
        for arg in formula.arguments
        if arg.name
    }


def _array(formula: Array, ctx: FormulaContext, depth: int) -> list[Any]:
    return [_evaluate(arg.formula, ctx, depth + 1) for arg in formula.arguments]


def _or(formula: Or, ctx: FormulaContext, depth: int) -> bool:
    for arg in formula.arguments:
        if to_boolean(_evaluate(arg.formula, ctx, depth + 1)):
            return True
    return False


def _and(formula: And, ctx: FormulaContext, depth: int) -> bool:
    for arg in formula.arguments:
        if not to_boolean(_evaluate(arg.formula, ctx, depth + 1)):
            return False
    return True


def _switch(formula: Switch, ctx: FormulaContext, depth: int) -> Any:
    for case in formula.cases:
        if to_boolean(_evaluate(case.condition, ctx, depth + 1)):
            return _evaluate(case.formula, ctx, depth + 1)
    return _evaluate(formula.default, ctx, depth + 1)


_EVALUATORS: dict[type, Callable[[Any, FormulaContext, int], Any]] = {
    Value: _value,
    Path: _path,
    Function: _function,
    Apply: _apply,
    Object: _object,
    Record: _object,
    Array: _array,
    Or: _or,
    And: _and,
    Switch: _switch,
}


# ─── Helpers ─────────────────────────────────────────────────────────────────


def _argument(arg: FunctionArgument, ctx: FormulaContext, depth: int) -> Any:
    if arg.is_function:
        return FormulaClosure(arg.formula, ctx, depth)
    return _evaluate(arg.formula, ctx, depth + 1)


def _named_arguments(arguments: tuple[FunctionArgument, ...], ctx: FormulaContext, depth: int) -> dict[str, Any]:
    return {arg.name: _argument(arg, ctx, depth) for arg in arguments if arg.name}


def _guarded(body: Formula | None, ctx: FormulaContext, depth: int, key: str, fingerprint: str | None) -> Any:
    """Evaluate a definition body, rejecting re-entry with identical arguments."""
    with ctx.trail.step("formula", key):
        if fingerprint is None:
            return _evaluate(body, ctx, depth + 1)
        with guard(ctx.cycles, f"{key}#{fingerprint}"):
            return _evaluate(body, ctx, depth + 1)


def _record(ctx: FormulaContext, error: LayrError) -> None:
    ctx.errors.add(ctx.trail.attribute(error))
    if ctx.log_errors:
        logger.error("%s", error)
