"""Safety limits — overridable ceilings that keep runaway trees in check.

Ceilings are grouped by subsystem. The active table is read through
get_limits() so it can be overridden (set_limits, override_limits) and
restored (reset_limits). Only the depth ceilings are enforced inside the
interpreter; the rest are exposed for callers to enforce.
"""

from __future__ import annotations

import dataclasses
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator

from layr.errors import LayrError


@dataclass(frozen=True)
class ComponentLimits:
    max_depth: int = 50
    max_nodes: int = 10000
    max_attributes: int = 100
    max_variables: int = 100
    max_formulas: int = 200
    max_apis: int = 50
    max_workflows: int = 50


@dataclass(frozen=True)
class FormulaLimits:
    max_depth: int = 256
    max_evaluation_time: int = 1000  # ms, 0 = no limit
    max_arguments: int = 50
    max_path_length: int = 50
    max_switch_cases: int = 10
    max_logical_args: int = 50


@dataclass(frozen=True)
class ActionLimits:
    max_depth: int = 100
    max_execution_time: int = 5000  # ms, 0 = no limit
    max_actions_per_list: int = 100
    max_switch_cases: int = 20
    max_callback_actions: int = 20
    max_workflow_recursion: int = 1


@dataclass(frozen=True)
class PackageLimits:
    max_depth: int = 10
    max_packages: int = 100
    max_package_components: int = 1000


@dataclass(frozen=True)
class ErrorLimits:
    max_errors: int = 100
    max_message_length: int = 10000
    max_stack_depth: int = 50


@dataclass(frozen=True)
class RenderLimits:
    max_render_time: int = 100  # ms
    max_updates_per_frame: int = 1000
    max_subscribers: int = 10000


@dataclass(frozen=True)
class Limits:
    component: ComponentLimits = field(default_factory=ComponentLimits)
    formula: FormulaLimits = field(default_factory=FormulaLimits)
    action: ActionLimits = field(default_factory=ActionLimits)
    package: PackageLimits = field(default_factory=PackageLimits)
    error: ErrorLimits = field(default_factory=ErrorLimits)
    render: RenderLimits = field(default_factory=RenderLimits)


DEFAULT_LIMITS = Limits()

_runtime_limits: Limits = DEFAULT_LIMITS


class LimitExceeded(LayrError):
    """A value went past its configured ceiling."""

    def __init__(self, category: str, name: str, value: float, ceiling: float) -> None:
        super().__init__("limit_exceeded", f"{category}.{name} exceeded: {value} > {ceiling}")
        self.category = category
        self.name = name
        self.value = value
        self.ceiling = ceiling


def get_limits() -> Limits:
    """The active limits table."""
    return _runtime_limits


def set_limits(**overrides: dict[str, Any]) -> None:
    """Override ceilings per category, merging with the active table.

    Usage:
        set_limits(formula={"max_depth": 32}, action={"max_depth": 10})
    """
    global _runtime_limits
    _runtime_limits = _merged(_runtime_limits, overrides)


def reset_limits() -> None:
    """Restore the default table."""
    global _runtime_limits
    _runtime_limits = DEFAULT_LIMITS


@contextmanager
def override_limits(**overrides: dict[str, Any]) -> Iterator[Limits]:
    """Context manager: apply overrides, restore the previous table on exit."""
    global _runtime_limits
    previous = _runtime_limits
    _runtime_limits = _merged(previous, overrides)
    try:
        yield _runtime_limits
    finally:
        _runtime_limits = previous


def ceiling_of(category: str, name: str) -> float | None:
    group = getattr(_runtime_limits, category, None)
    if group is None:
        return None
    return getattr(group, name, None)


def check_limit(category: str, name: str, value: float) -> None:
    """Raise LimitExceeded if value is above the ceiling. Unknown names pass."""
    ceiling = ceiling_of(category, name)
    if ceiling is not None and value > ceiling:
        raise LimitExceeded(category, name, value, ceiling)


def is_within_limit(category: str, name: str, value: float) -> bool:
    ceiling = ceiling_of(category, name)
    return ceiling is None or value <= ceiling


def _merged(base: Limits, overrides: dict[str, dict[str, Any]]) -> Limits:
    changes = {}
    for category, values in overrides.items():
        group = getattr(base, category, None)
        if group is None:
            raise KeyError(f"Unknown limits category: {category}")
        changes[category] = dataclasses.replace(group, **values)
    return dataclasses.replace(base, **changes)
