"""Layr: interpreter core for declarative component trees."""

from importlib.metadata import version as _version

__version__ = _version("layr-core")

from layr.signal import Signal, create_signal, is_signal
from layr.limits import (
    Limits,
    LimitExceeded,
    get_limits,
    set_limits,
    reset_limits,
    override_limits,
    check_limit,
    is_within_limit,
)
from layr.cycles import (
    CycleDetected,
    FormulaCycleDetector,
    ComponentCycleDetector,
    WorkflowCycleDetector,
    PackageCycleDetector,
    guard,
)
from layr.errors import LayrError, FormulaError, ActionError, ErrorCollector, ExecutionStep, ExecutionTrail
from layr.metrics import Metric, Metrics
from layr.formulas import parse_formula
from layr.actions import parse_action, parse_actions
from layr.components import Component, parse_component
from layr.registry import Registry, FormulaDefinition
from layr.context import ActionContext, FormulaContext, ContextScope, MemoCache, build_provider_key
from layr.evaluate import evaluate, to_boolean
from layr.execute import execute
from layr.traversal import (
    FormulaVisit,
    ActionVisit,
    formulas_in_formula,
    formulas_in_action,
    formulas_in_component,
    actions_in_component,
    collect_action_references,
    collect_formula_references,
    collect_sub_component_names,
)
# Formula/action node classes live in layr.formulas and layr.actions

__all__ = [
    "Signal",
    "create_signal",
    "is_signal",
    "Limits",
    "LimitExceeded",
    "get_limits",
    "set_limits",
    "reset_limits",
    "override_limits",
    "check_limit",
    "is_within_limit",
    "CycleDetected",
    "FormulaCycleDetector",
    "ComponentCycleDetector",
    "WorkflowCycleDetector",
    "PackageCycleDetector",
    "guard",
    "LayrError",
    "FormulaError",
    "ActionError",
    "ErrorCollector",
    "ExecutionStep",
    "ExecutionTrail",
    "Metric",
    "Metrics",
    "parse_formula",
    "parse_action",
    "parse_actions",
    "Component",
    "parse_component",
    "Registry",
    "FormulaDefinition",
    "ActionContext",
    "FormulaContext",
    "ContextScope",
    "MemoCache",
    "build_provider_key",
    "evaluate",
    "to_boolean",
    "execute",
    "FormulaVisit",
    "ActionVisit",
    "formulas_in_formula",
    "formulas_in_action",
    "formulas_in_component",
    "actions_in_component",
    "collect_action_references",
    "collect_formula_references",
    "collect_sub_component_names",
]
