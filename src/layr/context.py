"""Evaluation and execution contexts.

Everything the interpreter needs is threaded through these objects:
the data root, the enclosing component, the package namespace, the
capability registry, the error sink and the per-instance caches. There
is no ambient runtime; each instance builds its own context.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Callable, Hashable, Mapping, Protocol

from layr.components import Component
from layr.cycles import FormulaCycleDetector, WorkflowCycleDetector
from layr.errors import ErrorCollector, ExecutionTrail
from layr.metrics import Metrics
from layr.registry import Registry
from layr.signal import Signal, is_signal

_MISS = object()


class MemoCache:
    """Last-result cache for memoized Apply formulas of one component instance.

    One entry per formula name: the last argument fingerprint and the
    result computed for it.
    """

    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: dict[str, tuple[str, Any]] = {}

    def lookup(self, name: str, fingerprint: str) -> Any:
        """Cached result, or MemoCache.MISS when the fingerprint differs."""
        entry = self._entries.get(name)
        if entry is not None and entry[0] == fingerprint:
            return entry[1]
        return _MISS

    def store(self, name: str, fingerprint: str, result: Any) -> None:
        self._entries[name] = (fingerprint, result)

    def clear(self, name: str | None = None) -> None:
        if name is None:
            self._entries.clear()
        else:
            self._entries.pop(name, None)

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    MISS = _MISS


@dataclass
class FormulaContext:
    data: Mapping[str, Any] = field(default_factory=dict)
    registry: Registry = field(default_factory=Registry)
    component: Component | None = None
    package: str | None = None
    errors: ErrorCollector = field(default_factory=ErrorCollector)
    formula_cache: MemoCache | None = None
    cycles: FormulaCycleDetector = field(default_factory=FormulaCycleDetector)
    trail: ExecutionTrail = field(default_factory=ExecutionTrail)
    metrics: Metrics | None = None
    log_errors: bool = False

    def with_data(self, **slots: Any) -> FormulaContext:
        """Copy of this context with extra data-root slots (Args, ListItem, ...)."""
        return dataclasses.replace(self, data={**self.data, **slots})

    def with_package(self, package: str | None) -> FormulaContext:
        return dataclasses.replace(self, package=package)


class FetchCallbacks:
    """Continuations handed to an API capability's fetch()."""

    __slots__ = ("on_success", "on_error", "on_message")

    def __init__(
        self,
        on_success: Callable[[Any], None],
        on_error: Callable[[Any], None],
        on_message: Callable[[Any], None],
    ) -> None:
        self.on_success = on_success
        self.on_error = on_error
        self.on_message = on_message


class ApiCapability(Protocol):
    """A named API of a component instance. cancel() is optional."""

    def fetch(self, inputs: dict[str, Any], callbacks: FetchCallbacks) -> Any: ...


@dataclass(frozen=True)
class CustomActionContext:
    """Second argument passed to user action handlers."""

    root: Any
    trigger_action_event: Callable[..., None]


@dataclass
class ActionContext:
    """Execution context of one component instance.

    signal is the instance's data container; all mutation goes through it.
    overlay holds extra data-root slots (e.g. Parameters inside a workflow)
    that are layered over the container's value when formulas run.
    """

    signal: Signal[dict]
    registry: Registry = field(default_factory=Registry)
    component: Component | None = None
    package: str | None = None
    apis: Mapping[str, ApiCapability] = field(default_factory=dict)
    providers: ContextScope | None = None
    trigger_event: Callable[[str, Any], None] | None = None
    set_url_parameters: Callable[[dict[str, Any], str | None], None] | None = None
    errors: ErrorCollector = field(default_factory=ErrorCollector)
    formula_cache: MemoCache | None = None
    workflows: WorkflowCycleDetector = field(default_factory=WorkflowCycleDetector)
    trail: ExecutionTrail = field(default_factory=ExecutionTrail)
    metrics: Metrics | None = None
    overlay: Mapping[str, Any] = field(default_factory=dict)
    root: Any = None
    log_errors: bool = False

    @property
    def owner_name(self) -> str:
        if self.component is None:
            return ""
        return build_provider_key(self.component.name, self.package)

    def formula_context(self, event: Any = None) -> FormulaContext:
        """A fresh formula context over the container's current value."""
        data = {**(self.signal.get() or {}), **self.overlay, "Event": event}
        return FormulaContext(
            data=data,
            registry=self.registry,
            component=self.component,
            package=self.package,
            errors=self.errors,
            formula_cache=self.formula_cache,
            trail=self.trail,
            metrics=self.metrics,
            log_errors=self.log_errors,
        )

    def with_overlay(self, **slots: Any) -> ActionContext:
        return dataclasses.replace(self, overlay={**self.overlay, **slots})


# ─── Context providers ───────────────────────────────────────────────────────


class ContextScope:
    """Registry of context providers, with an optional parent scope.

    Values are usually the ActionContext of a provider instance; signals
    are unwrapped on consume().
    """

    def __init__(self, parent: ContextScope | None = None) -> None:
        self._providers: dict[Hashable, Any] = {}
        self._parent = parent

    def provide(self, key: Hashable, value: Any) -> None:
        self._providers[key] = value

    def consume(self, key: Hashable, default: Any = None) -> Any:
        if key in self._providers:
            value = self._providers[key]
            return value.get() if is_signal(value) else value
        if self._parent is not None:
            return self._parent.consume(key, default)
        return default

    def consume_signal(self, key: Hashable) -> Signal | None:
        if key in self._providers:
            value = self._providers[key]
            return value if is_signal(value) else None
        if self._parent is not None:
            return self._parent.consume_signal(key)
        return None

    def has(self, key: Hashable) -> bool:
        return key in self._providers or (self._parent is not None and self._parent.has(key))

    def unprovide(self, key: Hashable) -> bool:
        return self._providers.pop(key, _MISS) is not _MISS

    def clear(self) -> None:
        self._providers.clear()


def build_provider_key(name: str, package: str | None = None) -> str:
    return f"{package}/{name}" if package else name


def exposed_formulas(component: Component | None) -> list[str]:
    if component is None:
        return []
    return [name for name, f in component.formulas.items() if f.expose_in_context]


def exposed_workflows(component: Component | None) -> list[str]:
    if component is None:
        return []
    return [name for name, w in component.workflows.items() if w.expose_in_context]


def is_context_provider(component: Component | None) -> bool:
    return bool(exposed_formulas(component) or exposed_workflows(component))
