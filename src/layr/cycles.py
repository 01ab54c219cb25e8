"""Cycle detection for formulas, workflows, components and packages.

Each detector is a stack of identity keys that are currently active.
enter() raises CycleDetected when a key is already active; exit() pops
it. Use guard() so the stack stays consistent across early returns and
exceptions:

    with guard(detector, "MyComponent/total"):
        ...

Detectors are per evaluation/instance. Never share one across
concurrently active instances.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, Mapping, Protocol, Iterable

from layr.errors import LayrError
from layr.limits import check_limit, get_limits


class CycleDetected(LayrError):
    """A key was entered while already active."""

    def __init__(self, domain: str, path: list[str], repeated: str) -> None:
        chain = " → ".join([*path, repeated]) if path else repeated
        super().__init__("cycle_detected", f"Circular {domain} reference detected: {chain}")
        self.domain = domain
        self.cycle_path = list(path)
        self.repeated = repeated


class Detector(Protocol):
    def enter(self, key: str) -> None: ...

    def exit(self, key: str) -> None: ...


@contextmanager
def guard(detector: Detector, key: str) -> Iterator[None]:
    """Scoped enter/exit. exit() runs even if the body raises."""
    detector.enter(key)
    try:
        yield
    finally:
        detector.exit(key)


class _StackDetector:
    """Active-key stack shared by the formula, component and package detectors."""

    domain = ""
    prefix = ""

    def __init__(self) -> None:
        self._active: set[str] = set()
        self._path: list[str] = []

    def enter(self, key: str) -> None:
        full_key = self.prefix + key
        if full_key in self._active:
            raise CycleDetected(self.domain, list(self._path), full_key)
        self._check_depth()
        self._active.add(full_key)
        self._path.append(full_key)

    def exit(self, key: str) -> None:
        full_key = self.prefix + key
        self._active.discard(full_key)
        try:
            index = len(self._path) - 1 - self._path[::-1].index(full_key)
        except ValueError:
            return
        del self._path[index:]

    def is_active(self, key: str) -> bool:
        return self.prefix + key in self._active

    def _check_depth(self) -> None:
        pass

    @property
    def depth(self) -> int:
        return len(self._active)

    @property
    def current_path(self) -> list[str]:
        return list(self._path)


class FormulaCycleDetector(_StackDetector):
    domain = "formula"
    prefix = "formula:"

    def _check_depth(self) -> None:
        check_limit("formula", "max_depth", len(self._active))


class ComponentCycleDetector(_StackDetector):
    domain = "component"

    def _check_depth(self) -> None:
        check_limit("component", "max_depth", len(self._active))


class WorkflowCycleDetector:
    """Counts active entries per workflow key.

    A workflow may be re-entered up to max_recursion times in total; one
    more entry is a cycle. The default ceiling (1) means a workflow that
    is already running cannot be entered again.
    """

    domain = "workflow"

    def __init__(self, max_recursion: int | None = None) -> None:
        if max_recursion is None:
            max_recursion = get_limits().action.max_workflow_recursion
        self.max_recursion = max_recursion
        self._active: dict[str, int] = {}
        self._path: list[str] = []

    def can_enter(self, key: str) -> bool:
        return self._active.get(key, 0) < self.max_recursion

    def enter(self, key: str) -> None:
        depth = self._active.get(key, 0)
        if depth >= self.max_recursion:
            raise CycleDetected(self.domain, list(self._path), key)
        self._active[key] = depth + 1
        self._path.append(key)

    def exit(self, key: str) -> None:
        depth = self._active.get(key, 0)
        if depth <= 1:
            self._active.pop(key, None)
        else:
            self._active[key] = depth - 1
        if key in self._path:
            del self._path[len(self._path) - 1 - self._path[::-1].index(key)]

    def depth_of(self, key: str) -> int:
        return self._active.get(key, 0)

    def has_active(self) -> bool:
        return bool(self._active)

    @property
    def current_path(self) -> list[str]:
        return list(self._path)


PackageGraph = Mapping[str, Iterable[str]]


class PackageCycleDetector(_StackDetector):
    """Package-dependency cycles: live enter/exit plus whole-graph analysis."""

    domain = "package"

    def _check_depth(self) -> None:
        check_limit("package", "max_depth", len(self._active))

    @staticmethod
    def detect_cycles(graph: PackageGraph) -> list[list[str]]:
        """Every cycle found by a depth-first scan, each closed by its start key."""
        cycles: list[list[str]] = []
        visited: set[str] = set()
        on_stack: set[str] = set()
        path: list[str] = []

        def visit(name: str) -> None:
            visited.add(name)
            on_stack.add(name)
            path.append(name)
            for dep in graph.get(name, ()):
                if dep not in visited:
                    visit(dep)
                elif dep in on_stack:
                    cycles.append(path[path.index(dep):] + [dep])
            path.pop()
            on_stack.discard(name)

        for name in graph:
            if name not in visited:
                visit(name)
        return cycles

    @classmethod
    def validate(cls, graph: PackageGraph) -> None:
        """Raise CycleDetected for the first cycle in the graph."""
        cycles = cls.detect_cycles(graph)
        if cycles:
            first = cycles[0]
            raise CycleDetected(cls.domain, first[:-1], first[-1])

    @classmethod
    def topological_sort(cls, graph: PackageGraph) -> list[str]:
        """Package names ordered dependencies first."""
        cls.validate(graph)
        ordered: list[str] = []
        seen: set[str] = set()

        def visit(name: str) -> None:
            if name in seen:
                return
            seen.add(name)
            for dep in graph.get(name, ()):
                visit(dep)
            ordered.append(name)

        for name in graph:
            visit(name)
        return ordered
