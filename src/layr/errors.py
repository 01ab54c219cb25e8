"""Error types and the error sink.

Evaluation and execution never raise outward. Failures are converted to
LayrError instances and pushed to an ErrorCollector, which callers
inspect after the fact.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator


@dataclass(frozen=True)
class ExecutionStep:
    """One frame of the path that led to an error."""

    kind: str  # component | formula | action | api | node
    name: str
    package: str | None = None
    context: dict[str, Any] | None = None
    timestamp: float = field(default_factory=time.time)

    def __str__(self) -> str:
        prefix = f"{self.package}/" if self.package else ""
        return f"{self.kind}:{prefix}{self.name}"


class LayrError(Exception):
    """Base error with attribution."""

    def __init__(
        self,
        kind: str,
        message: str,
        *,
        path: list[ExecutionStep] | None = None,
        component: str | None = None,
        suggested_fix: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.path = list(path or [])
        self.component = component
        self.suggested_fix = suggested_fix
        self.cause = cause
        self.timestamp = time.time()

    @property
    def path_string(self) -> str:
        return " → ".join(str(step) for step in self.path)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": type(self).__name__,
            "kind": self.kind,
            "message": self.message,
            "path": [str(step) for step in self.path],
            "path_string": self.path_string,
            "timestamp": self.timestamp,
            "component": self.component,
            "suggested_fix": self.suggested_fix,
            "cause": str(self.cause) if self.cause is not None else None,
        }


class FormulaError(LayrError):
    """A formula failed to evaluate."""

    def __init__(
        self,
        formula_name: str,
        formula_type: str,
        message: str,
        *,
        path: list[ExecutionStep] | None = None,
        component: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(
            "formula_evaluation",
            message,
            path=path,
            component=component,
            cause=cause,
            suggested_fix=_formula_fix(formula_type, message),
        )
        self.formula_name = formula_name
        self.formula_type = formula_type


class ActionError(LayrError):
    """An action failed to execute."""

    def __init__(
        self,
        action_type: str,
        index: int,
        message: str,
        *,
        path: list[ExecutionStep] | None = None,
        component: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__("action_execution", message, path=path, component=component, cause=cause)
        self.action_type = action_type
        self.index = index


class ExecutionTrail:
    """The stack of steps currently being evaluated or executed.

    Errors recorded while steps are active are stamped with a copy of the
    trail, e.g. action:TriggerWorkflow → workflow:Cart:add → action:SetVariable.
    """

    __slots__ = ("_steps",)

    def __init__(self) -> None:
        self._steps: list[ExecutionStep] = []

    def push(self, kind: str, name: str, package: str | None = None, context: dict[str, Any] | None = None) -> None:
        self._steps.append(ExecutionStep(kind, name, package, context))

    def pop(self) -> ExecutionStep | None:
        return self._steps.pop() if self._steps else None

    @contextmanager
    def step(self, kind: str, name: str, package: str | None = None) -> Iterator[None]:
        self.push(kind, name, package)
        try:
            yield
        finally:
            self.pop()

    @property
    def path(self) -> list[ExecutionStep]:
        return list(self._steps)

    @property
    def depth(self) -> int:
        return len(self._steps)

    def create_error(self, kind: str, message: str, **kwargs: Any) -> LayrError:
        return LayrError(kind, message, path=self.path, **kwargs)

    def attribute(self, error: BaseException, kind: str = "unknown") -> LayrError:
        """Stamp a LayrError without a path, or wrap any other exception."""
        if isinstance(error, LayrError):
            if not error.path:
                error.path = self.path
            return error
        return LayrError(kind, str(error), path=self.path, cause=error)


def _formula_fix(formula_type: str, message: str) -> str | None:
    if "None" in message or "null" in message:
        return "Check that the data path exists and has a value."
    if formula_type == "path":
        return "Verify the path segments against the component data."
    if formula_type == "function":
        return "Check the arguments and that the formula is registered."
    return None


class ErrorCollector:
    """Bounded error sink.

    Once max_errors entries are held, further errors are dropped and
    add() returns False.
    """

    def __init__(self, max_errors: int | None = None) -> None:
        if max_errors is None:
            from layr.limits import get_limits

            max_errors = get_limits().error.max_errors
        self._max_errors = max_errors
        self._errors: list[LayrError] = []
        self.dropped = 0

    def add(self, error: LayrError) -> bool:
        if len(self._errors) >= self._max_errors:
            self.dropped += 1
            return False
        self._errors.append(error)
        return True

    @property
    def errors(self) -> list[LayrError]:
        return list(self._errors)

    @property
    def total(self) -> int:
        """Errors seen so far, kept or dropped."""
        return len(self._errors) + self.dropped

    def has_errors(self) -> bool:
        return bool(self._errors)

    def clear(self) -> None:
        self._errors.clear()
        self.dropped = 0

    def of_kind(self, kind: str) -> list[LayrError]:
        return [e for e in self._errors if e.kind == kind]

    def __iter__(self) -> Iterator[LayrError]:
        return iter(list(self._errors))

    def __len__(self) -> int:
        return len(self._errors)

    def __repr__(self) -> str:
        return f"ErrorCollector({len(self._errors)} errors, {self.dropped} dropped)"
