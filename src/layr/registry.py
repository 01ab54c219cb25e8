"""Capability registry — explicit lookup of formulas and actions by name.

Two tiers, consulted in order:

1. versioned: (package, name) -> handler. A formula entry is either a
   callable handler(args: dict, ctx) or a FormulaDefinition whose body is
   evaluated with "Args" bound to the argument mapping. An action entry is
   handler(args: dict, action_ctx, event).
2. legacy: name -> handler. Legacy formulas receive a positional list.

Each evaluation root gets its own Registry; nothing here is global.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Union

from layr.formulas import Formula, parse_formula

ROOT = ""

FormulaHandler = Callable[[dict, Any], Any]
LegacyFormulaHandler = Callable[[list, Any], Any]
ActionHandler = Callable[[dict, Any, Any], Any]


@dataclass(frozen=True)
class FormulaDefinition:
    """A formula written in the formula language itself."""

    name: str
    formula: Formula | None
    arguments: tuple[str, ...] = ()


FormulaEntry = Union[FormulaHandler, FormulaDefinition]


class Registry:
    """Per-package formulas and actions with a legacy single-name fallback."""

    def __init__(self) -> None:
        self._formulas: dict[str, dict[str, FormulaEntry]] = {}
        self._actions: dict[str, dict[str, ActionHandler]] = {}
        self._legacy_formulas: dict[str, LegacyFormulaHandler] = {}
        self._legacy_actions: dict[str, ActionHandler] = {}

    # --- Registration ---

    def register_formula(self, name: str, entry: FormulaEntry | dict, package: str | None = None) -> None:
        if isinstance(entry, dict):
            entry = FormulaDefinition(
                name=entry.get("name") or name,
                formula=parse_formula(entry.get("formula")),
                arguments=tuple(a["name"] for a in entry.get("arguments") or () if a.get("name")),
            )
        self._formulas.setdefault(package or ROOT, {})[name] = entry

    def register_action(self, name: str, handler: ActionHandler, package: str | None = None) -> None:
        self._actions.setdefault(package or ROOT, {})[name] = handler

    def register_legacy_formula(self, name: str, handler: LegacyFormulaHandler) -> None:
        self._legacy_formulas[name] = handler

    def register_legacy_action(self, name: str, handler: ActionHandler) -> None:
        self._legacy_actions[name] = handler

    # --- Lookup ---

    def get_formula(self, name: str, package: str | None = None) -> FormulaEntry | None:
        return _lookup(self._formulas, name, package)[1]

    def get_action(self, name: str, package: str | None = None) -> ActionHandler | None:
        return _lookup(self._actions, name, package)[1]

    def get_legacy_formula(self, name: str) -> LegacyFormulaHandler | None:
        return self._legacy_formulas.get(name)

    def get_legacy_action(self, name: str) -> ActionHandler | None:
        return self._legacy_actions.get(name)

    def resolve_formula(self, name: str, package: str | None = None) -> tuple[str, Any, str | None] | None:
        """Walk the fallback chain.

        Returns (tier, entry, package) where package is the namespace the
        entry was found in, or None when nothing matches.
        """
        found_in, entry = _lookup(self._formulas, name, package)
        if entry is not None:
            return "versioned", entry, found_in
        legacy = self.get_legacy_formula(name)
        if legacy is not None:
            return "legacy", legacy, package
        return None

    def resolve_action(self, name: str, package: str | None = None) -> ActionHandler | None:
        return self.get_action(name, package) or self.get_legacy_action(name)

    @property
    def packages(self) -> list[str]:
        names = [*self._formulas, *(p for p in self._actions if p not in self._formulas)]
        return [p for p in names if p != ROOT]


def _lookup(table: dict[str, dict[str, Any]], name: str, package: str | None) -> tuple[str | None, Any]:
    if package:
        return package, table.get(package, {}).get(name)
    # Unqualified: root namespace first, then packages in registration order.
    found = table.get(ROOT, {}).get(name)
    if found is not None:
        return None, found
    for pkg, entries in table.items():
        if pkg != ROOT and name in entries:
            return pkg, entries[name]
    return None, None
