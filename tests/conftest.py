"""
Shared pytest fixtures for layr tests.
"""

import pytest

from layr import Registry, Signal, reset_limits
from layr.context import ActionContext, FormulaContext
from layr.components import parse_component


@pytest.fixture(autouse=True)
def default_limits():
    """Every test starts (and ends) with the default limits table."""
    reset_limits()
    yield
    reset_limits()


@pytest.fixture
def registry():
    return Registry()


@pytest.fixture
def formula_ctx(registry):
    """Formula context over a small data root."""

    def build(data=None, component=None, **kwargs):
        if isinstance(component, dict):
            component = parse_component(component)
        return FormulaContext(data=data or {}, registry=registry, component=component, **kwargs)

    return build


@pytest.fixture
def action_ctx(registry):
    """Action context over a fresh container."""

    def build(data=None, component=None, **kwargs):
        if isinstance(component, dict):
            component = parse_component(component)
        signal = Signal({"Variables": {}, **(data or {})})
        return ActionContext(signal=signal, registry=registry, component=component, **kwargs)

    return build
