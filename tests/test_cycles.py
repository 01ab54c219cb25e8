"""Tests for cycle detectors."""

import pytest

from layr import (
    ComponentCycleDetector,
    CycleDetected,
    FormulaCycleDetector,
    LimitExceeded,
    PackageCycleDetector,
    WorkflowCycleDetector,
    guard,
    set_limits,
)


class TestStackDetectors:
    def test_reentry_raises_with_path(self):
        detector = FormulaCycleDetector()
        detector.enter("a")
        detector.enter("b")
        with pytest.raises(CycleDetected) as info:
            detector.enter("a")
        assert info.value.cycle_path == ["formula:a", "formula:b"]
        assert info.value.repeated == "formula:a"
        assert "formula:a → formula:b → formula:a" in str(info.value)

    def test_exit_allows_reentry(self):
        detector = FormulaCycleDetector()
        detector.enter("a")
        detector.exit("a")
        detector.enter("a")
        assert detector.is_active("a")
        assert detector.depth == 1

    def test_guard_releases_on_exception(self):
        detector = ComponentCycleDetector()
        with pytest.raises(ValueError):
            with guard(detector, "Card"):
                assert detector.current_path == ["Card"]
                raise ValueError
        assert detector.depth == 0
        assert detector.current_path == []

    def test_depth_ceiling(self):
        set_limits(component={"max_depth": 2})
        detector = ComponentCycleDetector()
        detector.enter("a")
        detector.enter("b")
        detector.enter("c")
        with pytest.raises(LimitExceeded):
            detector.enter("d")


class TestWorkflowDetector:
    def test_default_rejects_reentry(self):
        detector = WorkflowCycleDetector()
        detector.enter("Page:save")
        assert not detector.can_enter("Page:save")
        with pytest.raises(CycleDetected):
            detector.enter("Page:save")

    def test_configurable_recursion(self):
        detector = WorkflowCycleDetector(max_recursion=2)
        detector.enter("w")
        detector.enter("w")
        assert detector.depth_of("w") == 2
        with pytest.raises(CycleDetected):
            detector.enter("w")
        detector.exit("w")
        assert detector.depth_of("w") == 1
        detector.exit("w")
        assert not detector.has_active()

    def test_ceiling_read_from_limits(self):
        set_limits(action={"max_workflow_recursion": 3})
        assert WorkflowCycleDetector().max_recursion == 3


class TestPackageGraph:
    def test_detect_cycles(self):
        graph = {"a": ["b"], "b": ["c"], "c": ["a"], "d": []}
        assert PackageCycleDetector.detect_cycles(graph) == [["a", "b", "c", "a"]]

    def test_acyclic_graph(self):
        assert PackageCycleDetector.detect_cycles({"a": ["b"], "b": []}) == []

    def test_validate_raises(self):
        with pytest.raises(CycleDetected) as info:
            PackageCycleDetector.validate({"x": ["x"]})
        assert info.value.domain == "package"

    def test_topological_sort_dependencies_first(self):
        order = PackageCycleDetector.topological_sort({"app": ["ui", "core"], "ui": ["core"], "core": []})
        assert order.index("core") < order.index("ui") < order.index("app")
