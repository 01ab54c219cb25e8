"""Tests for timing metrics."""

import asyncio
import logging
import time

import pytest

from layr import MemoCache, Metrics, evaluate, execute, set_limits
from layr import actions as act
from layr import formulas as fx


def slow(args, ctx):
    time.sleep(0.005)
    return args.get("value")


class TestRecording:
    def test_aggregates(self):
        metrics = Metrics()
        for duration in (4.0, 1.0, 7.0):
            metrics.record("total", "formula", duration)
        metric = metrics.get("total", "formula")
        assert metric.count == 3
        assert metric.min_duration == 1.0
        assert metric.max_duration == 7.0
        assert metric.avg_duration == 4.0
        assert metric.last_timestamp > 0

    def test_categories_are_separate(self):
        metrics = Metrics()
        metrics.record("load", "api", 1.0)
        metrics.record("load", "action", 2.0)
        assert list(metrics.category("api")) == ["load"]
        assert metrics.get("load", "action").total_duration == 2.0
        assert metrics.get("missing", "api") is None

    def test_success_and_failure(self):
        metrics = Metrics()
        metrics.record("Custom", "action", 1.0, success=True)
        metrics.record("Custom", "action", 1.0, success=False)
        metrics.record("Custom", "action", 1.0)
        metric = metrics.get("Custom", "action")
        assert (metric.success_count, metric.failure_count, metric.count) == (1, 1, 3)

    def test_cache_hit_rate(self):
        metrics = Metrics()
        metrics.record_cache("total", hit=False)
        metrics.record_cache("total", hit=True)
        metrics.record_cache("total", hit=True)
        metric = metrics.get("total", "formula")
        assert metric.cache_hits == 2
        assert metric.cache_hit_rate == 2 / 3

    def test_start_and_end(self):
        metrics = Metrics()
        metrics.start("t1", "render", "render")
        duration = metrics.end("t1", success=True)
        assert duration is not None and duration >= 0
        assert metrics.get("render", "render").success_count == 1
        assert metrics.end("t1") is None

    def test_disabled(self):
        metrics = Metrics(enabled=False)
        metrics.record("x", "formula", 1.0)
        metrics.start("t", "x", "formula")
        assert metrics.end("t") is None
        with metrics.time("x", "formula"):
            pass
        assert metrics.summary()["formula"] == {}

    def test_time_records_even_when_body_raises(self):
        metrics = Metrics()
        with pytest.raises(RuntimeError):
            with metrics.time("boom", "action"):
                raise RuntimeError("boom")
        assert metrics.get("boom", "action").count == 1

    def test_time_async(self):
        metrics = Metrics()

        async def fetch():
            return "done"

        assert asyncio.run(metrics.time_async("load", "api", fetch())) == "done"
        assert metrics.get("load", "api").count == 1


class TestBudget:
    def test_over_budget_logs_warning(self, caplog):
        metrics = Metrics()
        with caplog.at_level(logging.WARNING, logger="layr.metrics"):
            with metrics.time("slow", "formula", budget=1):
                time.sleep(0.005)
        assert "formula slow took" in caplog.text
        assert "budget 1 ms" in caplog.text

    def test_zero_budget_never_warns(self, caplog):
        metrics = Metrics()
        with caplog.at_level(logging.WARNING, logger="layr.metrics"):
            with metrics.time("slow", "formula"):
                time.sleep(0.002)
        assert caplog.records == []


class TestReports:
    def test_summary_and_export(self):
        metrics = Metrics()
        metrics.record("a", "formula", 2.0)
        summary = metrics.summary()
        assert set(summary) >= {"render", "formula", "action", "api", "signal", "timestamp", "uptime"}
        assert summary["formula"]["a"].count == 1
        exported = metrics.export()
        assert exported["formula"]["a"]["avg_duration"] == 2.0
        assert exported["formula"]["a"]["cache_hit_rate"] == 0.0

    def test_top_lists(self):
        metrics = Metrics()
        metrics.record("a", "formula", 10.0)
        metrics.record("b", "formula", 1.0)
        metrics.record("b", "formula", 1.0)
        metrics.record("c", "action", 50.0)
        assert [m.name for m in metrics.top_by_duration("formula")] == ["a", "b"]
        assert [m.name for m in metrics.top_by_count("formula", limit=1)] == ["b"]
        assert metrics.top_by_duration(limit=1)[0].name == "c"

    def test_clear(self):
        metrics = Metrics()
        metrics.record("a", "formula", 1.0)
        metrics.start("t", "a", "formula")
        metrics.clear()
        assert metrics.get("a", "formula") is None
        assert metrics.end("t") is None


PAGE = {
    "name": "Page",
    "formulas": {
        "total": {
            "memoize": True,
            "formula": {
                "type": "function",
                "name": "tick",
                "arguments": [{"name": "value", "formula": {"type": "path", "path": ["Args", "n"]}}],
            },
        },
    },
}


class TestEvaluateMetrics:
    def test_entry_point_is_timed(self, formula_ctx, registry):
        registry.register_formula("tick", lambda args, ctx: 1)
        metrics = Metrics()
        ctx = formula_ctx(metrics=metrics)
        evaluate(fx.Function("tick"), ctx)
        evaluate(fx.value(1), ctx)
        assert metrics.get("tick", "formula").count == 1
        assert metrics.get("value", "formula").count == 1

    def test_nested_evaluations_are_not_timed(self, formula_ctx, registry):
        registry.register_formula("tick", lambda args, ctx: 1)
        metrics = Metrics()
        evaluate(fx.Array((fx.FunctionArgument(fx.Function("tick")),)), formula_ctx(metrics=metrics))
        assert list(metrics.category("formula")) == ["array"]

    def test_memo_cache_lookups(self, formula_ctx, registry):
        registry.register_formula("tick", lambda args, ctx: args.get("value"))
        metrics = Metrics()
        ctx = formula_ctx(component=PAGE, formula_cache=MemoCache(), metrics=metrics)
        apply = fx.Apply("total", (fx.FunctionArgument(fx.value(3), "n"),))
        evaluate(apply, ctx)
        evaluate(apply, ctx)
        metric = metrics.get("total", "formula")
        assert (metric.cache_hits, metric.cache_misses) == (1, 1)

    def test_evaluation_budget(self, formula_ctx, registry, caplog):
        set_limits(formula={"max_evaluation_time": 1})
        registry.register_formula("slow", slow)
        with caplog.at_level(logging.WARNING, logger="layr.metrics"):
            evaluate(fx.Function("slow"), formula_ctx(metrics=Metrics()))
        assert "formula slow took" in caplog.text


class TestExecuteMetrics:
    def test_actions_are_timed(self, action_ctx, registry):
        def boom(args, actx, event):
            raise RuntimeError("boom")

        registry.register_action("boom", boom)
        metrics = Metrics()
        ctx = action_ctx(metrics=metrics)
        execute([act.SetVariable("a", fx.value(1)), act.Custom("boom")], ctx)
        assert metrics.get("execute", "action").count == 1
        assert metrics.get("SetVariable", "action").success_count == 1
        assert metrics.get("Custom", "action").failure_count == 1

    def test_nested_actions_are_timed_individually(self, action_ctx):
        metrics = Metrics()
        ctx = action_ctx(metrics=metrics)
        execute(act.Switch(default=(act.SetVariable("a", fx.value(1)),)), ctx)
        assert metrics.get("execute", "action").count == 1
        assert metrics.get("Switch", "action").count == 1
        assert metrics.get("SetVariable", "action").count == 1

    def test_formulas_share_the_collector(self, action_ctx):
        metrics = Metrics()
        execute(act.SetVariable("a", fx.value(1)), action_ctx(metrics=metrics))
        assert metrics.get("value", "formula").count == 1

    def test_execution_budget(self, action_ctx, registry, caplog):
        set_limits(action={"max_execution_time": 1})
        registry.register_action("slow", lambda args, actx, event: time.sleep(0.005))
        with caplog.at_level(logging.WARNING, logger="layr.metrics"):
            execute(act.Custom("slow"), action_ctx(metrics=Metrics()))
        assert "action execute took" in caplog.text
