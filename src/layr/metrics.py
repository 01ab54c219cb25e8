"""Timing metrics for formula evaluation and action execution.

A Metrics collector is attached to a context (never global). It keeps
per-(category, name) aggregates of durations in milliseconds, plus cache
hit counts for formulas and success/failure counts for actions.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Awaitable, Iterator, TypeVar

T = TypeVar("T")

CATEGORIES = ("render", "formula", "action", "api", "signal")

logger = logging.getLogger("layr.metrics")


@dataclass
class Metric:
    name: str
    category: str
    count: int = 0
    total_duration: float = 0.0
    max_duration: float = 0.0
    min_duration: float = 0.0
    last_timestamp: float = 0.0
    cache_hits: int = 0
    cache_misses: int = 0
    success_count: int = 0
    failure_count: int = 0

    @property
    def avg_duration(self) -> float:
        return self.total_duration / self.count if self.count else 0.0

    @property
    def cache_hit_rate(self) -> float:
        lookups = self.cache_hits + self.cache_misses
        return self.cache_hits / lookups if lookups else 0.0

    def to_dict(self) -> dict[str, Any]:
        data = dataclasses.asdict(self)
        data["avg_duration"] = self.avg_duration
        data["cache_hit_rate"] = self.cache_hit_rate
        return data


class Metrics:
    """Per-instance timing collector.

    Usage:
        metrics = Metrics()
        with metrics.time("total", "formula"):
            ...
        metrics.get("total", "formula").avg_duration
    """

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self._metrics: dict[tuple[str, str], Metric] = {}
        self._active: dict[str, tuple[str, str, float]] = {}
        self._started = time.time()

    # --- Recording ---

    def start(self, timing_id: str, name: str, category: str) -> None:
        if self.enabled:
            self._active[timing_id] = (name, category, time.perf_counter())

    def end(self, timing_id: str, success: bool | None = None) -> float | None:
        """Finish a timing started with start(). Returns the duration in ms."""
        if not self.enabled:
            return None
        entry = self._active.pop(timing_id, None)
        if entry is None:
            return None
        name, category, started = entry
        duration = (time.perf_counter() - started) * 1000
        self.record(name, category, duration, success=success)
        return duration

    def record(self, name: str, category: str, duration: float, success: bool | None = None) -> None:
        if not self.enabled:
            return
        metric = self._metric(name, category)
        if metric.count == 0:
            metric.min_duration = metric.max_duration = duration
        else:
            metric.min_duration = min(metric.min_duration, duration)
            metric.max_duration = max(metric.max_duration, duration)
        metric.count += 1
        metric.total_duration += duration
        metric.last_timestamp = time.time()
        if success is True:
            metric.success_count += 1
        elif success is False:
            metric.failure_count += 1

    def record_cache(self, name: str, hit: bool) -> None:
        if not self.enabled:
            return
        metric = self._metric(name, "formula")
        if hit:
            metric.cache_hits += 1
        else:
            metric.cache_misses += 1

    @contextmanager
    def time(self, name: str, category: str, budget: float = 0) -> Iterator[None]:
        """Time the body. A non-zero budget (ms) logs a warning when exceeded."""
        started = time.perf_counter()
        try:
            yield
        finally:
            duration = (time.perf_counter() - started) * 1000
            self.record(name, category, duration)
            if budget and duration > budget:
                logger.warning("%s %s took %.1f ms (budget %s ms)", category, name, duration, budget)

    async def time_async(self, name: str, category: str, awaitable: Awaitable[T]) -> T:
        with self.time(name, category):
            return await awaitable

    # --- Reading ---

    def get(self, name: str, category: str) -> Metric | None:
        return self._metrics.get((category, name))

    def category(self, category: str) -> dict[str, Metric]:
        return {name: m for (cat, name), m in self._metrics.items() if cat == category}

    def top_by_duration(self, category: str | None = None, limit: int = 10) -> list[Metric]:
        return sorted(self._select(category), key=lambda m: m.total_duration, reverse=True)[:limit]

    def top_by_count(self, category: str | None = None, limit: int = 10) -> list[Metric]:
        return sorted(self._select(category), key=lambda m: m.count, reverse=True)[:limit]

    def summary(self) -> dict[str, Any]:
        now = time.time()
        data: dict[str, Any] = {cat: self.category(cat) for cat in CATEGORIES}
        data["timestamp"] = now
        data["uptime"] = now - self._started
        return data

    def export(self) -> dict[str, Any]:
        """summary() with metrics flattened to plain dicts."""
        summary = self.summary()
        for cat in CATEGORIES:
            summary[cat] = {name: m.to_dict() for name, m in summary[cat].items()}
        return summary

    def clear(self) -> None:
        self._metrics.clear()
        self._active.clear()

    def _metric(self, name: str, category: str) -> Metric:
        key = (category, name)
        metric = self._metrics.get(key)
        if metric is None:
            metric = self._metrics[key] = Metric(name, category)
        return metric

    def _select(self, category: str | None) -> list[Metric]:
        return [m for m in self._metrics.values() if category is None or m.category == category]

    def __repr__(self) -> str:
        return f"Metrics({len(self._metrics)} entries)"
