# FinReco - Reconciliation & Fiscal Analytics engine for SMBs
# Copyright (c) 2025 Maxence Bernard (maxencebernardhub)
# Licensed under the MIT License. See LICENSE file for details.

"""
Computation metrics for FinReco.

``ComputationMetrics`` collects the duration of engine operations
(matching, forecasting, tax computations, ...). It is an ordinary object:
the caller creates it, passes it to the operations it wants to observe via
their ``metrics=`` argument, reads it, and resets it explicitly. No module
level instance exists, so two callers never see each other's figures.

Example
-------
    metrics = ComputationMetrics()
    matches = match_transactions(transactions, metrics=metrics)
    forecast = forecast_cash_flow(transactions, metrics=metrics)
    print(metrics.summary())
    metrics.reset()
"""

import logging
import math
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Duration thresholds in milliseconds, from fastest to slowest.
PERFORMANCE_THRESHOLDS: dict[str, float] = {
    "fast": 50.0,
    "normal": 100.0,
    "slow": 200.0,
    "very_slow": 500.0,
    "critical": 1000.0,
}


def severity_for(duration_ms: float) -> str:
    """Map a duration to its severity bucket."""
    for label, limit in PERFORMANCE_THRESHOLDS.items():
        if duration_ms < limit:
            return label
    return "extreme"


@dataclass(frozen=True)
class OperationMetric:
    """A single recorded operation."""

    operation: str
    duration_ms: float
    items: int
    severity: str
    timestamp: str


@dataclass
class OperationStats:
    """Running aggregate for one operation name."""

    count: int = 0
    total_ms: float = 0.0
    min_ms: float = math.inf
    max_ms: float = 0.0
    slow_count: int = 0

    @property
    def avg_ms(self) -> float:
        return self.total_ms / self.count if self.count else 0.0


def _percentile(values: list[float], p: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    index = math.ceil(len(ordered) * p) - 1
    return ordered[max(0, index)]


class ComputationMetrics:
    """
    Caller-owned store of operation timings.

    Args:
        max_records: Number of recent records kept (oldest dropped first).
        max_slow_records: Number of slow records kept.
    """

    def __init__(self, max_records: int = 1000, max_slow_records: int = 100):
        self.max_records = max_records
        self.max_slow_records = max_slow_records
        self._records: list[OperationMetric] = []
        self._slow: list[OperationMetric] = []
        self._stats: dict[str, OperationStats] = {}

    def record(self, operation: str, duration_ms: float, items: int = 0) -> OperationMetric:
        """Record one execution of ``operation``."""
        metric = OperationMetric(
            operation=operation,
            duration_ms=float(duration_ms),
            items=int(items),
            severity=severity_for(duration_ms),
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

        self._records.append(metric)
        if len(self._records) > self.max_records:
            self._records.pop(0)

        is_slow = duration_ms > PERFORMANCE_THRESHOLDS["normal"]
        if is_slow:
            self._slow.append(metric)
            if len(self._slow) > self.max_slow_records:
                self._slow.pop(0)

        stats = self._stats.setdefault(operation, OperationStats())
        stats.count += 1
        stats.total_ms += duration_ms
        stats.min_ms = min(stats.min_ms, duration_ms)
        stats.max_ms = max(stats.max_ms, duration_ms)
        if is_slow:
            stats.slow_count += 1

        if duration_ms > PERFORMANCE_THRESHOLDS["slow"]:
            logger.warning(
                "Slow computation: %s took %.1f ms (%d items)",
                operation,
                duration_ms,
                items,
            )

        return metric

    @contextmanager
    def measure(self, operation: str, items: int = 0) -> Iterator[None]:
        """Context manager recording the wall time of the enclosed block."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record(operation, (time.perf_counter() - start) * 1000.0, items)

    def recent(self, limit: int = 100) -> list[OperationMetric]:
        return self._records[-limit:]

    def slow_operations(self, limit: int = 50) -> list[OperationMetric]:
        return self._slow[-limit:]

    def operation_stats(self) -> list[dict[str, Any]]:
        """Per-operation statistics, slowest average first."""
        rows = [
            {
                "operation": name,
                "count": s.count,
                "total_ms": s.total_ms,
                "min_ms": s.min_ms,
                "max_ms": s.max_ms,
                "avg_ms": s.avg_ms,
                "slow_count": s.slow_count,
            }
            for name, s in self._stats.items()
        ]
        return sorted(rows, key=lambda r: r["avg_ms"], reverse=True)

    def summary(self) -> dict[str, Any]:
        """Aggregate figures over the retained records."""
        total = len(self._records)
        if total == 0:
            return {
                "total_operations": 0,
                "avg_duration_ms": 0.0,
                "slow_operations": 0,
                "fast_operations": 0,
                "normal_operations": 0,
                "critical_operations": 0,
            }

        durations = [m.duration_ms for m in self._records]
        by_severity: dict[str, int] = {}
        for m in self._records:
            by_severity[m.severity] = by_severity.get(m.severity, 0) + 1

        return {
            "total_operations": total,
            "avg_duration_ms": sum(durations) / total,
            "min_duration_ms": min(durations),
            "max_duration_ms": max(durations),
            "p50_duration_ms": _percentile(durations, 0.5),
            "p95_duration_ms": _percentile(durations, 0.95),
            "p99_duration_ms": _percentile(durations, 0.99),
            "fast_operations": by_severity.get("fast", 0),
            "normal_operations": by_severity.get("normal", 0),
            "slow_operations": by_severity.get("slow", 0),
            "very_slow_operations": by_severity.get("very_slow", 0),
            "critical_operations": by_severity.get("critical", 0)
            + by_severity.get("extreme", 0),
        }

    def export(self) -> dict[str, Any]:
        return {
            "summary": self.summary(),
            "recent": [asdict(m) for m in self.recent(100)],
            "slow": [asdict(m) for m in self.slow_operations(50)],
            "operations": self.operation_stats(),
        }

    def reset(self) -> None:
        """Drop every recorded figure."""
        self._records.clear()
        self._slow.clear()
        self._stats.clear()


@contextmanager
def measured(
    metrics: Optional[ComputationMetrics], operation: str, items: int = 0
) -> Iterator[None]:
    """Measure a block when a metrics context is supplied, no-op otherwise."""
    if metrics is None:
        yield
        return
    with metrics.measure(operation, items):
        yield
