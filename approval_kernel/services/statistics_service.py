"""Statistics Aggregator: point-in-time metrics over the Workflow Store."""

from __future__ import annotations

from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.statistics import (
    AggregateStats,
    StatisticsWindow,
    compute_statistics,
)
from approval_kernel.logging_config import get_logger
from approval_kernel.store.base import WorkflowStore

logger = get_logger("services.statistics")

DEFAULT_WINDOW_DAYS = 30


class StatisticsAggregator:
    """Read-only; never mutates workflows."""

    def __init__(self, store: WorkflowStore, clock: Clock | None = None) -> None:
        self._store = store
        self._clock = clock or SystemClock()

    def get_statistics(self, window: StatisticsWindow | None = None) -> AggregateStats:
        """Aggregate over ``window`` (default: trailing 30 days)."""
        if window is None:
            window = StatisticsWindow.trailing(self._clock.now(), DEFAULT_WINDOW_DAYS)
        stats = compute_statistics(self._store.snapshot(), window)
        logger.debug(
            "statistics_computed",
            extra={
                "window_start": window.start,
                "window_end": window.end,
                "total_workflows": stats.total_workflows,
            },
        )
        return stats
