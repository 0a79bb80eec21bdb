"""
Approval statistics (``approval_kernel.domain.statistics``).

Pure aggregation over a snapshot of workflows.  All durations are reported
in milliseconds; means over an empty population are ``0.0``.

Window membership is half-open, ``start <= t < end``:
    - workflow counts use ``created_at``
    - response times use each level's ``decided_at``
    - total durations use ``terminal_at``
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from statistics import fmean

from approval_kernel.domain.workflow import (
    ApprovalWorkflow,
    LevelStatus,
    WorkflowStatus,
)

_DECIDED_LEVEL_STATUSES = frozenset({LevelStatus.APPROVED, LevelStatus.REJECTED})


@dataclass(frozen=True)
class StatisticsWindow:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError("Statistics window end precedes its start")

    @classmethod
    def trailing(cls, now: datetime, days: int = 30) -> StatisticsWindow:
        """The ``days`` days up to and including ``now``."""
        return cls(start=now - timedelta(days=days), end=now + timedelta(microseconds=1))

    def contains(self, moment: datetime | None) -> bool:
        return moment is not None and self.start <= moment < self.end


@dataclass(frozen=True)
class AggregateStats:
    """Counts and duration metrics for one window."""

    window: StatisticsWindow
    total_workflows: int
    pending_workflows: int
    approved_workflows: int
    rejected_workflows: int
    expired_workflows: int
    cancelled_workflows: int
    escalated_count: int
    decision_count: int
    average_response_time_ms: float
    average_total_duration_ms: float


def compute_statistics(
    workflows: Iterable[ApprovalWorkflow],
    window: StatisticsWindow,
) -> AggregateStats:
    """Aggregate a workflow snapshot over ``window``."""
    workflows = list(workflows)
    created = [wf for wf in workflows if window.contains(wf.created_at)]

    def count(status: WorkflowStatus) -> int:
        return sum(1 for wf in created if wf.status is status)

    response_times = [
        _ms(level.decided_at - level.requested_at)
        for wf in workflows
        for level in wf.chain
        if level.status in _DECIDED_LEVEL_STATUSES
        and level.requested_at is not None
        and window.contains(level.decided_at)
    ]
    total_durations = [
        _ms(wf.terminal_at - wf.created_at)
        for wf in workflows
        if wf.is_terminal and window.contains(wf.terminal_at)
    ]

    return AggregateStats(
        window=window,
        total_workflows=len(created),
        pending_workflows=count(WorkflowStatus.PENDING),
        approved_workflows=count(WorkflowStatus.COMPLETED),
        rejected_workflows=count(WorkflowStatus.REJECTED),
        expired_workflows=count(WorkflowStatus.EXPIRED),
        cancelled_workflows=count(WorkflowStatus.CANCELLED),
        escalated_count=sum(1 for wf in created if wf.escalation_count > 0),
        decision_count=len(response_times),
        average_response_time_ms=fmean(response_times) if response_times else 0.0,
        average_total_duration_ms=fmean(total_durations) if total_durations else 0.0,
    )


def _ms(delta: timedelta) -> float:
    return delta / timedelta(milliseconds=1)
