"""Stateful services wrapping the pure domain layer."""

from approval_kernel.services.approval_service import ApprovalService
from approval_kernel.services.decision_processor import DecisionProcessor
from approval_kernel.services.statistics_service import StatisticsAggregator
from approval_kernel.services.timeout_scheduler import SweepResult, TimeoutScheduler

__all__ = [
    "ApprovalService",
    "DecisionProcessor",
    "StatisticsAggregator",
    "SweepResult",
    "TimeoutScheduler",
]
