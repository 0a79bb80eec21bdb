"""
Pure domain layer.

This package contains the approval workflow value objects and the pure
functions that transform them, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time (a Clock is always injected)
- I/O

All domain objects are immutable and deterministic.
"""

from approval_kernel.domain.chain_policy import (
    BypassAuditRecord,
    ChainPlan,
    ChainPolicy,
    ChainStep,
    LevelDurationTable,
    RiskBucketRule,
)
from approval_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from approval_kernel.domain.escalation import EscalationPolicy
from approval_kernel.domain.settings import (
    EngineSettings,
    LateDecisionPolicy,
    TimeoutPolicy,
)
from approval_kernel.domain.statistics import (
    AggregateStats,
    StatisticsWindow,
    compute_statistics,
)
from approval_kernel.domain.workflow import (
    Actor,
    ApprovalLevel,
    ApprovalWorkflow,
    Decision,
    EscalationRecord,
    LevelStatus,
    RiskBucket,
    UrgencyLevel,
    WorkflowStatus,
    WorkflowSummary,
    summarize,
)

__all__ = [
    "Actor",
    "AggregateStats",
    "ApprovalLevel",
    "ApprovalWorkflow",
    "BypassAuditRecord",
    "ChainPlan",
    "ChainPolicy",
    "ChainStep",
    "Clock",
    "Decision",
    "DeterministicClock",
    "EngineSettings",
    "EscalationPolicy",
    "EscalationRecord",
    "LateDecisionPolicy",
    "LevelDurationTable",
    "LevelStatus",
    "RiskBucket",
    "RiskBucketRule",
    "StatisticsWindow",
    "SystemClock",
    "TimeoutPolicy",
    "UrgencyLevel",
    "WorkflowStatus",
    "WorkflowSummary",
    "compute_statistics",
    "summarize",
]
