"""Deployment-level switches for the approval engine."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum


class TimeoutPolicy(str, Enum):
    """What the timeout sweep does with an overdue level."""

    EXPIRE = "expire"
    ESCALATE = "escalate"


class LateDecisionPolicy(str, Enum):
    """Whether a decision after the deadline but before the sweep counts."""

    REJECT = "reject"
    HONOR = "honor"


@dataclass(frozen=True)
class EngineSettings:
    """Tunables shared by the processor, scheduler and service facade."""

    min_notes_length: int = 5
    late_decision_policy: LateDecisionPolicy = LateDecisionPolicy.REJECT
    default_timeout_policy: TimeoutPolicy = TimeoutPolicy.EXPIRE
    timeout_policies: Mapping[str, TimeoutPolicy] = field(default_factory=dict)
    max_conflict_retries: int = 3
    sweep_interval_seconds: int = 30

    def __post_init__(self) -> None:
        if self.min_notes_length < 0:
            raise ValueError("min_notes_length must be >= 0")
        if self.max_conflict_retries < 1:
            raise ValueError("max_conflict_retries must be >= 1")
        if self.sweep_interval_seconds <= 0:
            raise ValueError("sweep_interval_seconds must be > 0")

    def timeout_policy_for(self, category: str) -> TimeoutPolicy:
        return self.timeout_policies.get(category, self.default_timeout_policy)
