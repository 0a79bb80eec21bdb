"""
Approval workflow domain types (``approval_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the approval engine: the workflow aggregate, its
ordered chain of levels, escalation history, and the summary projection
handed to the presentation layer.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``store/`` or ``services/``.

Invariants enforced
-------------------
* Chain ordering: ``level_number == index + 1`` and the chain is
  non-empty (checked in ``ApprovalWorkflow.__post_init__``).
* Single pending level: while the workflow is pending, exactly the level
  at ``current_level_index`` is pending, every earlier level is approved
  and every later level is not reached.  Transitions preserve this; the
  aggregate only verifies the structural parts.
* Completion percentage is derived from level statuses on every read and
  never stored.
* Terminal statuses have no outgoing edges (``WORKFLOW_TRANSITIONS``).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from uuid import UUID


# =========================================================================
# Status lifecycles
# =========================================================================


class WorkflowStatus(str, Enum):
    """Approval workflow lifecycle states."""

    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


WORKFLOW_TRANSITIONS: dict[WorkflowStatus, frozenset[WorkflowStatus]] = {
    WorkflowStatus.PENDING: frozenset({
        WorkflowStatus.COMPLETED,
        WorkflowStatus.REJECTED,
        WorkflowStatus.EXPIRED,
        WorkflowStatus.CANCELLED,
    }),
    WorkflowStatus.COMPLETED: frozenset(),
    WorkflowStatus.REJECTED: frozenset(),
    WorkflowStatus.EXPIRED: frozenset(),
    WorkflowStatus.CANCELLED: frozenset(),
}

TERMINAL_WORKFLOW_STATUSES: frozenset[WorkflowStatus] = frozenset({
    WorkflowStatus.COMPLETED,
    WorkflowStatus.REJECTED,
    WorkflowStatus.EXPIRED,
    WorkflowStatus.CANCELLED,
})


class LevelStatus(str, Enum):
    """Status of a single level in the approval chain."""

    NOT_REACHED = "not_reached"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class UrgencyLevel(str, Enum):
    """Coarse prioritisation class derived from the risk bucket."""

    NORMAL = "normal"
    URGENT = "urgent"
    CRITICAL = "critical"


class RiskBucket(str, Enum):
    """Risk score bucket, in ascending order of severity."""

    MINIMAL = "minimal"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


RISK_BUCKET_ORDER: tuple[RiskBucket, ...] = (
    RiskBucket.MINIMAL,
    RiskBucket.LOW,
    RiskBucket.MEDIUM,
    RiskBucket.HIGH,
    RiskBucket.CRITICAL,
)


class Decision(str, Enum):
    """Decision an approver can record on the current level."""

    APPROVE = "approve"
    REJECT = "reject"


# =========================================================================
# Actors and records
# =========================================================================


@dataclass(frozen=True)
class Actor:
    """Identity plus the role the actor is acting in."""

    actor_id: UUID
    role: str


@dataclass(frozen=True)
class ApprovalLevel:
    """One stage in the chain.  Immutable; transitions build new copies."""

    level_number: int
    required_role: str
    duration: timedelta
    status: LevelStatus = LevelStatus.NOT_REACHED
    assigned_to: UUID | None = None
    requested_at: datetime | None = None
    deadline_at: datetime | None = None
    decided_at: datetime | None = None
    decided_by: UUID | None = None
    notes: str | None = None

    @property
    def is_decided(self) -> bool:
        return self.decided_at is not None

    def is_overdue(self, now: datetime) -> bool:
        """True once ``now`` has reached the deadline of a pending level."""
        return (
            self.status is LevelStatus.PENDING
            and self.deadline_at is not None
            and now >= self.deadline_at
        )


@dataclass(frozen=True)
class EscalationRecord:
    """Audit record of one manual or automatic escalation."""

    level_number: int
    from_role: str
    to_role: str
    reason: str
    escalated_at: datetime
    escalated_by: UUID | None = None
    automatic: bool = False


# =========================================================================
# Aggregate root
# =========================================================================


@dataclass(frozen=True)
class ApprovalWorkflow:
    """Immutable snapshot of an approval workflow.

    ``version`` is owned by the store: it starts at 1 and is incremented on
    every successful update.  Pure transitions never touch it.
    """

    workflow_id: UUID
    subject_id: str
    category: str
    initiated_by: UUID
    chain: tuple[ApprovalLevel, ...]
    urgency_level: UrgencyLevel
    risk_bucket: RiskBucket
    created_at: datetime
    last_updated_at: datetime
    risk_score: float = 0
    financial_impact: Decimal = Decimal("0")
    current_level_index: int = 0
    status: WorkflowStatus = WorkflowStatus.PENDING
    version: int = 1
    escalation_count: int = 0
    escalations: tuple[EscalationRecord, ...] = ()
    terminal_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.chain:
            raise ValueError("Approval chain must contain at least one level")
        for index, level in enumerate(self.chain):
            if level.level_number != index + 1:
                raise ValueError(
                    f"Level at position {index} has level_number "
                    f"{level.level_number}, expected {index + 1}"
                )
        if not 0 <= self.current_level_index < len(self.chain):
            raise ValueError(
                f"current_level_index {self.current_level_index} outside "
                f"chain of length {len(self.chain)}"
            )

    @property
    def current_level(self) -> ApprovalLevel:
        return self.chain[self.current_level_index]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_WORKFLOW_STATUSES

    @property
    def approved_level_count(self) -> int:
        return sum(1 for level in self.chain if level.status is LevelStatus.APPROVED)

    @property
    def completion_percentage(self) -> int:
        """round(100 * approved / len(chain)), halves rounded up."""
        ratio = Decimal(100 * self.approved_level_count) / Decimal(len(self.chain))
        return int(ratio.quantize(Decimal(1), rounding=ROUND_HALF_UP))

    def with_level(self, index: int, level: ApprovalLevel) -> ApprovalWorkflow:
        """Return a copy with the level at ``index`` replaced."""
        chain = list(self.chain)
        chain[index] = level
        return replace(self, chain=tuple(chain))


# =========================================================================
# Presentation projection
# =========================================================================


@dataclass(frozen=True)
class WorkflowSummary:
    """Read model handed to the presentation layer."""

    workflow_id: UUID
    subject_id: str
    category: str
    status: WorkflowStatus
    urgency_level: UrgencyLevel
    current_level_index: int
    current_level_number: int
    required_role: str
    deadline_at: datetime | None
    time_remaining_ms: int
    completion_percentage: int
    escalation_count: int
    chain_length: int
    version: int

    @property
    def escalation_level(self) -> int:
        """Number of rungs climbed so far (0 for a never-escalated workflow)."""
        return self.escalation_count


def time_remaining_ms(workflow: ApprovalWorkflow, now: datetime) -> int:
    """max(0, deadline - now) in whole milliseconds; 0 once terminal."""
    deadline = workflow.current_level.deadline_at
    if workflow.is_terminal or deadline is None:
        return 0
    remaining = max(timedelta(0), deadline - now)
    return remaining // timedelta(milliseconds=1)


def summarize(workflow: ApprovalWorkflow, now: datetime) -> WorkflowSummary:
    """Project a workflow into a ``WorkflowSummary`` as of ``now``."""
    level = workflow.current_level
    return WorkflowSummary(
        workflow_id=workflow.workflow_id,
        subject_id=workflow.subject_id,
        category=workflow.category,
        status=workflow.status,
        urgency_level=workflow.urgency_level,
        current_level_index=workflow.current_level_index,
        current_level_number=level.level_number,
        required_role=level.required_role,
        deadline_at=level.deadline_at,
        time_remaining_ms=time_remaining_ms(workflow, now),
        completion_percentage=workflow.completion_percentage,
        escalation_count=workflow.escalation_count,
        chain_length=len(workflow.chain),
        version=workflow.version,
    )
