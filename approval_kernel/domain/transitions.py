"""
Workflow transitions (``approval_kernel.domain.transitions``).

Responsibility
--------------
Every state change an approval workflow can undergo, expressed as a pure
function ``(workflow, input, now) -> workflow'``.  The store applies these
inside its optimistic ``update`` so that at most one writer wins per
version.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.  No clock access; ``now`` is always
passed in.  ``version`` is never touched here (the store owns it).

Invariants enforced
-------------------
* Terminal workflows are immutable: every transition starts with
  ``_require_pending``.
* Single pending level: approve moves the pending marker exactly one
  level forward; reject, expire and cancel end the workflow and leave
  later levels at ``not_reached``.
* Escalation reassigns the current level in place; chain length and
  level order never change.

Failure modes
-------------
- WorkflowNotPendingError, AlreadyDecidedError, DeadlinePassedError,
  LevelNotOverdueError, CancellationNotAllowedError  (WorkflowStateError)
- RoleMismatchError, NotAssignedApproverError  (AuthorizationError)
- NoFurtherEscalationError
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from approval_kernel.domain.chain_policy import ChainPlan
from approval_kernel.domain.escalation import EscalationPolicy
from approval_kernel.domain.settings import LateDecisionPolicy
from approval_kernel.domain.workflow import (
    WORKFLOW_TRANSITIONS,
    Actor,
    ApprovalLevel,
    ApprovalWorkflow,
    EscalationRecord,
    LevelStatus,
    WorkflowStatus,
)
from approval_kernel.exceptions import (
    AlreadyDecidedError,
    CancellationNotAllowedError,
    DeadlinePassedError,
    LevelNotOverdueError,
    NoFurtherEscalationError,
    NotAssignedApproverError,
    RoleMismatchError,
    WorkflowNotPendingError,
)

AUTOMATIC_ESCALATION_REASON = "deadline passed without a decision"


# =========================================================================
# Creation
# =========================================================================


def start_workflow(
    plan: ChainPlan,
    *,
    workflow_id: UUID,
    subject_id: str,
    category: str,
    initiated_by: UUID,
    now: datetime,
    risk_score: float = 0,
    financial_impact: Decimal = Decimal("0"),
) -> ApprovalWorkflow:
    """Materialise a chain plan into a pending workflow at level 1."""
    chain = tuple(
        ApprovalLevel(
            level_number=position,
            required_role=step.role,
            duration=step.duration,
        )
        for position, step in enumerate(plan.steps, start=1)
    )
    first = replace(
        chain[0],
        status=LevelStatus.PENDING,
        requested_at=now,
        deadline_at=now + chain[0].duration,
    )
    return ApprovalWorkflow(
        workflow_id=workflow_id,
        subject_id=subject_id,
        category=category,
        initiated_by=initiated_by,
        chain=(first,) + chain[1:],
        urgency_level=plan.urgency,
        risk_bucket=plan.bucket,
        created_at=now,
        last_updated_at=now,
        risk_score=risk_score,
        financial_impact=financial_impact,
    )


# =========================================================================
# Decisions
# =========================================================================


def approve(
    workflow: ApprovalWorkflow,
    actor: Actor,
    notes: str,
    now: datetime,
    *,
    late_policy: LateDecisionPolicy = LateDecisionPolicy.REJECT,
    level_number: int | None = None,
) -> ApprovalWorkflow:
    """Approve the current level; complete the workflow on the last level."""
    index = _decidable_index(workflow, actor, now, late_policy, level_number)
    level = workflow.chain[index]
    decided = replace(
        level,
        status=LevelStatus.APPROVED,
        decided_at=now,
        decided_by=actor.actor_id,
        notes=notes,
    )
    updated = workflow.with_level(index, decided)

    if index == len(workflow.chain) - 1:
        return _finish(updated, WorkflowStatus.COMPLETED, now)

    upcoming = updated.chain[index + 1]
    activated = replace(
        upcoming,
        status=LevelStatus.PENDING,
        requested_at=now,
        deadline_at=now + upcoming.duration,
    )
    return replace(
        updated.with_level(index + 1, activated),
        current_level_index=index + 1,
        last_updated_at=now,
    )


def reject(
    workflow: ApprovalWorkflow,
    actor: Actor,
    notes: str,
    now: datetime,
    *,
    late_policy: LateDecisionPolicy = LateDecisionPolicy.REJECT,
    level_number: int | None = None,
) -> ApprovalWorkflow:
    """Reject the current level.  Short-circuits the rest of the chain."""
    index = _decidable_index(workflow, actor, now, late_policy, level_number)
    decided = replace(
        workflow.chain[index],
        status=LevelStatus.REJECTED,
        decided_at=now,
        decided_by=actor.actor_id,
        notes=notes,
    )
    return _finish(workflow.with_level(index, decided), WorkflowStatus.REJECTED, now)


def cancel(workflow: ApprovalWorkflow, actor: Actor, now: datetime) -> ApprovalWorkflow:
    """Withdraw the request.  Initiator only, before any level is decided."""
    _require_pending(workflow)
    workflow_id = str(workflow.workflow_id)
    if actor.actor_id != workflow.initiated_by:
        raise CancellationNotAllowedError(workflow_id, "only the initiator may cancel")

    first = workflow.chain[0]
    if (
        workflow.current_level_index != 0
        or first.status is not LevelStatus.PENDING
        or first.is_decided
    ):
        raise CancellationNotAllowedError(workflow_id, "approval is already in progress")

    withdrawn = replace(first, status=LevelStatus.NOT_REACHED)
    return _finish(workflow.with_level(0, withdrawn), WorkflowStatus.CANCELLED, now)


# =========================================================================
# Escalation and timeout
# =========================================================================


def escalate(
    workflow: ApprovalWorkflow,
    actor: Actor | None,
    reason: str,
    now: datetime,
    policy: EscalationPolicy,
    *,
    automatic: bool = False,
    level_number: int | None = None,
) -> ApprovalWorkflow:
    """Re-route the current level one rung up the category's ladder.

    No decision is recorded.  The level's deadline restarts from ``now``.
    Manual escalation (``automatic=False``) requires an actor whose role is
    at or above the current level's rung.  ``level_number`` pins the level
    being escalated; once the workflow has moved past it the call fails
    with AlreadyDecidedError.
    """
    _require_pending(workflow)
    index = workflow.current_level_index
    level = workflow.chain[index]
    workflow_id = str(workflow.workflow_id)
    _require_current_level(workflow, level_number)

    if not automatic:
        if actor is None:
            raise ValueError("Manual escalation requires an actor")
        if not policy.can_escalate(workflow.category, actor.role, level.required_role):
            raise RoleMismatchError(workflow_id, level.required_role, actor.role)

    next_role = policy.next_role(workflow.category, level.required_role)
    if next_role is None:
        raise NoFurtherEscalationError(workflow_id, workflow.category, level.required_role)

    rerouted = replace(
        level,
        required_role=next_role,
        assigned_to=None,
        requested_at=now,
        deadline_at=now + level.duration,
    )
    record = EscalationRecord(
        level_number=level.level_number,
        from_role=level.required_role,
        to_role=next_role,
        reason=reason,
        escalated_at=now,
        escalated_by=actor.actor_id if actor is not None else None,
        automatic=automatic,
    )
    return replace(
        workflow.with_level(index, rerouted),
        escalation_count=workflow.escalation_count + 1,
        escalations=workflow.escalations + (record,),
        last_updated_at=now,
    )


def expire_overdue(workflow: ApprovalWorkflow, now: datetime) -> ApprovalWorkflow:
    """Expire the workflow because its current level passed the deadline."""
    level = _require_overdue(workflow, now)
    expired = replace(level, status=LevelStatus.EXPIRED)
    return _finish(
        workflow.with_level(workflow.current_level_index, expired),
        WorkflowStatus.EXPIRED,
        now,
    )


def auto_escalate_overdue(
    workflow: ApprovalWorkflow,
    now: datetime,
    policy: EscalationPolicy,
) -> ApprovalWorkflow:
    """Escalate an overdue level; expire it once the ladder is exhausted."""
    level = _require_overdue(workflow, now)
    if policy.next_role(workflow.category, level.required_role) is None:
        return expire_overdue(workflow, now)
    return escalate(
        workflow, None, AUTOMATIC_ESCALATION_REASON, now, policy, automatic=True,
    )


# =========================================================================
# Guards
# =========================================================================


def _require_pending(workflow: ApprovalWorkflow) -> None:
    if workflow.status is not WorkflowStatus.PENDING:
        raise WorkflowNotPendingError(str(workflow.workflow_id), workflow.status.value)


def _require_overdue(workflow: ApprovalWorkflow, now: datetime) -> ApprovalLevel:
    _require_pending(workflow)
    level = workflow.current_level
    if not level.is_overdue(now):
        raise LevelNotOverdueError(
            str(workflow.workflow_id), level.level_number, str(level.deadline_at),
        )
    return level


def _require_current_level(workflow: ApprovalWorkflow, level_number: int | None) -> None:
    """Fail with AlreadyDecidedError when a pinned level is no longer current."""
    if level_number is None or level_number == workflow.current_level.level_number:
        return
    if not 1 <= level_number <= len(workflow.chain):
        raise ValueError(f"Workflow has no level {level_number}")
    addressed = workflow.chain[level_number - 1]
    raise AlreadyDecidedError(
        str(workflow.workflow_id), level_number, addressed.status.value,
    )


def _decidable_index(
    workflow: ApprovalWorkflow,
    actor: Actor,
    now: datetime,
    late_policy: LateDecisionPolicy,
    level_number: int | None,
) -> int:
    """Check every approve/reject precondition; return the current index."""
    _require_pending(workflow)
    workflow_id = str(workflow.workflow_id)
    index = workflow.current_level_index
    level = workflow.chain[index]

    _require_current_level(workflow, level_number)
    if level.status is not LevelStatus.PENDING:
        raise AlreadyDecidedError(workflow_id, level.level_number, level.status.value)

    if actor.role != level.required_role:
        raise RoleMismatchError(workflow_id, level.required_role, actor.role)
    if level.assigned_to is not None and actor.actor_id != level.assigned_to:
        raise NotAssignedApproverError(
            workflow_id, str(level.assigned_to), str(actor.actor_id),
        )

    if late_policy is LateDecisionPolicy.REJECT and level.is_overdue(now):
        raise DeadlinePassedError(workflow_id, level.level_number, str(level.deadline_at))
    return index


def _finish(
    workflow: ApprovalWorkflow,
    status: WorkflowStatus,
    now: datetime,
) -> ApprovalWorkflow:
    if status not in WORKFLOW_TRANSITIONS[workflow.status]:
        raise WorkflowNotPendingError(str(workflow.workflow_id), workflow.status.value)
    return replace(workflow, status=status, terminal_at=now, last_updated_at=now)
