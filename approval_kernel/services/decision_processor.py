"""
approval_kernel.services.decision_processor -- Human decisions on workflows.

Responsibility:
    Validates decision input, then applies the matching pure transition
    through ``WorkflowStore.update`` so the version check and the write
    happen atomically.  Approve, reject, cancel and manual escalation all
    go through here.

Architecture position:
    Kernel > Services.  May import from domain/, store/, exceptions.

Invariants enforced:
    - Notes and reasons are validated before the store is touched.
    - Every write is a compare-and-set on ``version``; a stale caller gets
      VersionConflictError and nothing is written.
    - Terminal workflows are never mutated (enforced by the transitions).

Failure modes:
    - ValidationError on short or missing notes/reason.
    - WorkflowNotFoundError, VersionConflictError from the store.
    - WorkflowStateError / AuthorizationError / NoFurtherEscalationError
      from the transitions.
"""

from __future__ import annotations

from uuid import UUID

from approval_kernel.domain import transitions
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.escalation import EscalationPolicy
from approval_kernel.domain.settings import EngineSettings
from approval_kernel.domain.workflow import (
    Actor,
    ApprovalWorkflow,
    Decision,
    WorkflowStatus,
)
from approval_kernel.exceptions import ValidationError
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.store.base import WorkflowStore

logger = get_logger("services.decision_processor")


class DecisionProcessor:
    """Applies approve / reject / cancel / escalate commands.

    Contract:
        Each command takes an explicit ``workflow_id`` and an optional
        ``expected_version``.  Without one, the current version is read
        first (last-writer-loses still applies between read and write).
    """

    def __init__(
        self,
        store: WorkflowStore,
        escalation_policy: EscalationPolicy,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._escalation_policy = escalation_policy
        self._settings = settings or EngineSettings()
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Decisions
    # -------------------------------------------------------------------------

    def decide(
        self,
        workflow_id: UUID,
        decision: Decision | str,
        actor: Actor,
        notes: str,
        *,
        expected_version: int | None = None,
        level_number: int | None = None,
    ) -> ApprovalWorkflow:
        """Dispatch to ``approve`` or ``reject``.

        Raises:
            ValidationError: ``decision`` is neither approve nor reject.
        """
        if parse_decision(decision) is Decision.APPROVE:
            return self.approve(
                workflow_id, actor, notes,
                expected_version=expected_version, level_number=level_number,
            )
        return self.reject(
            workflow_id, actor, notes,
            expected_version=expected_version, level_number=level_number,
        )

    def approve(
        self,
        workflow_id: UUID,
        actor: Actor,
        notes: str,
        *,
        expected_version: int | None = None,
        level_number: int | None = None,
    ) -> ApprovalWorkflow:
        """Approve the current level.

        ``level_number`` pins the level being decided; if the workflow has
        moved past it the call fails with AlreadyDecidedError.
        """
        notes = self.validate_text("notes", notes)
        late_policy = self._settings.late_decision_policy

        def mutation(workflow: ApprovalWorkflow) -> ApprovalWorkflow:
            return transitions.approve(
                workflow, actor, notes, self._clock.now(),
                late_policy=late_policy, level_number=level_number,
            )

        with LogContext.bind(workflow_id=str(workflow_id), actor_id=str(actor.actor_id)):
            before, after = self._apply(workflow_id, expected_version, mutation)
            logger.info(
                "level_approved",
                extra={
                    "level_number": before.current_level.level_number,
                    "role": actor.role,
                    "version": after.version,
                },
            )
            if after.status is WorkflowStatus.COMPLETED:
                logger.info(
                    "workflow_completed",
                    extra={"chain_length": len(after.chain)},
                )
        return after

    def reject(
        self,
        workflow_id: UUID,
        actor: Actor,
        notes: str,
        *,
        expected_version: int | None = None,
        level_number: int | None = None,
    ) -> ApprovalWorkflow:
        """Reject the current level, ending the workflow."""
        notes = self.validate_text("notes", notes)
        late_policy = self._settings.late_decision_policy

        def mutation(workflow: ApprovalWorkflow) -> ApprovalWorkflow:
            return transitions.reject(
                workflow, actor, notes, self._clock.now(),
                late_policy=late_policy, level_number=level_number,
            )

        with LogContext.bind(workflow_id=str(workflow_id), actor_id=str(actor.actor_id)):
            before, after = self._apply(workflow_id, expected_version, mutation)
            logger.info(
                "workflow_rejected",
                extra={
                    "level_number": before.current_level.level_number,
                    "role": actor.role,
                    "version": after.version,
                },
            )
        return after

    # -------------------------------------------------------------------------
    # Withdrawal and escalation
    # -------------------------------------------------------------------------

    def cancel(
        self,
        workflow_id: UUID,
        actor: Actor,
        *,
        expected_version: int | None = None,
    ) -> ApprovalWorkflow:
        """Withdraw a request that no approver has acted on yet."""

        def mutation(workflow: ApprovalWorkflow) -> ApprovalWorkflow:
            return transitions.cancel(workflow, actor, self._clock.now())

        with LogContext.bind(workflow_id=str(workflow_id), actor_id=str(actor.actor_id)):
            _, after = self._apply(workflow_id, expected_version, mutation)
            logger.info("workflow_cancelled", extra={"version": after.version})
        return after

    def escalate(
        self,
        workflow_id: UUID,
        actor: Actor,
        reason: str,
        *,
        expected_version: int | None = None,
        level_number: int | None = None,
    ) -> ApprovalWorkflow:
        """Re-route the current level one rung up the escalation ladder.

        ``level_number`` pins the level being escalated, as for ``approve``.
        """
        reason = self.validate_text("reason", reason)

        def mutation(workflow: ApprovalWorkflow) -> ApprovalWorkflow:
            return transitions.escalate(
                workflow, actor, reason, self._clock.now(), self._escalation_policy,
                level_number=level_number,
            )

        with LogContext.bind(workflow_id=str(workflow_id), actor_id=str(actor.actor_id)):
            before, after = self._apply(workflow_id, expected_version, mutation)
            logger.info(
                "workflow_escalated",
                extra={
                    "level_number": after.current_level.level_number,
                    "from_role": before.current_level.required_role,
                    "to_role": after.current_level.required_role,
                    "escalation_count": after.escalation_count,
                    "automatic": False,
                },
            )
        return after

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _apply(self, workflow_id, expected_version, mutation):
        """Run ``mutation`` through the store; return (before, after)."""
        if expected_version is None:
            expected_version = self._store.get_by_id(workflow_id).version

        captured: list[ApprovalWorkflow] = []

        def recording_mutation(workflow: ApprovalWorkflow) -> ApprovalWorkflow:
            captured.append(workflow)
            return mutation(workflow)

        after = self._store.update(workflow_id, expected_version, recording_mutation)
        return captured[-1], after

    def validate_text(self, field: str, value: str) -> str:
        """Strip ``value`` and enforce the minimum length; raise ValidationError."""
        if not isinstance(value, str):
            raise ValidationError(field, "must be a string")
        stripped = value.strip()
        minimum = self._settings.min_notes_length
        if len(stripped) < minimum:
            raise ValidationError(
                field, f"must be at least {minimum} characters after trimming",
            )
        return stripped


def parse_decision(decision: Decision | str) -> Decision:
    """Normalise ``"approve"`` / ``"reject"`` (any case, padded) to a Decision."""
    if isinstance(decision, Decision):
        return decision
    try:
        return Decision(str(decision).strip().lower())
    except ValueError:
        raise ValidationError(
            "decision", f"must be one of {[d.value for d in Decision]}",
        ) from None
