"""
approval_kernel.services.approval_service -- External interface of the engine.

Responsibility:
    The facade the presentation layer talks to: creates workflows from
    bypass audit records, lists pending approvals, records decisions,
    escalations and cancellations, serves statistics, and drives the
    settlement escalation flow.  Delegates chain construction to the Chain
    Policy and state changes to the Decision Processor.

Architecture position:
    Kernel > Services.  May import from domain/, store/ and sibling services.

Invariants enforced:
    - Commands that lose a version race are retried with a fresh read, up to
      ``max_conflict_retries`` times; domain errors are never retried.
    - Decisions and escalations are pinned to the level that was current on
      the first read, so a retry never silently acts on the next level instead.

Failure modes:
    - ConflictError when every attempt lost a version race.
    - PolicyError on invalid risk input at creation.
    - ValidationError on malformed command input.
    - Everything the Decision Processor raises, unchanged.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TypeVar
from uuid import UUID, uuid4

from approval_kernel.domain import transitions
from approval_kernel.domain.chain_policy import (
    SETTLEMENT_CATEGORY,
    BypassAuditRecord,
    ChainPolicy,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.escalation import EscalationPolicy
from approval_kernel.domain.settings import EngineSettings
from approval_kernel.domain.statistics import AggregateStats, StatisticsWindow
from approval_kernel.domain.workflow import (
    Actor,
    ApprovalWorkflow,
    Decision,
    UrgencyLevel,
    WorkflowSummary,
    summarize,
)
from approval_kernel.exceptions import (
    ConflictError,
    ValidationError,
    VersionConflictError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.services.decision_processor import (
    DecisionProcessor,
    parse_decision,
)
from approval_kernel.services.statistics_service import StatisticsAggregator
from approval_kernel.services.timeout_scheduler import SweepResult, TimeoutScheduler
from approval_kernel.store.base import WorkflowStore

logger = get_logger("services.approval_service")

T = TypeVar("T")


class ApprovalService:
    """Approval workflow lifecycle facade."""

    def __init__(
        self,
        store: WorkflowStore,
        chain_policy: ChainPolicy,
        escalation_policy: EscalationPolicy,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._chain_policy = chain_policy
        self._escalation_policy = escalation_policy
        self._settings = settings or EngineSettings()
        self._clock = clock or SystemClock()
        self._processor = DecisionProcessor(
            store, escalation_policy, self._settings, self._clock,
        )
        self._statistics = StatisticsAggregator(store, self._clock)

    @property
    def processor(self) -> DecisionProcessor:
        return self._processor

    def timeout_scheduler(self, tick_interval_seconds: float | None = None) -> TimeoutScheduler:
        """A scheduler sharing this service's store, policies and clock."""
        return TimeoutScheduler(
            self._store,
            self._escalation_policy,
            self._settings,
            self._clock,
            tick_interval_seconds=tick_interval_seconds,
        )

    # -------------------------------------------------------------------------
    # Creation and queries
    # -------------------------------------------------------------------------

    def create_workflow(
        self,
        record: BypassAuditRecord,
        initiated_by: UUID,
    ) -> WorkflowSummary:
        """Open an approval workflow for a bypass.

        Raises:
            ValidationError: empty bypass id.
            PolicyError: risk score or financial impact out of range.
        """
        if not isinstance(record.bypass_id, str) or not record.bypass_id.strip():
            raise ValidationError("bypass_id", "must be a non-empty string")

        plan = self._chain_policy.build_chain(
            record.risk_score, record.reason_category, record.financial_impact,
        )
        now = self._clock.now()
        workflow = transitions.start_workflow(
            plan,
            workflow_id=uuid4(),
            subject_id=record.bypass_id,
            category=record.reason_category,
            initiated_by=initiated_by,
            now=now,
            risk_score=record.risk_score,
            financial_impact=record.financial_impact,
        )
        stored = self._store.create(workflow)

        with LogContext.bind(workflow_id=str(stored.workflow_id), actor_id=str(initiated_by)):
            logger.info(
                "workflow_created",
                extra={
                    "subject_id": stored.subject_id,
                    "category": stored.category,
                    "risk_score": stored.risk_score,
                    "risk_bucket": stored.risk_bucket,
                    "urgency_level": stored.urgency_level,
                    "chain_roles": list(plan.roles),
                },
            )
        return summarize(stored, now)

    def get_workflow(self, workflow_id: UUID) -> ApprovalWorkflow:
        return self._store.get_by_id(workflow_id)

    def get_workflow_summary(self, workflow_id: UUID) -> WorkflowSummary:
        return summarize(self._store.get_by_id(workflow_id), self._clock.now())

    def list_pending_approvals(
        self,
        urgency: UrgencyLevel | None = None,
    ) -> list[WorkflowSummary]:
        """Pending workflows, soonest deadline first."""
        return self._store.list_pending(self._clock.now(), urgency)

    def get_statistics(self, window: StatisticsWindow | None = None) -> AggregateStats:
        return self._statistics.get_statistics(window)

    def sweep_timeouts(self) -> SweepResult:
        """Run a single timeout sweep synchronously."""
        return self.timeout_scheduler().sweep()

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def process_approval(
        self,
        workflow_id: UUID,
        decision: Decision | str,
        actor: Actor,
        notes: str,
    ) -> WorkflowSummary:
        """Approve or reject the current level on behalf of ``actor``."""
        decision = parse_decision(decision)
        notes = self._processor.validate_text("notes", notes)

        def command(workflow: ApprovalWorkflow, level_number: int) -> ApprovalWorkflow:
            return self._processor.decide(
                workflow_id, decision, actor, notes,
                expected_version=workflow.version, level_number=level_number,
            )

        return self._summary(self._with_retries(workflow_id, command))

    def escalate_approval(
        self,
        workflow_id: UUID,
        actor: Actor,
        reason: str,
    ) -> WorkflowSummary:
        """Manually move the current level one rung up its ladder."""
        reason = self._processor.validate_text("reason", reason)

        def command(workflow: ApprovalWorkflow, level_number: int) -> ApprovalWorkflow:
            return self._processor.escalate(
                workflow_id, actor, reason,
                expected_version=workflow.version, level_number=level_number,
            )

        return self._summary(self._with_retries(workflow_id, command))

    def cancel_approval(self, workflow_id: UUID, actor: Actor) -> WorkflowSummary:
        """Withdraw the request (initiator only, before any approver acts)."""

        def command(workflow: ApprovalWorkflow, level_number: int) -> ApprovalWorkflow:
            return self._processor.cancel(
                workflow_id, actor, expected_version=workflow.version,
            )

        return self._summary(self._with_retries(workflow_id, command))

    # -------------------------------------------------------------------------
    # Settlement escalation
    # -------------------------------------------------------------------------

    def open_settlement_escalation(
        self,
        settlement_id: str,
        initiated_by: UUID,
    ) -> WorkflowSummary:
        """Open a single-level workflow at escalation level 0 for a settlement."""
        if not isinstance(settlement_id, str) or not settlement_id.strip():
            raise ValidationError("settlement_id", "must be a non-empty string")

        plan = self._chain_policy.build_settlement_chain()
        now = self._clock.now()
        workflow = transitions.start_workflow(
            plan,
            workflow_id=uuid4(),
            subject_id=settlement_id,
            category=SETTLEMENT_CATEGORY,
            initiated_by=initiated_by,
            now=now,
        )
        stored = self._store.create(workflow)

        with LogContext.bind(workflow_id=str(stored.workflow_id), actor_id=str(initiated_by)):
            logger.info(
                "settlement_escalation_opened",
                extra={
                    "subject_id": settlement_id,
                    "role": stored.current_level.required_role,
                    "max_escalation_level": self._escalation_policy.max_level(
                        SETTLEMENT_CATEGORY,
                    ),
                },
            )
        return summarize(stored, now)

    def escalate_settlement(
        self,
        workflow_id: UUID,
        actor: Actor,
        reason: str,
    ) -> WorkflowSummary:
        """Raise a settlement workflow to the next escalation level."""
        workflow = self._store.get_by_id(workflow_id)
        if workflow.category != SETTLEMENT_CATEGORY:
            raise ValidationError(
                "workflow_id", f"workflow {workflow_id} is not a settlement escalation",
            )
        return self.escalate_approval(workflow_id, actor, reason)

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _with_retries(
        self,
        workflow_id: UUID,
        command: Callable[[ApprovalWorkflow, int], T],
    ) -> T:
        """Run ``command`` against fresh reads until it wins a version race."""
        attempts = self._settings.max_conflict_retries + 1
        workflow = self._store.get_by_id(workflow_id)
        level_number = workflow.current_level.level_number

        for attempt in range(1, attempts + 1):
            try:
                return command(workflow, level_number)
            except VersionConflictError as exc:
                logger.warning(
                    "version_conflict_retry",
                    extra={
                        "workflow_id": str(workflow_id),
                        "attempt": attempt,
                        "max_attempts": attempts,
                        "expected_version": exc.expected_version,
                        "actual_version": exc.actual_version,
                    },
                )
                if attempt < attempts:
                    workflow = self._store.get_by_id(workflow_id)

        logger.error(
            "version_conflict_retries_exhausted",
            extra={"workflow_id": str(workflow_id), "attempts": attempts},
        )
        raise ConflictError(str(workflow_id), attempts)

    def _summary(self, workflow: ApprovalWorkflow) -> WorkflowSummary:
        return summarize(workflow, self._clock.now())
