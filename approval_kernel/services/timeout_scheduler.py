"""
TimeoutScheduler -- Periodic sweep over overdue approval levels.

Contract:
    Each ``sweep()`` lists pending workflows, picks those whose current
    level's deadline has passed, and applies the category's timeout policy
    (expire, or auto-escalate one rung) through ``WorkflowStore.update``
    with the version read during the scan.

Architecture: approval_kernel/services.  Uses approval_kernel.domain for
    the pure transitions and the store for compare-and-set writes.

Invariants enforced:
    - All timestamps from the injected Clock.
    - A workflow decided between scan and write is left alone: the version
      check (or the transition's own precondition) turns the race into a
      skip, never into a second terminal transition.
    - Idempotent: a second sweep over the same state changes nothing.
    - Graceful shutdown: the loop exits between ticks when stopped.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass

from approval_kernel.domain import transitions
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.escalation import EscalationPolicy
from approval_kernel.domain.settings import EngineSettings, TimeoutPolicy
from approval_kernel.domain.workflow import (
    ApprovalWorkflow,
    WorkflowStatus,
    WorkflowSummary,
)
from approval_kernel.exceptions import VersionConflictError, WorkflowStateError
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.store.base import WorkflowStore

logger = get_logger("services.timeout_scheduler")


@dataclass(frozen=True)
class SweepResult:
    """Outcome counts of one sweep."""

    expired: int = 0
    escalated: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def processed(self) -> int:
        return self.expired + self.escalated


class TimeoutScheduler:
    """In-process polling scheduler for approval deadlines.

    Contract:
        - ``sweep()`` (alias ``tick()``) handles every currently overdue level.
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT a distributed scheduler (no leader election); concurrent
          sweepers are safe because every write is version-guarded.
    """

    def __init__(
        self,
        store: WorkflowStore,
        escalation_policy: EscalationPolicy,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
        tick_interval_seconds: float | None = None,
    ):
        self._store = store
        self._escalation_policy = escalation_policy
        self._settings = settings or EngineSettings()
        self._clock = clock or SystemClock()
        self._tick_interval = (
            tick_interval_seconds
            if tick_interval_seconds is not None
            else self._settings.sweep_interval_seconds
        )
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def sweep(self) -> SweepResult:
        """Expire or escalate every overdue level (public for testing)."""
        now = self._clock.now()
        overdue = [
            summary for summary in self._store.list_pending(now)
            if summary.deadline_at is not None and now >= summary.deadline_at
        ]

        expired = escalated = skipped = failed = 0
        for summary in overdue:
            with LogContext.bind(workflow_id=str(summary.workflow_id)):
                try:
                    outcome = self._handle(summary)
                except (VersionConflictError, WorkflowStateError) as exc:
                    logger.info(
                        "timeout_skipped",
                        extra={"reason": exc.code, "version": summary.version},
                    )
                    skipped += 1
                    continue
                except Exception:
                    logger.exception("timeout_handling_failed")
                    failed += 1
                    continue

            if outcome.status is WorkflowStatus.EXPIRED:
                expired += 1
            else:
                escalated += 1

        result = SweepResult(
            expired=expired, escalated=escalated, skipped=skipped, failed=failed,
        )
        if overdue:
            logger.info(
                "timeout_sweep_completed",
                extra={
                    "overdue": len(overdue),
                    "expired": expired,
                    "escalated": escalated,
                    "skipped": skipped,
                    "failed": failed,
                },
            )
        return result

    def tick(self) -> SweepResult:
        """One scheduler iteration; never raises."""
        try:
            return self.sweep()
        except Exception:
            logger.exception("scheduler_tick_failed")
            return SweepResult()

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="approval-timeout-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the scheduler to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        """Background polling loop. Exits when stop_event is set."""
        while not self._stop_event.is_set():
            self.tick()
            # Wait for interval or until stopped
            self._stop_event.wait(timeout=self._tick_interval)

    def _handle(self, summary: WorkflowSummary) -> ApprovalWorkflow:
        now = self._clock.now()
        policy = self._settings.timeout_policy_for(summary.category)

        if policy is TimeoutPolicy.ESCALATE:
            def mutation(workflow: ApprovalWorkflow) -> ApprovalWorkflow:
                return transitions.auto_escalate_overdue(
                    workflow, now, self._escalation_policy,
                )
        else:
            def mutation(workflow: ApprovalWorkflow) -> ApprovalWorkflow:
                return transitions.expire_overdue(workflow, now)

        updated = self._store.update(summary.workflow_id, summary.version, mutation)

        if updated.status is WorkflowStatus.EXPIRED:
            logger.info(
                "workflow_expired",
                extra={
                    "level_number": summary.current_level_number,
                    "role": summary.required_role,
                    "deadline_at": summary.deadline_at,
                },
            )
        else:
            logger.info(
                "workflow_escalated",
                extra={
                    "level_number": summary.current_level_number,
                    "from_role": summary.required_role,
                    "to_role": updated.current_level.required_role,
                    "escalation_count": updated.escalation_count,
                    "automatic": True,
                },
            )
        return updated
