"""
Tests for TimeoutScheduler.

Covers the expire-by-default sweep, per-category auto-escalation,
idempotency, lost races against human decisions, failure isolation and
the background thread lifecycle.
"""

import time
from datetime import timedelta

import pytest

from approval_kernel.domain.settings import EngineSettings, TimeoutPolicy
from approval_kernel.domain.workflow import LevelStatus, WorkflowStatus
from approval_kernel.services.timeout_scheduler import SweepResult, TimeoutScheduler
from approval_kernel.store.memory import InMemoryWorkflowStore


class StaleListingStore(InMemoryWorkflowStore):
    """Serves a frozen pending listing, as if the scan raced a writer."""

    def __init__(self, inner):
        super().__init__()
        self._inner = inner
        self.frozen = None

    def list_pending(self, now, urgency=None):
        return self.frozen if self.frozen is not None else self._inner.list_pending(now, urgency)

    def get_by_id(self, workflow_id):
        return self._inner.get_by_id(workflow_id)

    def update(self, workflow_id, expected_version, mutation):
        return self._inner.update(workflow_id, expected_version, mutation)


class ExplodingStore(InMemoryWorkflowStore):
    """Fails every update for one workflow."""

    def __init__(self, inner, poisoned_id):
        super().__init__()
        self._inner = inner
        self._poisoned_id = poisoned_id

    def list_pending(self, now, urgency=None):
        return self._inner.list_pending(now, urgency)

    def update(self, workflow_id, expected_version, mutation):
        if workflow_id == self._poisoned_id:
            raise RuntimeError("disk on fire")
        return self._inner.update(workflow_id, expected_version, mutation)


@pytest.fixture
def critical_workflow(service, make_record, requester_id):
    """Pending critical workflow: 30 minute levels."""
    return service.create_workflow(make_record(risk_score=90), requester_id)


class TestExpiry:

    def test_overdue_workflow_expires(self, scheduler, service, clock, critical_workflow):
        # deadline_at = now - 1000ms
        clock.advance(seconds=30 * 60 + 1)

        result = scheduler.sweep()

        assert result == SweepResult(expired=1)
        workflow = service.get_workflow(critical_workflow.workflow_id)
        assert workflow.status is WorkflowStatus.EXPIRED
        assert workflow.chain[0].status is LevelStatus.EXPIRED
        assert workflow.terminal_at == clock.now()

    def test_expires_exactly_at_deadline(self, scheduler, clock, critical_workflow):
        clock.advance(seconds=30 * 60)
        assert scheduler.sweep().expired == 1

    def test_not_yet_due_is_left_alone(self, scheduler, service, clock, critical_workflow):
        clock.advance(seconds=30 * 60 - 1)

        assert scheduler.sweep() == SweepResult()
        assert service.get_workflow(critical_workflow.workflow_id).status is WorkflowStatus.PENDING

    def test_second_sweep_is_a_no_op(self, scheduler, service, clock, critical_workflow):
        clock.advance(seconds=3600)
        scheduler.sweep()
        version = service.get_workflow(critical_workflow.workflow_id).version

        assert scheduler.sweep() == SweepResult()
        assert service.get_workflow(critical_workflow.workflow_id).version == version

    def test_sweep_logs_expiry(self, scheduler, clock, critical_workflow, captured_logs):
        clock.advance(seconds=3600)
        scheduler.sweep()

        messages = [r["message"] for r in captured_logs()]
        assert "workflow_expired" in messages
        assert "timeout_sweep_completed" in messages


class TestAutoEscalation:

    def test_settlement_category_auto_escalates(self, scheduler, service, clock, requester_id):
        summary = service.open_settlement_escalation("STL-1001", requester_id)
        clock.advance(seconds=48 * 3600)

        result = scheduler.sweep()

        assert result.escalated == 1
        workflow = service.get_workflow(summary.workflow_id)
        assert workflow.status is WorkflowStatus.PENDING
        assert workflow.current_level.required_role == "settlement-level-1"
        assert workflow.current_level.deadline_at == clock.now() + timedelta(hours=48)
        assert workflow.escalations[-1].automatic is True

    def test_settlement_expires_after_last_rung(self, scheduler, service, clock, requester_id):
        summary = service.open_settlement_escalation("STL-1002", requester_id)

        for _ in range(5):
            clock.advance(seconds=48 * 3600)
            assert scheduler.sweep().escalated == 1
        clock.advance(seconds=48 * 3600)
        assert scheduler.sweep().expired == 1

        workflow = service.get_workflow(summary.workflow_id)
        assert workflow.escalation_count == 5
        assert workflow.status is WorkflowStatus.EXPIRED

    def test_escalate_as_default_policy(
        self, memory_store, escalation_policy, clock, critical_workflow, service,
    ):
        scheduler = TimeoutScheduler(
            memory_store,
            escalation_policy,
            EngineSettings(default_timeout_policy=TimeoutPolicy.ESCALATE),
            clock,
        )
        clock.advance(seconds=3600)

        assert scheduler.sweep().escalated == 1
        workflow = service.get_workflow(critical_workflow.workflow_id)
        assert workflow.current_level.required_role == "front-office-manager"


class TestRaces:

    def test_decision_between_scan_and_write_wins(
        self, memory_store, escalation_policy, settings, clock,
        service, critical_workflow, make_actor, requester_id,
    ):
        stale = StaleListingStore(memory_store)
        scheduler = TimeoutScheduler(stale, escalation_policy, settings, clock)

        clock.advance(seconds=3600)
        stale.frozen = memory_store.list_pending(clock.now())
        service.cancel_approval(
            critical_workflow.workflow_id, make_actor("front-desk", actor_id=requester_id),
        )

        result = scheduler.sweep()

        assert result == SweepResult(skipped=1)
        workflow = memory_store.get_by_id(critical_workflow.workflow_id)
        assert workflow.status is WorkflowStatus.CANCELLED

    def test_failure_is_isolated(
        self, memory_store, escalation_policy, settings, clock,
        service, make_record, requester_id, captured_logs,
    ):
        poisoned = service.create_workflow(make_record(risk_score=90), requester_id)
        healthy = service.create_workflow(make_record(risk_score=90), requester_id)
        scheduler = TimeoutScheduler(
            ExplodingStore(memory_store, poisoned.workflow_id),
            escalation_policy, settings, clock,
        )
        clock.advance(seconds=3600)

        result = scheduler.sweep()

        assert result == SweepResult(expired=1, failed=1)
        assert memory_store.get_by_id(healthy.workflow_id).status is WorkflowStatus.EXPIRED
        assert memory_store.get_by_id(poisoned.workflow_id).status is WorkflowStatus.PENDING
        failures = [r for r in captured_logs() if r["message"] == "timeout_handling_failed"]
        assert failures and failures[0]["exc_type"] == "RuntimeError"


class TestLifecycle:

    def test_start_and_stop(self, memory_store, escalation_policy, settings, clock,
                            service, critical_workflow):
        scheduler = TimeoutScheduler(
            memory_store, escalation_policy, settings, clock, tick_interval_seconds=0.01,
        )
        clock.advance(seconds=3600)

        scheduler.start()
        try:
            assert scheduler.is_running
            deadline = time.monotonic() + 5
            while time.monotonic() < deadline:
                if service.get_workflow(critical_workflow.workflow_id).is_terminal:
                    break
                time.sleep(0.01)
        finally:
            scheduler.stop(timeout=5)

        assert not scheduler.is_running
        assert service.get_workflow(critical_workflow.workflow_id).status is WorkflowStatus.EXPIRED

    def test_tick_swallows_listing_failure(self, escalation_policy, settings, clock):
        class BrokenStore(InMemoryWorkflowStore):
            def list_pending(self, now, urgency=None):
                raise RuntimeError("connection reset")

        scheduler = TimeoutScheduler(BrokenStore(), escalation_policy, settings, clock)
        assert scheduler.tick() == SweepResult()
