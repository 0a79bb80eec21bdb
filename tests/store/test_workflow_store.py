"""
Contract tests for every WorkflowStore implementation.

Each test runs against the in-memory store and the SQL store (SQLite in
memory unless DATABASE_URL is set).
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from approval_kernel.domain import transitions
from approval_kernel.domain.chain_policy import ChainPlan, ChainStep
from approval_kernel.domain.escalation import EscalationPolicy
from approval_kernel.domain.workflow import (
    Actor,
    LevelStatus,
    RiskBucket,
    UrgencyLevel,
    WorkflowStatus,
)
from approval_kernel.exceptions import (
    RoleMismatchError,
    VersionConflictError,
    WorkflowAlreadyExistsError,
    WorkflowNotFoundError,
)

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
LADDER = EscalationPolicy(default_ladder=("supervisor", "manager", "director"))


def _new_workflow(*roles, now=T0, urgency=UrgencyLevel.NORMAL, minutes=60):
    plan = ChainPlan(
        bucket=RiskBucket.MEDIUM,
        urgency=urgency,
        steps=tuple(ChainStep(role, timedelta(minutes=minutes)) for role in roles),
    )
    return transitions.start_workflow(
        plan,
        workflow_id=uuid4(),
        subject_id=f"BYP-{uuid4().hex[:6]}",
        category="system_failure",
        initiated_by=uuid4(),
        now=now,
        risk_score=45.5,
        financial_impact=Decimal("1250.50"),
    )


def _approve_as(role, now=T0):
    actor = Actor(uuid4(), role)
    return lambda wf: transitions.approve(wf, actor, "approved in test", now)


class TestCreateAndRead:

    def test_round_trip(self, store):
        workflow = _new_workflow("supervisor", "manager")

        store.create(workflow)
        loaded = store.get_by_id(workflow.workflow_id)

        assert loaded == workflow
        assert loaded.chain[0].deadline_at.tzinfo is not None

    def test_duplicate_create_rejected(self, store):
        workflow = _new_workflow("supervisor")
        store.create(workflow)
        with pytest.raises(WorkflowAlreadyExistsError):
            store.create(workflow)

    def test_unknown_id(self, store):
        with pytest.raises(WorkflowNotFoundError) as exc_info:
            store.get_by_id(uuid4())
        assert exc_info.value.code == "WORKFLOW_NOT_FOUND"


class TestUpdate:

    def test_update_applies_mutation_and_bumps_version(self, store):
        workflow = store.create(_new_workflow("supervisor", "manager"))

        updated = store.update(workflow.workflow_id, 1, _approve_as("supervisor"))

        assert updated.version == 2
        assert updated.current_level_index == 1
        assert store.get_by_id(workflow.workflow_id) == updated

    def test_stale_version_conflicts(self, store):
        workflow = store.create(_new_workflow("supervisor", "manager"))
        store.update(workflow.workflow_id, 1, _approve_as("supervisor"))

        with pytest.raises(VersionConflictError) as exc_info:
            store.update(workflow.workflow_id, 1, _approve_as("manager"))

        assert exc_info.value.expected_version == 1
        assert exc_info.value.actual_version == 2
        assert store.get_by_id(workflow.workflow_id).version == 2

    def test_failed_mutation_writes_nothing(self, store):
        workflow = store.create(_new_workflow("supervisor"))

        with pytest.raises(RoleMismatchError):
            store.update(workflow.workflow_id, 1, _approve_as("manager"))

        assert store.get_by_id(workflow.workflow_id) == workflow

    def test_escalation_history_persists(self, store):
        workflow = store.create(_new_workflow("supervisor"))
        actor = Actor(uuid4(), "supervisor")

        store.update(
            workflow.workflow_id, 1,
            lambda wf: transitions.escalate(wf, actor, "first hop", T0, LADDER),
        )
        loaded = store.update(
            workflow.workflow_id, 2,
            lambda wf: transitions.auto_escalate_overdue(wf, T0 + timedelta(hours=1), LADDER),
        )

        assert store.get_by_id(workflow.workflow_id) == loaded
        assert [e.to_role for e in loaded.escalations] == ["manager", "director"]
        assert [e.automatic for e in loaded.escalations] == [False, True]
        assert loaded.escalations[0].escalated_by == actor.actor_id

    def test_terminal_state_persists(self, store):
        workflow = store.create(_new_workflow("supervisor", "manager"))

        store.update(
            workflow.workflow_id, 1,
            lambda wf: transitions.expire_overdue(wf, T0 + timedelta(hours=2)),
        )
        loaded = store.get_by_id(workflow.workflow_id)

        assert loaded.status is WorkflowStatus.EXPIRED
        assert loaded.chain[0].status is LevelStatus.EXPIRED
        assert loaded.chain[1].status is LevelStatus.NOT_REACHED
        assert loaded.terminal_at == T0 + timedelta(hours=2)


class TestListing:

    def test_list_pending_orders_by_deadline(self, store):
        late = store.create(_new_workflow("supervisor", minutes=120))
        soon = store.create(_new_workflow("supervisor", urgency=UrgencyLevel.CRITICAL, minutes=10))
        done = store.create(_new_workflow("supervisor"))
        store.update(done.workflow_id, 1, _approve_as("supervisor"))

        pending = store.list_pending(T0 + timedelta(minutes=5))

        assert [s.workflow_id for s in pending] == [soon.workflow_id, late.workflow_id]
        assert pending[0].time_remaining_ms == 5 * 60 * 1000
        assert pending[1].time_remaining_ms == 115 * 60 * 1000

    def test_list_pending_urgency_filter(self, store):
        store.create(_new_workflow("supervisor"))
        critical = store.create(_new_workflow("supervisor", urgency=UrgencyLevel.CRITICAL))

        pending = store.list_pending(T0, UrgencyLevel.CRITICAL)

        assert [s.workflow_id for s in pending] == [critical.workflow_id]

    def test_overdue_summaries_floor_at_zero(self, store):
        store.create(_new_workflow("supervisor"))
        (summary,) = store.list_pending(T0 + timedelta(hours=3))
        assert summary.time_remaining_ms == 0

    def test_snapshot_returns_everything(self, store):
        first = store.create(_new_workflow("supervisor"))
        second = store.create(_new_workflow("supervisor", now=T0 + timedelta(seconds=1)))
        store.update(first.workflow_id, 1, _approve_as("supervisor"))

        snapshot = store.snapshot()

        assert {wf.workflow_id for wf in snapshot} == {first.workflow_id, second.workflow_id}
        assert second in snapshot
