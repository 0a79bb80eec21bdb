"""Tests for the workflow aggregate, summaries and the escalation policy."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from approval_kernel.domain.escalation import EscalationPolicy
from approval_kernel.domain.workflow import (
    WORKFLOW_TRANSITIONS,
    ApprovalLevel,
    ApprovalWorkflow,
    LevelStatus,
    RiskBucket,
    UrgencyLevel,
    WorkflowStatus,
    summarize,
    time_remaining_ms,
)

NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def _workflow(*levels, status=WorkflowStatus.PENDING, index=0, escalation_count=0):
    return ApprovalWorkflow(
        workflow_id=uuid4(),
        subject_id="BYP-7",
        category="system_failure",
        initiated_by=uuid4(),
        chain=tuple(levels),
        urgency_level=UrgencyLevel.NORMAL,
        risk_bucket=RiskBucket.LOW,
        created_at=NOW,
        last_updated_at=NOW,
        current_level_index=index,
        status=status,
        escalation_count=escalation_count,
    )


def _level(number, status=LevelStatus.NOT_REACHED, deadline=None):
    return ApprovalLevel(
        level_number=number,
        required_role="supervisor",
        duration=timedelta(hours=1),
        status=status,
        deadline_at=deadline,
    )


class TestAggregateStructure:

    def test_empty_chain_rejected(self):
        with pytest.raises(ValueError):
            _workflow()

    def test_level_numbers_must_follow_positions(self):
        with pytest.raises(ValueError):
            _workflow(_level(1), _level(3))

    def test_index_must_be_inside_chain(self):
        with pytest.raises(ValueError):
            _workflow(_level(1), index=1)

    def test_terminal_states_have_no_exits(self):
        for status, targets in WORKFLOW_TRANSITIONS.items():
            if status is not WorkflowStatus.PENDING:
                assert targets == frozenset()


class TestSummaries:

    def test_time_remaining_counts_down(self):
        wf = _workflow(_level(1, LevelStatus.PENDING, NOW + timedelta(seconds=90)))
        assert time_remaining_ms(wf, NOW) == 90_000

    def test_time_remaining_floors_at_zero(self):
        wf = _workflow(_level(1, LevelStatus.PENDING, NOW - timedelta(seconds=1)))
        assert time_remaining_ms(wf, NOW) == 0

    def test_time_remaining_zero_once_terminal(self):
        wf = _workflow(
            _level(1, LevelStatus.EXPIRED, NOW + timedelta(hours=1)),
            status=WorkflowStatus.EXPIRED,
        )
        assert time_remaining_ms(wf, NOW) == 0

    def test_summary_projection(self):
        wf = _workflow(
            _level(1, LevelStatus.APPROVED),
            _level(2, LevelStatus.PENDING, NOW + timedelta(minutes=5)),
            index=1,
            escalation_count=2,
        )

        summary = summarize(wf, NOW)

        assert summary.current_level_number == 2
        assert summary.completion_percentage == 50
        assert summary.time_remaining_ms == 300_000
        assert summary.chain_length == 2
        assert summary.escalation_level == 2


class TestEscalationPolicy:

    @pytest.fixture
    def policy(self):
        return EscalationPolicy(
            default_ladder=("a", "b", "c"),
            ladders={"settlement": ("s0", "s1", "s2", "s3", "s4", "s5")},
        )

    def test_next_role_walks_the_ladder(self, policy):
        assert policy.next_role("misc", "a") == "b"
        assert policy.next_role("misc", "c") is None
        assert policy.next_role("misc", "stranger") is None

    def test_category_ladder_overrides_default(self, policy):
        assert policy.next_role("settlement", "s4") == "s5"
        assert policy.max_level("settlement") == 5
        assert policy.max_level("misc") == 2

    def test_can_escalate_at_or_above_current_rung(self, policy):
        assert policy.can_escalate("misc", "b", "b")
        assert policy.can_escalate("misc", "c", "b")
        assert not policy.can_escalate("misc", "a", "b")
        assert not policy.can_escalate("misc", "stranger", "b")

    def test_duplicate_roles_rejected(self):
        with pytest.raises(ValueError):
            EscalationPolicy(default_ladder=("a", "a"))

    def test_empty_ladder_rejected(self):
        with pytest.raises(ValueError):
            EscalationPolicy(default_ladder=("a",), ladders={"x": ()})
