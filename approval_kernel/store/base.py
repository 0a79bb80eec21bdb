"""
Workflow Store interface (``approval_kernel.store.base``).

Responsibility
--------------
Durable home of approval workflows and the only place where concurrent
writers are serialised.  Every state change goes through ``update``, which
is a compare-and-set on ``version``: the stored version must equal
``expected_version``, the pure ``mutation`` is applied, and the result is
written with ``version + 1``.  Check and write are atomic.

Failure modes
-------------
- WorkflowNotFoundError on unknown ids.
- WorkflowAlreadyExistsError on duplicate create.
- VersionConflictError when another writer got there first.
- Anything raised by ``mutation`` propagates unchanged; nothing is written.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from uuid import UUID

from approval_kernel.domain.workflow import (
    ApprovalWorkflow,
    UrgencyLevel,
    WorkflowSummary,
    summarize,
)

Mutation = Callable[[ApprovalWorkflow], ApprovalWorkflow]


class WorkflowStore(ABC):
    """Persistence port for approval workflows."""

    @abstractmethod
    def create(self, workflow: ApprovalWorkflow) -> ApprovalWorkflow:
        """Persist a new workflow at version 1."""

    @abstractmethod
    def get_by_id(self, workflow_id: UUID) -> ApprovalWorkflow:
        """Return the current snapshot of a workflow."""

    @abstractmethod
    def update(
        self,
        workflow_id: UUID,
        expected_version: int,
        mutation: Mutation,
    ) -> ApprovalWorkflow:
        """Apply ``mutation`` if the stored version is ``expected_version``.

        Returns the persisted workflow (version ``expected_version + 1``).
        """

    @abstractmethod
    def list_pending(
        self,
        now: datetime,
        urgency: UrgencyLevel | None = None,
    ) -> list[WorkflowSummary]:
        """Pending workflows as summaries, soonest deadline first."""

    @abstractmethod
    def snapshot(self) -> list[ApprovalWorkflow]:
        """Every stored workflow, in creation order."""


def pending_summaries(
    workflows: list[ApprovalWorkflow],
    now: datetime,
) -> list[WorkflowSummary]:
    """Summarise pending workflows ordered by current deadline."""
    ordered = sorted(
        workflows,
        key=lambda wf: (wf.current_level.deadline_at, wf.created_at, str(wf.workflow_id)),
    )
    return [summarize(wf, now) for wf in ordered]
