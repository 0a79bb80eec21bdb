"""Thread-safe in-memory Workflow Store."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from threading import Lock
from uuid import UUID

from approval_kernel.domain.workflow import (
    ApprovalWorkflow,
    UrgencyLevel,
    WorkflowStatus,
    WorkflowSummary,
)
from approval_kernel.exceptions import (
    VersionConflictError,
    WorkflowAlreadyExistsError,
    WorkflowNotFoundError,
)
from approval_kernel.logging_config import get_logger
from approval_kernel.store.base import Mutation, WorkflowStore, pending_summaries

logger = get_logger("store.memory")


class InMemoryWorkflowStore(WorkflowStore):
    """Dict-backed store; a single lock makes each ``update`` atomic.

    Workflows are frozen dataclasses, so snapshots can be handed out
    without copying.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._workflows: dict[UUID, ApprovalWorkflow] = {}

    def create(self, workflow: ApprovalWorkflow) -> ApprovalWorkflow:
        stored = replace(workflow, version=1)
        with self._lock:
            if workflow.workflow_id in self._workflows:
                raise WorkflowAlreadyExistsError(str(workflow.workflow_id))
            self._workflows[workflow.workflow_id] = stored
        return stored

    def get_by_id(self, workflow_id: UUID) -> ApprovalWorkflow:
        with self._lock:
            workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(str(workflow_id))
        return workflow

    def update(
        self,
        workflow_id: UUID,
        expected_version: int,
        mutation: Mutation,
    ) -> ApprovalWorkflow:
        with self._lock:
            current = self._workflows.get(workflow_id)
            if current is None:
                raise WorkflowNotFoundError(str(workflow_id))
            if current.version != expected_version:
                logger.debug(
                    "version_conflict",
                    extra={
                        "workflow_id": str(workflow_id),
                        "expected_version": expected_version,
                        "actual_version": current.version,
                    },
                )
                raise VersionConflictError(
                    str(workflow_id), expected_version, current.version,
                )
            updated = replace(mutation(current), version=expected_version + 1)
            self._workflows[workflow_id] = updated
        return updated

    def list_pending(
        self,
        now: datetime,
        urgency: UrgencyLevel | None = None,
    ) -> list[WorkflowSummary]:
        with self._lock:
            workflows = list(self._workflows.values())
        pending = [
            wf for wf in workflows
            if wf.status is WorkflowStatus.PENDING
            and (urgency is None or wf.urgency_level is urgency)
        ]
        return pending_summaries(pending, now)

    def snapshot(self) -> list[ApprovalWorkflow]:
        with self._lock:
            return list(self._workflows.values())
