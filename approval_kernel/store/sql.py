"""
Module: approval_kernel.store.sql
Responsibility: SQLAlchemy-backed Workflow Store.

Architecture position: Kernel > Store.  May import from db/, models/,
    domain/ and exceptions.

Invariants enforced:
    - Compare-and-set: the header row is written with
      ``UPDATE approval_workflows ... WHERE workflow_id = :id AND version =
      :expected``.  Zero affected rows means another writer committed first.
    - One transaction per operation: header, level rows and new escalation
      rows commit together or not at all.

Failure modes:
    - WorkflowNotFoundError, WorkflowAlreadyExistsError, VersionConflictError.
    - Errors raised by the mutation roll the transaction back and propagate.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from approval_kernel.db.engine import session_scope
from approval_kernel.domain.workflow import (
    ApprovalWorkflow,
    UrgencyLevel,
    WorkflowStatus,
    WorkflowSummary,
    summarize,
)
from approval_kernel.exceptions import (
    VersionConflictError,
    WorkflowAlreadyExistsError,
    WorkflowNotFoundError,
)
from approval_kernel.logging_config import get_logger
from approval_kernel.models.workflow import (
    ApprovalEscalationModel,
    ApprovalLevelModel,
    ApprovalWorkflowModel,
    header_values,
    level_values,
)
from approval_kernel.store.base import Mutation, WorkflowStore

logger = get_logger("store.sql")


class SqlWorkflowStore(WorkflowStore):
    """Workflow Store over any SQLAlchemy-supported database.

    Each call opens its own short-lived session from ``session_factory``.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def create(self, workflow: ApprovalWorkflow) -> ApprovalWorkflow:
        stored = replace(workflow, version=1)
        workflow_id = str(workflow.workflow_id)
        try:
            with session_scope(self._session_factory) as session:
                if self._load(session, workflow.workflow_id) is not None:
                    raise WorkflowAlreadyExistsError(workflow_id)
                session.add(ApprovalWorkflowModel.from_dto(stored))
        except IntegrityError:
            raise WorkflowAlreadyExistsError(workflow_id) from None
        return stored

    def get_by_id(self, workflow_id: UUID) -> ApprovalWorkflow:
        with session_scope(self._session_factory) as session:
            model = self._load(session, workflow_id)
            if model is None:
                raise WorkflowNotFoundError(str(workflow_id))
            return model.to_dto()

    def update(
        self,
        workflow_id: UUID,
        expected_version: int,
        mutation: Mutation,
    ) -> ApprovalWorkflow:
        with session_scope(self._session_factory) as session:
            model = self._load(session, workflow_id)
            if model is None:
                raise WorkflowNotFoundError(str(workflow_id))
            current = model.to_dto()
            if current.version != expected_version:
                raise VersionConflictError(
                    str(workflow_id), expected_version, current.version,
                )

            updated = replace(mutation(current), version=expected_version + 1)

            result = session.execute(
                update(ApprovalWorkflowModel)
                .where(
                    ApprovalWorkflowModel.workflow_id == workflow_id,
                    ApprovalWorkflowModel.version == expected_version,
                )
                .values(**header_values(updated))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                actual = session.scalar(
                    select(ApprovalWorkflowModel.version).where(
                        ApprovalWorkflowModel.workflow_id == workflow_id,
                    )
                )
                logger.debug(
                    "version_conflict",
                    extra={
                        "workflow_id": str(workflow_id),
                        "expected_version": expected_version,
                        "actual_version": actual,
                    },
                )
                raise VersionConflictError(
                    str(workflow_id), expected_version, actual or expected_version,
                )

            for before, after in zip(current.chain, updated.chain):
                if before == after:
                    continue
                session.execute(
                    update(ApprovalLevelModel)
                    .where(
                        ApprovalLevelModel.workflow_id == workflow_id,
                        ApprovalLevelModel.level_number == after.level_number,
                    )
                    .values(**level_values(after))
                    .execution_options(synchronize_session=False)
                )

            for sequence in range(len(current.escalations), len(updated.escalations)):
                session.add(
                    ApprovalEscalationModel.from_dto(
                        workflow_id, sequence, updated.escalations[sequence],
                    )
                )
        return updated

    def list_pending(
        self,
        now: datetime,
        urgency: UrgencyLevel | None = None,
    ) -> list[WorkflowSummary]:
        stmt = (
            select(ApprovalWorkflowModel)
            .where(ApprovalWorkflowModel.status == WorkflowStatus.PENDING.value)
            .order_by(
                ApprovalWorkflowModel.current_deadline_at,
                ApprovalWorkflowModel.created_at,
                ApprovalWorkflowModel.workflow_id,
            )
        )
        if urgency is not None:
            stmt = stmt.where(ApprovalWorkflowModel.urgency_level == urgency.value)
        with session_scope(self._session_factory) as session:
            return [summarize(model.to_dto(), now) for model in session.scalars(stmt)]

    def snapshot(self) -> list[ApprovalWorkflow]:
        stmt = select(ApprovalWorkflowModel).order_by(
            ApprovalWorkflowModel.created_at, ApprovalWorkflowModel.workflow_id,
        )
        with session_scope(self._session_factory) as session:
            return [model.to_dto() for model in session.scalars(stmt)]

    @staticmethod
    def _load(session: Session, workflow_id: UUID) -> ApprovalWorkflowModel | None:
        return session.scalars(
            select(ApprovalWorkflowModel).where(
                ApprovalWorkflowModel.workflow_id == workflow_id,
            )
        ).one_or_none()
