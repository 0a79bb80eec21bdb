"""
Module: approval_kernel.models.workflow
Responsibility: ORM persistence for approval workflows, their chain levels,
    and their escalation history.

Architecture position: Kernel > Models.  May import from db/ only (domain
    types are imported lazily inside to_dto/from_dto).

Invariants enforced:
    - Valid status values: DB check constraints on workflow and level status.
    - Chain ordering: UNIQUE(workflow_id, level_number) on approval_levels.
    - Optimistic concurrency: ``version`` is the compare-and-set column used
      by SqlWorkflowStore.update (``UPDATE ... WHERE version = :expected``).
    - Escalation history is append-only: rows are only ever inserted, keyed
      by UNIQUE(workflow_id, sequence).

Failure modes:
    - IntegrityError on duplicate workflow_id.
    - IntegrityError on duplicate (workflow_id, level_number).

Audit relevance:
    Levels carry who decided, when, and with which notes; escalation rows
    record every re-route with its reason and whether it was automatic.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from approval_kernel.db.base import Base
from approval_kernel.db.types import UUIDString

if TYPE_CHECKING:
    from approval_kernel.domain.workflow import (
        ApprovalLevel,
        ApprovalWorkflow,
        EscalationRecord,
    )


class ApprovalWorkflowModel(Base):
    """Persistent approval workflow header.

    Contract:
        Rows are never deleted.  Every write after creation goes through a
        version-guarded UPDATE.

    Guarantees:
        - ``current_deadline_at`` mirrors the current level's deadline so
          pending listings sort in the database.
    """

    __tablename__ = "approval_workflows"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'completed', 'rejected', 'expired', 'cancelled')",
            name="ck_approval_workflows_valid_status",
        ),
        CheckConstraint("version >= 1", name="ck_approval_workflows_version"),
        # Covering index for list_pending()
        Index(
            "ix_approval_workflows_status_deadline",
            "status", "current_deadline_at",
        ),
        Index("ix_approval_workflows_created_at", "created_at"),
    )

    workflow_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    subject_id: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(100), nullable=False)
    initiated_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    urgency_level: Mapped[str] = mapped_column(String(20), nullable=False)
    risk_score: Mapped[float] = mapped_column(Float, nullable=False)
    risk_bucket: Mapped[str] = mapped_column(String(20), nullable=False)
    financial_impact: Mapped[Decimal] = mapped_column(nullable=False)
    current_level_index: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    escalation_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_deadline_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    last_updated_at: Mapped[datetime] = mapped_column(nullable=False)
    terminal_at: Mapped[datetime | None] = mapped_column(nullable=True)

    levels: Mapped[list["ApprovalLevelModel"]] = relationship(
        "ApprovalLevelModel",
        primaryjoin="ApprovalWorkflowModel.workflow_id == ApprovalLevelModel.workflow_id",
        order_by="ApprovalLevelModel.level_number",
        lazy="selectin",
    )
    escalations: Mapped[list["ApprovalEscalationModel"]] = relationship(
        "ApprovalEscalationModel",
        primaryjoin=(
            "ApprovalWorkflowModel.workflow_id == ApprovalEscalationModel.workflow_id"
        ),
        order_by="ApprovalEscalationModel.sequence",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<ApprovalWorkflow {self.workflow_id} {self.category} "
            f"status={self.status} v{self.version}>"
        )

    def to_dto(self) -> ApprovalWorkflow:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.workflow import (
            ApprovalWorkflow as ApprovalWorkflowDTO,
            RiskBucket,
            UrgencyLevel,
            WorkflowStatus,
        )

        return ApprovalWorkflowDTO(
            workflow_id=self.workflow_id,
            subject_id=self.subject_id,
            category=self.category,
            initiated_by=self.initiated_by,
            chain=tuple(level.to_dto() for level in self.levels),
            urgency_level=UrgencyLevel(self.urgency_level),
            risk_bucket=RiskBucket(self.risk_bucket),
            created_at=self.created_at,
            last_updated_at=self.last_updated_at,
            risk_score=self.risk_score,
            financial_impact=self.financial_impact,
            current_level_index=self.current_level_index,
            status=WorkflowStatus(self.status),
            version=self.version,
            escalation_count=self.escalation_count,
            escalations=tuple(record.to_dto() for record in self.escalations),
            terminal_at=self.terminal_at,
        )

    @classmethod
    def from_dto(cls, dto: ApprovalWorkflow) -> ApprovalWorkflowModel:
        """Create ORM model (header, levels and history) from domain DTO."""
        model = cls(**header_values(dto))
        model.levels = [
            ApprovalLevelModel.from_dto(dto.workflow_id, level) for level in dto.chain
        ]
        model.escalations = [
            ApprovalEscalationModel.from_dto(dto.workflow_id, sequence, record)
            for sequence, record in enumerate(dto.escalations)
        ]
        return model


class ApprovalLevelModel(Base):
    """One level of a persisted approval chain."""

    __tablename__ = "approval_levels"

    __table_args__ = (
        UniqueConstraint(
            "workflow_id", "level_number",
            name="uq_approval_levels_workflow_level",
        ),
        CheckConstraint(
            "status IN ('not_reached', 'pending', 'approved', 'rejected', 'expired')",
            name="ck_approval_levels_valid_status",
        ),
        CheckConstraint("level_number >= 1", name="ck_approval_levels_number"),
    )

    workflow_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_workflows.workflow_id"),
        nullable=False,
    )
    level_number: Mapped[int] = mapped_column(Integer, nullable=False)
    required_role: Mapped[str] = mapped_column(String(100), nullable=False)
    duration_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    assigned_to: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    requested_at: Mapped[datetime | None] = mapped_column(nullable=True)
    deadline_at: Mapped[datetime | None] = mapped_column(nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(nullable=True)
    decided_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ApprovalLevel {self.workflow_id}#{self.level_number} "
            f"{self.required_role} status={self.status}>"
        )

    def to_dto(self) -> ApprovalLevel:
        from approval_kernel.domain.workflow import (
            ApprovalLevel as ApprovalLevelDTO,
            LevelStatus,
        )

        return ApprovalLevelDTO(
            level_number=self.level_number,
            required_role=self.required_role,
            duration=timedelta(milliseconds=self.duration_ms),
            status=LevelStatus(self.status),
            assigned_to=self.assigned_to,
            requested_at=self.requested_at,
            deadline_at=self.deadline_at,
            decided_at=self.decided_at,
            decided_by=self.decided_by,
            notes=self.notes,
        )

    @classmethod
    def from_dto(cls, workflow_id: UUID, dto: ApprovalLevel) -> ApprovalLevelModel:
        return cls(workflow_id=workflow_id, **level_values(dto))


class ApprovalEscalationModel(Base):
    """Append-only escalation history row."""

    __tablename__ = "approval_escalations"

    __table_args__ = (
        UniqueConstraint(
            "workflow_id", "sequence",
            name="uq_approval_escalations_workflow_sequence",
        ),
    )

    workflow_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_workflows.workflow_id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    level_number: Mapped[int] = mapped_column(Integer, nullable=False)
    from_role: Mapped[str] = mapped_column(String(100), nullable=False)
    to_role: Mapped[str] = mapped_column(String(100), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    escalated_at: Mapped[datetime] = mapped_column(nullable=False)
    escalated_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    automatic: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return (
            f"<ApprovalEscalation {self.workflow_id}#{self.sequence} "
            f"{self.from_role}->{self.to_role}>"
        )

    def to_dto(self) -> EscalationRecord:
        from approval_kernel.domain.workflow import (
            EscalationRecord as EscalationRecordDTO,
        )

        return EscalationRecordDTO(
            level_number=self.level_number,
            from_role=self.from_role,
            to_role=self.to_role,
            reason=self.reason,
            escalated_at=self.escalated_at,
            escalated_by=self.escalated_by,
            automatic=self.automatic,
        )

    @classmethod
    def from_dto(
        cls,
        workflow_id: UUID,
        sequence: int,
        dto: EscalationRecord,
    ) -> ApprovalEscalationModel:
        return cls(
            workflow_id=workflow_id,
            sequence=sequence,
            level_number=dto.level_number,
            from_role=dto.from_role,
            to_role=dto.to_role,
            reason=dto.reason,
            escalated_at=dto.escalated_at,
            escalated_by=dto.escalated_by,
            automatic=dto.automatic,
        )


# =========================================================================
# Column value helpers (shared by from_dto and version-guarded UPDATEs)
# =========================================================================


def header_values(dto: ApprovalWorkflow) -> dict:
    """Column values of ``approval_workflows`` for a workflow snapshot."""
    return {
        "workflow_id": dto.workflow_id,
        "subject_id": dto.subject_id,
        "category": dto.category,
        "initiated_by": dto.initiated_by,
        "urgency_level": dto.urgency_level.value,
        "risk_score": float(dto.risk_score),
        "risk_bucket": dto.risk_bucket.value,
        "financial_impact": dto.financial_impact,
        "current_level_index": dto.current_level_index,
        "status": dto.status.value,
        "version": dto.version,
        "escalation_count": dto.escalation_count,
        "current_deadline_at": dto.current_level.deadline_at,
        "created_at": dto.created_at,
        "last_updated_at": dto.last_updated_at,
        "terminal_at": dto.terminal_at,
    }


def level_values(dto: ApprovalLevel) -> dict:
    """Column values of ``approval_levels`` for one level (without workflow_id)."""
    return {
        "level_number": dto.level_number,
        "required_role": dto.required_role,
        "duration_ms": dto.duration // timedelta(milliseconds=1),
        "status": dto.status.value,
        "assigned_to": dto.assigned_to,
        "requested_at": dto.requested_at,
        "deadline_at": dto.deadline_at,
        "decided_at": dto.decided_at,
        "decided_by": dto.decided_by,
        "notes": dto.notes,
    }
