"""SQLAlchemy ORM models for the approval engine."""

from approval_kernel.models.workflow import (
    ApprovalEscalationModel,
    ApprovalLevelModel,
    ApprovalWorkflowModel,
)

__all__ = [
    "ApprovalEscalationModel",
    "ApprovalLevelModel",
    "ApprovalWorkflowModel",
]
