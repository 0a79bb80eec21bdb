"""Workflow Store: interface plus in-memory and SQL implementations."""

from approval_kernel.store.base import Mutation, WorkflowStore
from approval_kernel.store.memory import InMemoryWorkflowStore
from approval_kernel.store.sql import SqlWorkflowStore

__all__ = [
    "InMemoryWorkflowStore",
    "Mutation",
    "SqlWorkflowStore",
    "WorkflowStore",
]
