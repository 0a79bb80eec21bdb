"""
Typed Exception Hierarchy for the Approval Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Approval callers (the presentation layer, the timeout sweep, retry loops)
must react to failures by KIND, not by message text:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - RIGHT way:
    try:
        service.process_approval(workflow_id, "approve", actor, notes)
    except RoleMismatchError as e:
        api_response(code=e.code, required=e.required_role)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ApprovalKernelError (base)
    |
    +-- WorkflowError
    |   +-- WorkflowNotFoundError
    |   +-- WorkflowAlreadyExistsError
    |   +-- WorkflowStateError
    |       +-- WorkflowNotPendingError
    |       +-- AlreadyDecidedError
    |       +-- DeadlinePassedError
    |       +-- LevelNotOverdueError
    |       +-- CancellationNotAllowedError
    |
    +-- AuthorizationError
    |   +-- RoleMismatchError
    |   +-- NotAssignedApproverError
    |
    +-- ValidationError
    |
    +-- ConcurrencyError
    |   +-- VersionConflictError
    |   +-- ConflictError
    |
    +-- EscalationError
    |   +-- NoFurtherEscalationError
    |
    +-- PolicyError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Workflow        | WORKFLOW_NOT_FOUND          | Unknown workflow id
                | WORKFLOW_ALREADY_EXISTS     | Store create with a duplicate id
                | WORKFLOW_NOT_PENDING        | Workflow already terminal
                | ALREADY_DECIDED             | Current level no longer pending
                | LEVEL_DEADLINE_PASSED       | Decision after deadline (reject policy)
                | LEVEL_NOT_OVERDUE           | Timeout applied before the deadline
                | CANCELLATION_NOT_ALLOWED    | Cancel by non-initiator / after level 1
----------------|-----------------------------|-----------------------------------------
Authorization   | ROLE_MISMATCH               | Actor lacks the required role
                | NOT_ASSIGNED_APPROVER       | Level assigned to someone else
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Missing / too-short notes or reason
----------------|-----------------------------|-----------------------------------------
Concurrency     | VERSION_CONFLICT            | Stored version != expected version
                | CONFLICT                    | Retry budget exhausted
----------------|-----------------------------|-----------------------------------------
Escalation      | NO_FURTHER_ESCALATION       | Top of the escalation ladder
----------------|-----------------------------|-----------------------------------------
Policy          | POLICY_ERROR                | Malformed Chain Policy input

===============================================================================
HANDLING PATTERNS
===============================================================================

1. WorkflowStateError means "precondition no longer holds".  The timeout
   sweep treats it (and VersionConflictError) as a successful no-op.
2. VersionConflictError is retried by ApprovalService with a fresh read;
   when the budget runs out ConflictError is surfaced.
3. AuthorizationError, ValidationError, EscalationError and PolicyError
   are never retried.
"""


class ApprovalKernelError(Exception):
    """
    Base exception for all approval kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "APPROVAL_KERNEL_ERROR"


# Workflow-related exceptions


class WorkflowError(ApprovalKernelError):
    """Base exception for workflow lookup and state errors."""

    code: str = "WORKFLOW_ERROR"


class WorkflowNotFoundError(WorkflowError):
    """Workflow with given ID was not found."""

    code: str = "WORKFLOW_NOT_FOUND"

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow not found: {workflow_id}")


class WorkflowAlreadyExistsError(WorkflowError):
    """Workflow with given ID already exists in the store."""

    code: str = "WORKFLOW_ALREADY_EXISTS"

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow already exists: {workflow_id}")


class WorkflowStateError(WorkflowError):
    """The workflow or its current level is not in a decidable state."""

    code: str = "WORKFLOW_STATE_ERROR"


class WorkflowNotPendingError(WorkflowStateError):
    """Workflow has already reached a terminal status."""

    code: str = "WORKFLOW_NOT_PENDING"

    def __init__(self, workflow_id: str, status: str):
        self.workflow_id = workflow_id
        self.status = status
        super().__init__(
            f"Workflow {workflow_id} is not pending (status: {status})"
        )


class AlreadyDecidedError(WorkflowStateError):
    """The level addressed by the caller is no longer pending."""

    code: str = "ALREADY_DECIDED"

    def __init__(self, workflow_id: str, level_number: int, level_status: str):
        self.workflow_id = workflow_id
        self.level_number = level_number
        self.level_status = level_status
        super().__init__(
            f"Level {level_number} of workflow {workflow_id} "
            f"is already {level_status}"
        )


class DeadlinePassedError(WorkflowStateError):
    """
    Decision submitted after the current level's deadline.

    Raised only under the ``reject`` late-decision policy; the timeout
    sweep will expire or escalate the level.
    """

    code: str = "LEVEL_DEADLINE_PASSED"

    def __init__(self, workflow_id: str, level_number: int, deadline_at: str):
        self.workflow_id = workflow_id
        self.level_number = level_number
        self.deadline_at = deadline_at
        super().__init__(
            f"Level {level_number} of workflow {workflow_id} "
            f"passed its deadline at {deadline_at}"
        )


class LevelNotOverdueError(WorkflowStateError):
    """Timeout handling attempted on a level that is not yet overdue."""

    code: str = "LEVEL_NOT_OVERDUE"

    def __init__(self, workflow_id: str, level_number: int, deadline_at: str):
        self.workflow_id = workflow_id
        self.level_number = level_number
        self.deadline_at = deadline_at
        super().__init__(
            f"Level {level_number} of workflow {workflow_id} "
            f"is not overdue (deadline {deadline_at})"
        )


class CancellationNotAllowedError(WorkflowStateError):
    """Cancel requested by someone other than the initiator, or too late."""

    code: str = "CANCELLATION_NOT_ALLOWED"

    def __init__(self, workflow_id: str, reason: str):
        self.workflow_id = workflow_id
        self.reason = reason
        super().__init__(f"Cannot cancel workflow {workflow_id}: {reason}")


# Authorization exceptions


class AuthorizationError(ApprovalKernelError):
    """Base exception for actor authority failures."""

    code: str = "AUTHORIZATION_ERROR"


class RoleMismatchError(AuthorizationError):
    """Actor does not hold the role required by the current level."""

    code: str = "ROLE_MISMATCH"

    def __init__(self, workflow_id: str, required_role: str, actor_role: str):
        self.workflow_id = workflow_id
        self.required_role = required_role
        self.actor_role = actor_role
        super().__init__(
            f"Workflow {workflow_id} requires role '{required_role}', "
            f"actor has '{actor_role}'"
        )


class NotAssignedApproverError(AuthorizationError):
    """The current level is assigned to a specific approver and it is not the actor."""

    code: str = "NOT_ASSIGNED_APPROVER"

    def __init__(self, workflow_id: str, assigned_to: str, actor_id: str):
        self.workflow_id = workflow_id
        self.assigned_to = assigned_to
        self.actor_id = actor_id
        super().__init__(
            f"Workflow {workflow_id} current level is assigned to "
            f"{assigned_to}, not {actor_id}"
        )


# Validation exceptions


class ValidationError(ApprovalKernelError):
    """Command input failed validation before any mutation was attempted."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


# Concurrency exceptions


class ConcurrencyError(ApprovalKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class VersionConflictError(ConcurrencyError):
    """Optimistic version check failed; reload and retry."""

    code: str = "VERSION_CONFLICT"

    def __init__(self, workflow_id: str, expected_version: int, actual_version: int):
        self.workflow_id = workflow_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Version conflict on workflow {workflow_id}: "
            f"expected {expected_version}, found {actual_version}"
        )


class ConflictError(ConcurrencyError):
    """Version conflicts persisted past the retry budget."""

    code: str = "CONFLICT"

    def __init__(self, workflow_id: str, attempts: int):
        self.workflow_id = workflow_id
        self.attempts = attempts
        super().__init__(
            f"Workflow {workflow_id} kept changing; gave up after "
            f"{attempts} attempt(s)"
        )


# Escalation exceptions


class EscalationError(ApprovalKernelError):
    """Base exception for escalation errors."""

    code: str = "ESCALATION_ERROR"


class NoFurtherEscalationError(EscalationError):
    """No higher rung exists on the escalation ladder."""

    code: str = "NO_FURTHER_ESCALATION"

    def __init__(self, workflow_id: str, category: str, current_role: str):
        self.workflow_id = workflow_id
        self.category = category
        self.current_role = current_role
        super().__init__(
            f"Workflow {workflow_id} cannot escalate past '{current_role}' "
            f"on the '{category}' ladder"
        )


# Policy exceptions


class PolicyError(ApprovalKernelError):
    """Malformed input to the chain policy."""

    code: str = "POLICY_ERROR"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}")
