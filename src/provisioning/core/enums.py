"""
Shared enums for the provisioning workflow.

STDLIB ONLY - NO PYDANTIC.
"""

from enum import Enum


class ConflictPolicy(str, Enum):
    """
    What the workflow does when an account insert hits a unique username or email.

    One policy applies to a whole call; the two are never mixed.
    """

    # Leave the existing row alone, record the username as skipped, continue.
    SKIP = "skip"
    # Raise ConflictError and roll the whole batch back.
    ABORT = "abort"


class WorkflowState(str, Enum):
    """Last state reached by a provisioning call."""

    IDLE = "idle"
    TRANSACTION_OPEN = "transaction_open"
    ROLES_ENSURED = "roles_ensured"
    PER_CANDIDATE_LOOP = "per_candidate_loop"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkflowState.COMMITTED, WorkflowState.ROLLED_BACK)
