"""
Account provisioning on a relational store.

Validates candidate accounts and, inside one transaction per batch, creates
the accounts, assigns their default role and issues their first session.

Quick start::

    from provisioning import AccountInput, ProvisioningWorkflow, Store

    store = Store.from_url("sqlite:///provisioning.db", migrate=True)
    workflow = ProvisioningWorkflow(store.session_factory)
    result = workflow.provision([AccountInput("alice", "alice@example.com")])
"""

__version__ = "0.1.0"

from provisioning.core.enums import ConflictPolicy, WorkflowState
from provisioning.core.errors import (
    ConflictError,
    ProvisioningError,
    TransactionError,
    TransactionTimeoutError,
    ValidationError,
)
from provisioning.store import ConnectionInfo, Store
from provisioning.validation import AccountInput, validate_account
from provisioning.workflow import ProvisioningWorkflow, ProvisionResult, provision_accounts

__all__ = [
    "__version__",
    "AccountInput",
    "validate_account",
    "ConflictPolicy",
    "WorkflowState",
    "ProvisioningWorkflow",
    "ProvisionResult",
    "provision_accounts",
    "Store",
    "ConnectionInfo",
    "ProvisioningError",
    "ValidationError",
    "ConflictError",
    "TransactionError",
    "TransactionTimeoutError",
]
