"""
Core primitives shared by the workflow, the CLI and the tests.

Modules
-------
errors      Typed error hierarchy (ValidationError, ConflictError, TransactionError)
logging     structlog configuration and LogContext
settings    ProvisioningSettings (pydantic-settings)
enums       ConflictPolicy, WorkflowState
dialect     Dialect-aware insert-if-absent
timestamps  UTC helpers
orm         SQLAlchemy models, engine and session factory
migrations  Per-dialect SQL migration runner
"""
