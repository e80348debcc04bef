"""
Structured error types for account provisioning.

Every failure that can leave the provisioning workflow is one of three
kinds: the caller's input was malformed, the input collided with rows that
already exist, or the store itself failed.  Each kind is a typed error that
carries a category, a retry hint, structured context and the chained cause.

Manifesto:
    - **Typed Error Hierarchy:** One class per disposition the caller must handle
    - **Explicit Retry Semantics:** Each error knows if it's retryable
    - **Rich Context:** Errors carry the failing candidate and workflow step
    - **Error Chaining:** Driver exceptions are preserved as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                    ProvisioningError                         │
        │  (category, retryable, context, cause)                       │
        ├─────────────────────────────────────────────────────────────┤
        │                                                              │
        │  ValidationError   ConflictError     TransactionError        │
        │  (VALIDATION)      (CONFLICT)        (TRANSACTION, retry)    │
        │                                            │                 │
        │                                   TransactionTimeoutError    │
        │                                                              │
        │  ConfigError       MigrationError                            │
        │  (CONFIG)          (DATABASE)                                │
        │       │                                                      │
        │  InvalidConfigError                                          │
        └─────────────────────────────────────────────────────────────┘

Examples:
    >>> error = ValidationError("username too short", field="username", value="al")
    >>> error.retryable
    False
    >>> error.with_context(candidate_index=0, username="al").context.username
    'al'

    >>> TransactionError("commit failed").retryable
    True

Guardrails:
    ❌ DON'T: Raise bare ``Exception`` from the workflow
    ✅ DO: Wrap ``SQLAlchemyError`` in ``TransactionError`` with ``cause=``

    ❌ DON'T: Mark validation or conflict errors retryable
    ✅ DO: Retry a whole call only after a ``TransactionError``

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context,
    provisioning

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    VALIDATION = "VALIDATION"  # Malformed candidate fields
    CONFLICT = "CONFLICT"  # Uniqueness violations
    TRANSACTION = "TRANSACTION"  # Begin/commit/statement faults, timeouts
    DATABASE = "DATABASE"  # Schema and migration problems
    CONFIG = "CONFIG"  # Missing or invalid settings
    INTERNAL = "INTERNAL"  # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Only fields that are set are serialized by ``to_dict()``; anything that
    has no dedicated field goes into ``metadata``.

    Attributes:
        batch_id: Identifier of the provisioning call
        step: Workflow step that failed (``begin``, ``ensure_roles``, ...)
        candidate_index: Position of the failing candidate in the batch
        username: Username of the failing candidate
        email: Email of the failing candidate
        metadata: Additional key-value pairs
    """

    batch_id: str | None = None
    step: str | None = None
    candidate_index: int | None = None
    username: str | None = None
    email: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["batch_id", "step", "candidate_index", "username", "email"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class ProvisioningError(Exception):
    """
    Base exception for all provisioning errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can
    be overridden per instance.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> ProvisioningError:
        """
        Add context to this error (fluent API).

        Usage:
            raise ValidationError("bad email").with_context(
                candidate_index=3, username="carol"
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# CALLER ERRORS (never retried automatically)
# =============================================================================


class ValidationError(ProvisioningError):
    """
    A candidate failed field validation.

    Never retryable - the input must be fixed.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value
        self.constraint = constraint

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        if self.constraint:
            result["constraint"] = self.constraint
        return result


class ConflictError(ProvisioningError):
    """Insert would duplicate a unique username or email."""

    default_category = ErrorCategory.CONFLICT
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        username: str | None = None,
        email: str | None = None,
        fields: list[str] | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.username = username
        self.email = email
        self.fields = fields or []

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.fields:
            result["fields"] = list(self.fields)
        return result


# =============================================================================
# INFRASTRUCTURE ERRORS
# =============================================================================


class TransactionError(ProvisioningError):
    """
    The store could not begin, execute or commit.

    Always fatal to the current call and always followed by a full
    rollback, so retrying the whole call from scratch is safe.
    """

    default_category = ErrorCategory.TRANSACTION
    default_retryable = True


class TransactionTimeoutError(TransactionError):
    """The call ran past its deadline."""

    def __init__(self, message: str, *, timeout: float | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.timeout = timeout


class MigrationError(ProvisioningError):
    """A schema migration failed to apply."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False

    def __init__(self, message: str, *, migration: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.migration = migration


class ConfigError(ProvisioningError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None, **kwargs: Any):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}", **kwargs)


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, ProvisioningError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, ProvisioningError):
        return error.category
    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorCategory.TRANSACTION
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "ProvisioningError",
    "ValidationError",
    "ConflictError",
    "TransactionError",
    "TransactionTimeoutError",
    "MigrationError",
    "ConfigError",
    "InvalidConfigError",
    "is_retryable",
    "categorize_error",
]
