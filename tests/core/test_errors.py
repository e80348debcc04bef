"""Tests for the provisioning error hierarchy."""

from __future__ import annotations

import pytest

from provisioning.core.errors import (
    ConfigError,
    ConflictError,
    ErrorCategory,
    ErrorContext,
    InvalidConfigError,
    MigrationError,
    ProvisioningError,
    TransactionError,
    TransactionTimeoutError,
    ValidationError,
    categorize_error,
    is_retryable,
)


class TestCategories:
    @pytest.mark.parametrize(
        ("error", "category", "retryable"),
        [
            (ValidationError("bad"), ErrorCategory.VALIDATION, False),
            (ConflictError("dup"), ErrorCategory.CONFLICT, False),
            (TransactionError("commit failed"), ErrorCategory.TRANSACTION, True),
            (TransactionTimeoutError("slow", timeout=1.0), ErrorCategory.TRANSACTION, True),
            (MigrationError("broken", migration="001_x.sql"), ErrorCategory.DATABASE, False),
            (ConfigError("missing"), ErrorCategory.CONFIG, False),
        ],
    )
    def test_defaults(self, error, category, retryable):
        assert error.category == category
        assert error.retryable is retryable
        assert is_retryable(error) is retryable
        assert categorize_error(error) == category

    def test_retryable_override(self):
        assert not TransactionError("x", retryable=False).retryable

    def test_timeout_is_transaction_error(self):
        assert isinstance(TransactionTimeoutError("slow"), TransactionError)

    def test_foreign_errors(self):
        assert is_retryable(ConnectionError())
        assert not is_retryable(KeyError())
        assert categorize_error(TimeoutError()) == ErrorCategory.TRANSACTION
        assert categorize_error(ValueError()) == ErrorCategory.VALIDATION
        assert categorize_error(RuntimeError()) == ErrorCategory.UNKNOWN


class TestContext:
    def test_with_context_sets_known_fields(self):
        err = ValidationError("bad").with_context(batch_id="b1", candidate_index=2, extra="x")
        assert err.context.batch_id == "b1"
        assert err.context.candidate_index == 2
        assert err.context.metadata == {"extra": "x"}

    def test_context_to_dict_skips_unset(self):
        assert ErrorContext(step="validate").to_dict() == {"step": "validate"}

    def test_to_dict(self):
        err = ValidationError("too short", field="username", value="al", constraint="min_length")
        err.with_context(username="al")
        data = err.to_dict()
        assert data["error_type"] == "ValidationError"
        assert data["category"] == "VALIDATION"
        assert data["field"] == "username"
        assert data["constraint"] == "min_length"
        assert data["context"]["username"] == "al"

    def test_conflict_fields_in_dict(self):
        data = ConflictError("dup", username="a", email="a@x.io", fields=["email"]).to_dict()
        assert data["fields"] == ["email"]

    def test_cause_is_chained(self):
        cause = RuntimeError("boom")
        err = TransactionError("commit failed", cause=cause)
        assert err.__cause__ is cause
        assert err.to_dict()["cause"] == "boom"

    def test_repr(self):
        assert repr(ConfigError("x")) == "ConfigError('x', category=CONFIG)"

    def test_invalid_config(self):
        err = InvalidConfigError("pool_size", -1)
        assert isinstance(err, ProvisioningError)
        assert "pool_size" in str(err)
