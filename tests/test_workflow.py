"""Tests for the provisioning workflow (transaction, conflicts, rollback)."""

from __future__ import annotations

import threading
import uuid
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy import select

from provisioning.core.enums import ConflictPolicy, WorkflowState
from provisioning.core.errors import (
    ConflictError,
    ProvisioningError,
    TransactionError,
    TransactionTimeoutError,
    ValidationError,
)
from provisioning.core.orm.tables import RoleTable, SessionTable
from provisioning.core.timestamps import naive_utc_now
from provisioning.reports import count_rows, list_account_roles, list_sessions
from provisioning.tokens import IssuedToken, hash_token, verify_token
from provisioning.validation import AccountInput
from provisioning.workflow import ProvisioningWorkflow, ProvisionResult, provision_accounts

ALICE = AccountInput("alice", "alice@example.com")
BOB = AccountInput("bob", "bob@example.com")
CAROL = AccountInput("carol", "carol@example.com")


def _counts(store) -> dict[str, int]:
    with store.session() as session:
        return count_rows(session)


def _assert_nothing_provisioned(store) -> None:
    counts = _counts(store)
    assert counts["accounts"] == 0
    assert counts["account_roles"] == 0
    assert counts["sessions"] == 0


# ── Happy path ────────────────────────────────────────────────────────


class TestProvision:
    def test_creates_accounts_roles_and_sessions(self, store, session_factory):
        before = naive_utc_now()
        result = ProvisioningWorkflow(session_factory).provision([ALICE, BOB])

        assert set(result.created) == {"alice", "bob"}
        assert result.skipped == set()
        assert len(result.created_ids) == 2

        with store.session() as session:
            pairs = [(r.username, r.role) for r in list_account_roles(session)]
            sessions = list_sessions(session)
        assert pairs == [("alice", "user"), ("bob", "user")]

        assert sorted(s.username for s in sessions) == ["alice", "bob"]
        expected = before + timedelta(hours=24)
        for row in sessions:
            assert abs((row.expires_at - expected).total_seconds()) < 5

    def test_each_account_gets_a_distinct_session(self, store, session_factory):
        result = ProvisioningWorkflow(session_factory).provision([ALICE, BOB])
        session_ids = {token.session_id for token in result.tokens.values()}
        assert len(session_ids) == 2
        assert set(result.tokens) == result.created_ids

    def test_stored_hash_matches_returned_secret(self, store, session_factory):
        result = ProvisioningWorkflow(session_factory).provision([ALICE])
        account_id = result.created["alice"]
        token = result.tokens[account_id]

        with store.session() as session:
            stored = session.scalar(
                select(SessionTable.token_hash).where(SessionTable.account_id == account_id)
            )
        assert stored != token.secret
        assert stored.startswith("sha256:")
        assert verify_token(token.secret, stored)

    def test_empty_batch_still_ensures_roles(self, store, session_factory):
        result = ProvisioningWorkflow(session_factory).provision([])
        assert result.created == {}

        with store.session() as session:
            names = set(session.scalars(select(RoleTable.name)))
        assert {"user", "admin"} <= names

    def test_accepts_plain_mappings(self, session_factory):
        result = ProvisioningWorkflow(session_factory).provision(
            [{"username": "dave", "email": "dave@example.com"}]
        )
        assert list(result.created) == ["dave"]

    def test_custom_ttl(self, store, session_factory):
        before = naive_utc_now()
        ProvisioningWorkflow(session_factory, session_ttl=timedelta(hours=1)).provision([ALICE])
        with store.session() as session:
            (row,) = list_sessions(session)
        assert abs((row.expires_at - (before + timedelta(hours=1))).total_seconds()) < 5

    def test_custom_token_issuer(self, store, session_factory):
        fixed_id = uuid.UUID("00000000-0000-4000-8000-000000000001")

        def issuer(ttl: timedelta) -> IssuedToken:
            return IssuedToken(
                session_id=fixed_id,
                secret="s3cret",
                token_hash=hash_token("s3cret"),
                expires_at=naive_utc_now() + ttl,
            )

        ProvisioningWorkflow(session_factory, token_issuer=issuer).provision([ALICE])
        with store.session() as session:
            (row,) = list_sessions(session)
        assert row.session_id == fixed_id

    def test_state_is_committed_after_success(self, session_factory):
        workflow = ProvisioningWorkflow(session_factory)
        assert workflow.state is WorkflowState.IDLE
        workflow.provision([ALICE])
        assert workflow.state is WorkflowState.COMMITTED
        assert workflow.state.is_terminal

    def test_convenience_function(self, session_factory):
        result = provision_accounts(session_factory, [ALICE], conflict_policy="skip")
        assert isinstance(result, ProvisionResult)
        assert "alice" in result.created

    def test_to_dict_omits_secrets(self, session_factory):
        result = ProvisioningWorkflow(session_factory).provision([ALICE])
        payload = result.to_dict()
        token = result.tokens[result.created["alice"]]
        assert payload["created"] == {"alice": result.created["alice"]}
        assert token.secret not in str(payload)


# ── Conflicts ─────────────────────────────────────────────────────────


class TestConflicts:
    def test_second_run_skips_everything(self, store, session_factory):
        workflow = ProvisioningWorkflow(session_factory)
        workflow.provision([ALICE, BOB])
        counts = _counts(store)

        result = workflow.provision([ALICE, BOB])
        assert result.created == {}
        assert result.skipped == {"alice", "bob"}
        assert _counts(store) == counts

    def test_skip_continues_with_remaining_candidates(self, store, session_factory):
        workflow = ProvisioningWorkflow(session_factory)
        workflow.provision([ALICE])

        result = workflow.provision([ALICE, CAROL])
        assert result.skipped == {"alice"}
        assert list(result.created) == ["carol"]
        assert _counts(store)["sessions"] == 2

    def test_duplicate_email_with_new_username_is_skipped(self, store, session_factory):
        workflow = ProvisioningWorkflow(session_factory)
        workflow.provision([ALICE])

        result = workflow.provision([AccountInput("alicia", "alice@example.com")])
        assert result.skipped == {"alicia"}
        assert _counts(store)["accounts"] == 1

    def test_duplicate_within_one_batch(self, store, session_factory):
        result = ProvisioningWorkflow(session_factory).provision([ALICE, ALICE])
        assert list(result.created) == ["alice"]
        assert result.skipped == {"alice"}
        assert _counts(store)["sessions"] == 1

    def test_abort_policy_rolls_back_whole_batch(self, store, session_factory):
        ProvisioningWorkflow(session_factory).provision([ALICE])
        before = _counts(store)

        workflow = ProvisioningWorkflow(session_factory, conflict_policy=ConflictPolicy.ABORT)
        with pytest.raises(ConflictError) as exc_info:
            workflow.provision([CAROL, AccountInput("alicia", "alice@example.com")])

        assert exc_info.value.fields == ["email"]
        assert exc_info.value.context.candidate_index == 1
        assert not exc_info.value.retryable
        assert workflow.state is WorkflowState.ROLLED_BACK
        assert _counts(store) == before

    def test_abort_policy_accepts_string(self, session_factory):
        ProvisioningWorkflow(session_factory).provision([ALICE])
        with pytest.raises(ConflictError) as exc_info:
            provision_accounts(session_factory, [ALICE], conflict_policy="abort")
        assert exc_info.value.fields == ["username", "email"]


# ── Rollback ──────────────────────────────────────────────────────────


class TestRollback:
    def test_invalid_candidate_rolls_back_earlier_ones(self, store, session_factory):
        workflow = ProvisioningWorkflow(session_factory)
        with pytest.raises(ValidationError) as exc_info:
            workflow.provision([ALICE, AccountInput("al", "al@example.com")])

        err = exc_info.value
        assert err.field == "username"
        assert err.constraint == "min_length"
        assert err.context.candidate_index == 1
        assert err.context.step == "validate"
        assert err.context.batch_id
        assert workflow.state is WorkflowState.ROLLED_BACK
        _assert_nothing_provisioned(store)

    def test_invalid_email_rolls_back(self, store, session_factory):
        with pytest.raises(ValidationError, match="invalid email format"):
            ProvisioningWorkflow(session_factory).provision([ALICE, AccountInput("bob", "bob")])
        _assert_nothing_provisioned(store)

    def test_store_fault_rolls_back_everything(
        self, store, session_factory, fail_session_insert_for
    ):
        fail_session_insert_for("bob")
        workflow = ProvisioningWorkflow(session_factory)

        with pytest.raises(TransactionError) as exc_info:
            workflow.provision([ALICE, BOB])

        err = exc_info.value
        assert err.retryable
        assert err.context.step == "create_session"
        assert err.context.username == "bob"
        assert "session store fault" in err.message
        assert workflow.state is WorkflowState.ROLLED_BACK
        _assert_nothing_provisioned(store)
        assert _counts(store)["roles"] == 0

    def test_store_usable_after_fault(self, engine, store, session_factory, fail_session_insert_for):
        fail_session_insert_for("bob")
        with pytest.raises(TransactionError):
            ProvisioningWorkflow(session_factory).provision([ALICE, BOB])

        with engine.begin() as conn:
            conn.exec_driver_sql("DROP TRIGGER fail_session_insert")

        result = ProvisioningWorkflow(session_factory).provision([ALICE, BOB])
        assert set(result.created) == {"alice", "bob"}

    def test_timeout_rolls_back(self, store, session_factory):
        workflow = ProvisioningWorkflow(session_factory, timeout=0)
        with pytest.raises(TransactionTimeoutError) as exc_info:
            workflow.provision([ALICE, BOB])

        assert exc_info.value.timeout == 0
        assert isinstance(exc_info.value, TransactionError)
        assert workflow.state is WorkflowState.ROLLED_BACK
        _assert_nothing_provisioned(store)

    def test_generous_timeout_does_not_fire(self, session_factory):
        result = ProvisioningWorkflow(session_factory, timeout=60).provision([ALICE])
        assert "alice" in result.created

    def test_non_string_mapping_value(self, store, session_factory):
        with pytest.raises(ValidationError) as exc_info:
            ProvisioningWorkflow(session_factory).provision(
                [{"username": None, "email": "n@example.com"}]
            )
        assert exc_info.value.constraint == "type"
        _assert_nothing_provisioned(store)

    def test_missing_mapping_field(self, store, session_factory):
        with pytest.raises(ValidationError, match="missing field 'email'"):
            ProvisioningWorkflow(session_factory).provision([{"username": "erin"}])
        _assert_nothing_provisioned(store)


# ── Construction ──────────────────────────────────────────────────────


class TestConstruction:
    def test_rejects_non_positive_ttl(self, session_factory):
        with pytest.raises(ValueError, match="session_ttl"):
            ProvisioningWorkflow(session_factory, session_ttl=timedelta(0))

    def test_rejects_negative_timeout(self, session_factory):
        with pytest.raises(ValueError, match="timeout"):
            ProvisioningWorkflow(session_factory, timeout=-1)

    def test_rejects_unknown_policy(self, session_factory):
        with pytest.raises(ValueError):
            ProvisioningWorkflow(session_factory, conflict_policy="merge")


# ── Concurrency ───────────────────────────────────────────────────────


class TestConcurrency:
    def test_concurrent_calls_create_one_account(self, store, session_factory):
        workers = 4
        barrier = threading.Barrier(workers)
        outcomes: list[tuple] = []

        def provision_alice() -> None:
            barrier.wait()
            try:
                result = ProvisioningWorkflow(session_factory).provision([ALICE])
            except ProvisioningError as exc:
                outcomes.append(("error", type(exc).__name__))
            else:
                outcomes.append(("ok", sorted(result.created), sorted(result.skipped)))

        threads = [threading.Thread(target=provision_alice) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert len(outcomes) == workers
        assert outcomes.count(("ok", ["alice"], [])) == 1
        assert outcomes.count(("ok", [], ["alice"])) == workers - 1
        counts = _counts(store)
        assert counts["accounts"] == 1
        assert counts["sessions"] == 1


# ── PostgreSQL statement timeout ──────────────────────────────────────


class TestStatementTimeout:
    """The timeout is pushed down to PostgreSQL before any other statement."""

    def _run(self, monkeypatch, timeout):
        session = MagicMock()
        monkeypatch.setattr("provisioning.workflow.dialect_of", lambda _session: "postgresql")
        # No roles back: the call stops right after the transaction opens.
        monkeypatch.setattr("provisioning.workflow.ensure_roles", lambda _session, _names: {})
        with pytest.raises(TransactionError, match="default role"):
            ProvisioningWorkflow(lambda: session, timeout=timeout).provision([ALICE])
        return session

    def test_set_local_statement_timeout(self, monkeypatch):
        session = self._run(monkeypatch, timeout=2.5)
        statements = [str(c.args[0]) for c in session.execute.call_args_list]
        assert statements == ["SET LOCAL statement_timeout = 2500"]
        session.rollback.assert_called_once()
        session.close.assert_called_once()

    def test_sub_millisecond_timeout_rounds_up(self, monkeypatch):
        session = self._run(monkeypatch, timeout=0.0001)
        statements = [str(c.args[0]) for c in session.execute.call_args_list]
        assert statements == ["SET LOCAL statement_timeout = 1"]

    def test_no_timeout_no_statement(self, monkeypatch):
        session = self._run(monkeypatch, timeout=None)
        session.execute.assert_not_called()
