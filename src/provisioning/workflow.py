"""
Provisioning workflow - create accounts with their default role and a session.

One call provisions an ordered batch of candidates inside a single
transaction:

::

    IDLE ─► TRANSACTION_OPEN ─► ROLES_ENSURED ─► PER_CANDIDATE_LOOP ─┬─► COMMITTED
                                                                      └─► ROLLED_BACK

Per candidate: validate, insert the account (insert-if-absent), assign the
``user`` role, insert a session.  Any exception that leaves the loop rolls
back everything the call wrote; the only non-fatal outcome is a duplicate
username or email under ``ConflictPolicy.SKIP``.

Examples:
    >>> workflow = ProvisioningWorkflow(session_factory)
    >>> result = workflow.provision([AccountInput("alice", "alice@example.com")])
    >>> sorted(result.created)
    ['alice']

Tags:
    provisioning, workflow, transaction, accounts, sessions
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable, Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from sqlalchemy import or_, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from provisioning.core.dialect import dialect_of, insert_ignore
from provisioning.core.enums import ConflictPolicy, WorkflowState
from provisioning.core.errors import (
    ConflictError,
    ProvisioningError,
    TransactionError,
    TransactionTimeoutError,
)
from provisioning.core.logging import LogContext, get_logger
from provisioning.core.orm.tables import AccountRoleTable, AccountTable, SessionTable
from provisioning.reference import DEFAULT_ROLE, WORKFLOW_ROLES, ensure_roles
from provisioning.tokens import DEFAULT_SESSION_TTL, IssuedToken, TokenIssuer, issue_session_token
from provisioning.validation import AccountInput, coerce_candidates, validate_account

logger = get_logger(__name__)

_accounts = AccountTable.__table__
_account_roles = AccountRoleTable.__table__
_sessions = SessionTable.__table__


@dataclass
class ProvisionResult:
    """Outcome of a committed provisioning call.

    ``tokens`` holds the raw session secrets; they are not stored anywhere
    else and cannot be recovered later.
    """

    batch_id: str
    created: dict[str, int] = field(default_factory=dict)
    skipped: set[str] = field(default_factory=set)
    tokens: dict[int, IssuedToken] = field(default_factory=dict)

    @property
    def created_ids(self) -> set[int]:
        return set(self.created.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "created": dict(self.created),
            "skipped": sorted(self.skipped),
            "sessions": {
                str(account_id): {
                    "session_id": str(token.session_id),
                    "expires_at": token.expires_at.isoformat(),
                }
                for account_id, token in self.tokens.items()
            },
        }


class ProvisioningWorkflow:
    """Provision account batches against one store.

    Parameters
    ----------
    session_factory
        Callable returning a new ``Session``; one session is opened per call
        and never shared.
    conflict_policy
        What to do on a duplicate username or email.
    session_ttl
        Lifetime of the session created for each new account.
    timeout
        Upper bound in seconds for one call, checked before each candidate
        and, on PostgreSQL, enforced per statement.  ``None`` disables it.
    token_issuer
        Produces session ids and secrets; replaceable in tests.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        conflict_policy: ConflictPolicy | str = ConflictPolicy.SKIP,
        session_ttl: timedelta = DEFAULT_SESSION_TTL,
        timeout: float | None = None,
        token_issuer: TokenIssuer = issue_session_token,
    ) -> None:
        if session_ttl <= timedelta(0):
            raise ValueError("session_ttl must be positive")
        if timeout is not None and timeout < 0:
            raise ValueError("timeout must be >= 0")
        self._session_factory = session_factory
        self.conflict_policy = ConflictPolicy(conflict_policy)
        self.session_ttl = session_ttl
        self.timeout = timeout
        self._issue_token = token_issuer
        self.state = WorkflowState.IDLE

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def provision(self, candidates: Iterable[AccountInput | Mapping[str, Any]]) -> ProvisionResult:
        """Provision *candidates* in order, all-or-nothing.

        Raises ``ValidationError``, ``ConflictError`` (abort policy only) or
        ``TransactionError``; in every case nothing from this call is
        persisted.
        """
        batch = coerce_candidates(candidates)
        result = ProvisionResult(batch_id=uuid.uuid4().hex)
        deadline = None if self.timeout is None else time.monotonic() + self.timeout
        self.state = WorkflowState.IDLE

        with LogContext(batch_id=result.batch_id):
            logger.info(
                "provision.started",
                candidates=len(batch),
                policy=self.conflict_policy.value,
            )
            session = self._session_factory()
            try:
                self._run(session, batch, result, deadline)
            except BaseException as exc:
                self._rollback(session, exc)
                raise
            finally:
                session.close()

            logger.info(
                "provision.committed",
                created=len(result.created),
                skipped=len(result.skipped),
            )
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _run(
        self,
        session: Session,
        batch: list[AccountInput],
        result: ProvisionResult,
        deadline: float | None,
    ) -> None:
        with self._store_step("begin", result):
            session.begin()
            dialect = dialect_of(session)
            if dialect == "postgresql" and self.timeout is not None:
                timeout_ms = max(int(self.timeout * 1000), 1)
                session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))
        self.state = WorkflowState.TRANSACTION_OPEN

        with self._store_step("ensure_roles", result):
            role_ids = ensure_roles(session, WORKFLOW_ROLES)
        if DEFAULT_ROLE not in role_ids:
            raise TransactionError(
                f"default role {DEFAULT_ROLE!r} is missing after upsert"
            ).with_context(batch_id=result.batch_id, step="ensure_roles")
        self.state = WorkflowState.ROLES_ENSURED

        self.state = WorkflowState.PER_CANDIDATE_LOOP
        for index, candidate in enumerate(batch):
            self._check_deadline(deadline, index, candidate, result)
            try:
                validate_account(candidate)
            except ProvisioningError as exc:
                exc.with_context(
                    batch_id=result.batch_id,
                    step="validate",
                    candidate_index=index,
                    username=candidate.username,
                    email=candidate.email,
                )
                raise

            with self._store_step("insert_account", result, index, candidate):
                account_id = session.execute(
                    insert_ignore(dialect, _accounts)
                    .values(username=candidate.username, email=candidate.email)
                    .returning(_accounts.c.id)
                ).scalar_one_or_none()

            if account_id is None:
                self._handle_conflict(session, index, candidate, result)
                continue

            with self._store_step("assign_role", result, index, candidate):
                session.execute(
                    insert_ignore(dialect, _account_roles).values(
                        account_id=account_id, role_id=role_ids[DEFAULT_ROLE]
                    )
                )

            token = self._issue_token(self.session_ttl)
            with self._store_step("create_session", result, index, candidate):
                session.execute(
                    insert_ignore(dialect, _sessions).values(
                        id=token.session_id,
                        account_id=account_id,
                        token_hash=token.token_hash,
                        expires_at=token.expires_at,
                    )
                )

            result.created[candidate.username] = account_id
            result.tokens[account_id] = token
            logger.info("account.created", username=candidate.username, account_id=account_id)

        self._check_deadline(deadline, len(batch), None, result)
        with self._store_step("commit", result):
            session.commit()
        self.state = WorkflowState.COMMITTED

    def _handle_conflict(
        self,
        session: Session,
        index: int,
        candidate: AccountInput,
        result: ProvisionResult,
    ) -> None:
        if self.conflict_policy is ConflictPolicy.SKIP:
            result.skipped.add(candidate.username)
            logger.info("account.skipped", username=candidate.username, reason="exists")
            return

        with self._store_step("insert_account", result, index, candidate):
            fields = self._conflicting_fields(session, candidate)
        raise ConflictError(
            f"account {candidate.username!r} conflicts with an existing account "
            f"on {', '.join(fields) or 'a unique key'}",
            username=candidate.username,
            email=candidate.email,
            fields=fields,
        ).with_context(
            batch_id=result.batch_id,
            step="insert_account",
            candidate_index=index,
            username=candidate.username,
            email=candidate.email,
        )

    @staticmethod
    def _conflicting_fields(session: Session, candidate: AccountInput) -> list[str]:
        rows = session.execute(
            select(_accounts.c.username, _accounts.c.email).where(
                or_(
                    _accounts.c.username == candidate.username,
                    _accounts.c.email == candidate.email,
                )
            )
        ).all()
        fields = []
        if any(row.username == candidate.username for row in rows):
            fields.append("username")
        if any(row.email == candidate.email for row in rows):
            fields.append("email")
        return fields

    def _check_deadline(
        self,
        deadline: float | None,
        index: int,
        candidate: AccountInput | None,
        result: ProvisionResult,
    ) -> None:
        if deadline is None or time.monotonic() < deadline:
            return
        error = TransactionTimeoutError(
            f"provisioning exceeded its {self.timeout}s timeout "
            f"after {index} candidate(s)",
            timeout=self.timeout,
        )
        error.with_context(batch_id=result.batch_id, step="deadline", candidate_index=index)
        if candidate is not None:
            error.with_context(username=candidate.username, email=candidate.email)
        raise error

    @contextmanager
    def _store_step(
        self,
        step: str,
        result: ProvisionResult,
        index: int | None = None,
        candidate: AccountInput | None = None,
    ) -> Iterator[None]:
        """Translate store exceptions raised in *step* into ``TransactionError``."""
        try:
            yield
        except SQLAlchemyError as exc:
            detail = getattr(exc, "orig", None) or exc
            error = TransactionError(f"{step} failed: {detail}", cause=exc)
            error.with_context(batch_id=result.batch_id, step=step, candidate_index=index)
            if candidate is not None:
                error.with_context(username=candidate.username, email=candidate.email)
            raise error from exc

    def _rollback(self, session: Session, exc: BaseException) -> None:
        try:
            session.rollback()
        except SQLAlchemyError as rollback_exc:
            # The triggering exception propagates; close() discards the connection.
            logger.error("provision.rollback_failed", error=str(rollback_exc))
        self.state = WorkflowState.ROLLED_BACK
        if isinstance(exc, ProvisioningError):
            logger.warning("provision.rolled_back", **exc.to_dict())
        else:
            logger.warning("provision.rolled_back", error=repr(exc))


def provision_accounts(
    session_factory: Callable[[], Session],
    candidates: Iterable[AccountInput | Mapping[str, Any]],
    **options: Any,
) -> ProvisionResult:
    """One-shot form of ``ProvisioningWorkflow(session_factory, **options).provision(candidates)``."""
    return ProvisioningWorkflow(session_factory, **options).provision(candidates)
