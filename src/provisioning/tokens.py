"""
Session token issuance and verification.

A session has two random values: its primary key (a UUID, safe to show in
listings) and a secret token handed to the account holder.  Only
``sha256:<hex digest>`` of the secret is persisted, so a leaked
``sessions`` table does not yield usable credentials.

Examples:
    >>> token = issue_session_token(timedelta(hours=24))
    >>> token.token_hash.startswith("sha256:")
    True
    >>> verify_token(token.secret, token.token_hash)
    True

Tags:
    sessions, tokens, hashing, security, provisioning
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from provisioning.core.timestamps import naive_utc_now

TOKEN_HASH_PREFIX = "sha256:"
DEFAULT_SESSION_TTL = timedelta(hours=24)

# 32 random bytes -> 43 URL-safe characters
_SECRET_BYTES = 32


def hash_token(secret: str) -> str:
    """One-way hash of a session secret in its stored form."""
    digest = hashlib.sha256(secret.encode("utf-8")).hexdigest()
    return f"{TOKEN_HASH_PREFIX}{digest}"


def verify_token(secret: str, token_hash: str) -> bool:
    """Constant-time check of *secret* against a stored hash."""
    return hmac.compare_digest(hash_token(secret), token_hash)


@dataclass(frozen=True)
class IssuedToken:
    """A freshly issued session: the secret exists only in this object."""

    session_id: uuid.UUID
    secret: str = field(repr=False)
    token_hash: str
    expires_at: datetime


TokenIssuer = Callable[[timedelta], IssuedToken]


def issue_session_token(
    ttl: timedelta = DEFAULT_SESSION_TTL,
    *,
    now: datetime | None = None,
) -> IssuedToken:
    """Generate a session id, a secret and its hash, expiring *ttl* from now."""
    issued_at = now or naive_utc_now()
    secret = secrets.token_urlsafe(_SECRET_BYTES)
    return IssuedToken(
        session_id=uuid.uuid4(),
        secret=secret,
        token_hash=hash_token(secret),
        expires_at=issued_at + ttl,
    )
