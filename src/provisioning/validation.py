"""
Candidate account input and its validation rules.

Rules run in a fixed order and the first failing rule wins:

1. username shorter than 3 characters
2. username longer than 50 characters
3. email does not look like ``local@domain.tld``

Lengths are counted in characters, not bytes.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from provisioning.core.errors import ValidationError

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 50

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


@dataclass(frozen=True)
class AccountInput:
    """A candidate account: the only two fields a caller supplies."""

    username: str
    email: str

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> AccountInput:
        """Build from a ``{"username": ..., "email": ...}`` mapping.

        Both values must be strings; surrounding whitespace is stripped.
        """
        values = {}
        for key in ("username", "email"):
            if key not in data:
                raise ValidationError(
                    f"candidate is missing field {key!r}",
                    field=key,
                    constraint="required",
                )
            value = data[key]
            if not isinstance(value, str):
                raise ValidationError(
                    f"{key} must be a string, got {type(value).__name__}",
                    field=key,
                    value=value,
                    constraint="type",
                )
            values[key] = value.strip()
        return cls(**values)

    @classmethod
    def parse(cls, spec: str) -> AccountInput:
        """Parse the CLI form ``username:email``."""
        username, sep, email = spec.partition(":")
        if not sep:
            raise ValidationError(
                f"expected 'username:email', got {spec!r}",
                field="candidate",
                value=spec,
                constraint="format",
            )
        return cls(username=username.strip(), email=email.strip())


def validate_account(candidate: AccountInput) -> None:
    """Raise ``ValidationError`` for the first rule *candidate* breaks."""
    username = candidate.username
    if len(username) < USERNAME_MIN_LENGTH:
        raise ValidationError(
            f"username {username!r} must be at least {USERNAME_MIN_LENGTH} characters",
            field="username",
            value=username,
            constraint="min_length",
        )
    if len(username) > USERNAME_MAX_LENGTH:
        raise ValidationError(
            f"username must be at most {USERNAME_MAX_LENGTH} characters "
            f"(got {len(username)})",
            field="username",
            value=username,
            constraint="max_length",
        )
    if not EMAIL_PATTERN.match(candidate.email):
        raise ValidationError(
            f"invalid email format: {candidate.email!r}",
            field="email",
            value=candidate.email,
            constraint="pattern",
        )


def is_valid_email(email: str) -> bool:
    return EMAIL_PATTERN.match(email) is not None


def coerce_candidates(candidates: Iterable[AccountInput | Mapping[str, Any]]) -> list[AccountInput]:
    """Accept ``AccountInput`` objects or plain mappings, preserving order."""
    batch: list[AccountInput] = []
    for index, candidate in enumerate(candidates):
        if isinstance(candidate, AccountInput):
            batch.append(candidate)
        elif isinstance(candidate, Mapping):
            batch.append(AccountInput.from_mapping(candidate))
        else:
            raise ValidationError(
                f"candidate {index} must be an object with username and email, "
                f"got {type(candidate).__name__}",
                field="candidate",
                value=candidate,
                constraint="type",
            )
    return batch
