"""
CLI: ``provisioning accounts`` - provision and list accounts.
"""

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

import typer

from provisioning.cli.utils import console, echo_json, fail, open_store, output_rows
from provisioning.core.enums import ConflictPolicy
from provisioning.core.errors import ValidationError
from provisioning.core.settings import get_settings
from provisioning.reports import list_account_roles
from provisioning.validation import AccountInput, coerce_candidates
from provisioning.workflow import ProvisioningWorkflow

app = typer.Typer(no_args_is_help=True)


def _load_candidates(specs: list[str], file: Path | None) -> list[AccountInput]:
    candidates = [AccountInput.parse(spec) for spec in specs]
    if file is not None:
        try:
            data = json.loads(file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValidationError(f"{file} is not valid JSON: {exc}", field="file") from exc
        if not isinstance(data, list):
            raise ValidationError(
                f"{file} must contain a JSON array of accounts", field="file", constraint="type"
            )
        candidates.extend(coerce_candidates(data))
    return candidates


@app.command()
def provision(
    account: list[str] | None = typer.Option(
        None, "--account", "-a", help="Candidate as username:email (repeatable)"
    ),
    file: Path | None = typer.Option(
        None, "--file", "-f", exists=True, dir_okay=False, help="JSON array of {username, email}"
    ),
    policy: ConflictPolicy | None = typer.Option(
        None, "--policy", case_sensitive=False, help="skip or abort on duplicates"
    ),
    ttl_hours: float | None = typer.Option(None, "--ttl-hours", min=0.001, help="Session lifetime"),
    timeout: float | None = typer.Option(None, "--timeout", min=0, help="Timeout in seconds"),
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Create accounts with the ``user`` role and a fresh session, all-or-nothing."""
    settings = get_settings()
    try:
        candidates = _load_candidates(account or [], file)
    except ValidationError as exc:
        fail(exc)
    if not candidates:
        console.print("[dim]No candidates given.[/dim]")
        return

    with open_store(database) as store:
        workflow = ProvisioningWorkflow(
            store.session_factory,
            conflict_policy=policy or settings.conflict_policy,
            session_ttl=timedelta(hours=ttl_hours) if ttl_hours else settings.session_ttl,
            timeout=timeout if timeout is not None else settings.transaction_timeout,
        )
        result = workflow.provision(candidates)

    rows = []
    for username, account_id in result.created.items():
        token = result.tokens[account_id]
        rows.append(
            {
                "username": username,
                "account_id": account_id,
                "session_id": str(token.session_id),
                "expires_at": token.expires_at.isoformat(),
                "token": token.secret,
            }
        )

    if json_out:
        payload = result.to_dict()
        payload["created"] = rows
        echo_json(payload)
        return

    output_rows(rows, title="Provisioned Accounts")
    if result.skipped:
        console.print(f"[yellow]skipped[/yellow] {', '.join(sorted(result.skipped))}")
    console.print("[dim]Tokens are shown once and are not stored.[/dim]")


@app.command("list")
def list_accounts(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List accounts with their roles."""
    with open_store(database) as store, store.session() as session:
        rows = list_account_roles(session)
    output_rows(rows, as_json=json_out, title="Accounts")
