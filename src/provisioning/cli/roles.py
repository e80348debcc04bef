"""
CLI: ``provisioning roles`` - reference roles and permissions.
"""

from __future__ import annotations

import typer

from provisioning.cli.utils import echo_json, open_store, output_mapping, output_rows
from provisioning.reference import seed_reference_data
from provisioning.reports import list_role_permissions

app = typer.Typer(no_args_is_help=True)


@app.command()
def seed(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Insert the standard roles, permissions and grants (idempotent)."""
    with open_store(database) as store, store.session() as session:
        summary = seed_reference_data(session)
    if json_out:
        echo_json(summary)
        return
    output_mapping(
        {
            "roles": ", ".join(sorted(summary.roles)),
            "permissions": ", ".join(sorted(summary.permissions)),
            "grants": summary.grants,
        },
        title="Reference Data",
    )


@app.command("list")
def list_roles(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List roles with the permissions they grant."""
    with open_store(database) as store, store.session() as session:
        rows = list_role_permissions(session)
    output_rows(rows, as_json=json_out, title="Role Permissions")
