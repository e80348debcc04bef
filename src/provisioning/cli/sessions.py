"""
CLI: ``provisioning sessions`` - inspect issued sessions.
"""

from __future__ import annotations

import typer

from provisioning.cli.utils import open_store, output_rows
from provisioning.reports import list_sessions

app = typer.Typer(no_args_is_help=True)


@app.command("list")
def list_cmd(
    include_expired: bool = typer.Option(False, "--all", help="Include expired sessions"),
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """List sessions and their owners (active only unless ``--all``)."""
    with open_store(database) as store, store.session() as session:
        rows = list_sessions(session, active_only=not include_expired)
    output_rows(rows, as_json=json_out, title="Sessions")
