"""
CLI: ``provisioning db`` - schema and connectivity commands.
"""

from __future__ import annotations

from dataclasses import asdict

import typer

from provisioning.cli.utils import console, echo_json, open_store, output_mapping, output_rows
from provisioning.reports import count_rows

app = typer.Typer(no_args_is_help=True)


@app.command()
def migrate(
    database: str | None = typer.Option(None, "--database", "-d", help="Database URL"),
    json_out: bool = typer.Option(False, "--json", help="JSON output"),
) -> None:
    """Apply pending schema migrations."""
    with open_store(database, migrate=False) as store:
        result = store.migrate()
        result.raise_for_errors()
        if json_out:
            echo_json({"applied": result.applied, "skipped": result.skipped})
            return
        if not result.applied:
            console.print("[dim]Schema is up to date.[/dim]")
        for name in result.applied:
            console.print(f"[green]applied[/green] {name}")


@app.command()
def status(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show applied and pending migrations."""
    with open_store(database, migrate=False) as store:
        runner = store.migrator()
        applied = runner.get_applied()
        pending = runner.get_pending()
        if json_out:
            echo_json(
                {
                    "current_version": runner.current_version(),
                    "applied": [record.filename for record in applied],
                    "pending": pending,
                }
            )
            return
        console.print(f"[bold]Current version[/bold]: {runner.current_version() or '-'}")
        output_rows(applied, title="Applied Migrations")
        for name in pending:
            console.print(f"[yellow]pending[/yellow] {name}")


@app.command()
def health(
    database: str | None = typer.Option(None, "--database", "-d"),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Check database connectivity, pool state and row counts."""
    with open_store(database, migrate=False) as store:
        store.ping()
        pool = store.pool_status()
        counts: dict[str, int] = {}
        if store.migrator().current_version() is not None:
            with store.session() as session:
                counts = count_rows(session)
        payload = {
            "backend": store.info.backend,
            "url": store.info.url,
            "pool": asdict(pool),
            "tables": counts,
        }
        output_mapping(payload, as_json=json_out, title="Database Health")
