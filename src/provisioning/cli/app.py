"""
Root Typer application for the provisioning CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

from provisioning.core.logging import configure_logging
from provisioning.core.settings import get_settings

app = Typer(
    name="provisioning",
    help="provisioning - create accounts, roles and sessions on a relational store.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from provisioning import __version__

        typer.echo(f"provisioning {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(
        None, "--log-level", help="DEBUG, INFO, WARNING or ERROR (default from settings)."
    ),
) -> None:
    """provisioning CLI - manage the schema, accounts, roles and sessions."""
    settings = get_settings()
    try:
        configure_logging(level=log_level or settings.log_level, json_format=settings.json_logs)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--log-level") from exc


# ── Sub-command registration ─────────────────────────────────────────────

from provisioning.cli.accounts import app as accounts_app  # noqa: E402
from provisioning.cli.db import app as db_app  # noqa: E402
from provisioning.cli.roles import app as roles_app  # noqa: E402
from provisioning.cli.sessions import app as sessions_app  # noqa: E402

app.add_typer(db_app, name="db", help="Schema migrations and health.")
app.add_typer(accounts_app, name="accounts", help="Provision and list accounts.")
app.add_typer(roles_app, name="roles", help="Reference roles and permissions.")
app.add_typer(sessions_app, name="sessions", help="Issued sessions.")
