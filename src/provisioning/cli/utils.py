"""
CLI utility helpers: output formatting and store management.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from provisioning.core.errors import ProvisioningError
from provisioning.core.settings import get_settings
from provisioning.store import Store

console = Console()
err_console = Console(stderr=True)


# ── Store helper ─────────────────────────────────────────────────────────


@contextmanager
def open_store(database: str | None = None, *, migrate: bool = True) -> Iterator[Store]:
    """Open the store named by ``--database`` or ``PROVISIONING_DATABASE_URL``.

    Any ``ProvisioningError`` raised inside the block is rendered and turned
    into exit code 1.
    """
    try:
        store = Store.from_settings(get_settings(), database_url=database, migrate=migrate)
    except ProvisioningError as exc:
        fail(exc)
    try:
        yield store
    except ProvisioningError as exc:
        fail(exc)
    finally:
        store.dispose()


def fail(exc: ProvisioningError) -> None:
    """Print *exc* to stderr and exit with status 1."""
    err_console.print(f"[bold red]Error[/bold red] ({exc.category.value}): {escape(exc.message)}")
    raise typer.Exit(code=1)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump()
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def echo_json(payload: Any) -> None:
    """Write *payload* as indented JSON to stdout, unwrapped."""
    if isinstance(payload, list | tuple):
        payload = [_to_dict(item) for item in payload]
    elif not isinstance(payload, dict):
        payload = _to_dict(payload)
    typer.echo(json.dumps(payload, indent=2, default=str))


def output_rows(rows: list, *, as_json: bool = False, title: str = "") -> None:
    """Render a list of dataclasses/dicts as a table or JSON array."""
    if as_json:
        echo_json(rows)
        return
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    _print_table(rows, title=title)


def output_mapping(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a single dataclass/dict as key-value pairs or a JSON object."""
    if as_json:
        echo_json(data)
        return
    _print_dict(_to_dict(data), title=title)


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list, *, title: str = "") -> None:
    first = _to_dict(items[0])
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in first:
        table.add_column(col, overflow="fold")
    for item in items:
        d = _to_dict(item)
        table.add_row(*(str(v) for v in d.values()))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
