"""Render account data as table, json, yaml, or minimal text."""

from __future__ import annotations

import json
from typing import Any

import click
import yaml
from rich.console import Console
from rich.table import Table

from gtasks.models.account import Account
from gtasks.ui.console import out_console

OUTPUT_FORMATS = ("table", "json", "yaml", "minimal")


def account_summary(account: Account, *, default_email: str | None = None) -> dict[str, Any]:
    """Display fields for one account. Token material is never included."""
    return {
        "email": account.email,
        "displayName": account.display_name or "",
        "status": str(account.status),
        "default": bool(default_email) and account.matches(default_email or ""),
        "addedAt": account.added_at.isoformat() if account.added_at else "",
        "lastUsed": account.last_used.isoformat() if account.last_used else "",
    }


def render_payload(payload: Any, fmt: str) -> str:
    """Render a payload to json or yaml text."""
    if fmt == "yaml":
        return yaml.safe_dump(payload, sort_keys=False).rstrip("\n")
    return json.dumps(payload, indent=2)


def _status_text(status: str) -> str:
    return f"[status.{status}]{status}[/status.{status}]"


def accounts_table(summaries: list[dict[str, Any]]) -> Table:
    """Build a Rich table of accounts."""
    table = Table(title="Accounts", show_lines=False, pad_edge=False)
    table.add_column("Email", style="bold")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Last used", style="muted")
    for row in summaries:
        email = row["email"] + (" [heading](default)[/heading]" if row["default"] else "")
        table.add_row(email, row["displayName"], _status_text(row["status"]), row["lastUsed"])
    return table


def account_detail_table(summary: dict[str, Any]) -> Table:
    table = Table(show_header=False, show_lines=False, pad_edge=False, box=None)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Email", summary["email"])
    table.add_row("Name", summary["displayName"])
    table.add_row("Status", _status_text(summary["status"]))
    table.add_row("Default", "yes" if summary["default"] else "no")
    table.add_row("Added", summary["addedAt"])
    table.add_row("Last used", summary["lastUsed"])
    return table


def emit_accounts(
    summaries: list[dict[str, Any]],
    fmt: str,
    *,
    console: Console | None = None,
) -> None:
    """Write an account list to stdout in the requested format."""
    if fmt in ("json", "yaml"):
        click.echo(render_payload(summaries, fmt))
    elif fmt == "minimal":
        for row in summaries:
            marker = "*" if row["default"] else " "
            click.echo(f"{marker} {row['email']}\t{row['status']}")
    else:
        (console or out_console).print(accounts_table(summaries))


def emit_account(summary: dict[str, Any], fmt: str, *, console: Console | None = None) -> None:
    """Write one account's details to stdout in the requested format."""
    if fmt in ("json", "yaml"):
        click.echo(render_payload(summary, fmt))
    elif fmt == "minimal":
        click.echo(f"{summary['email']}\t{summary['status']}")
    else:
        (console or out_console).print(account_detail_table(summary))
