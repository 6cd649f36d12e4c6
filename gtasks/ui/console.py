"""Shared Rich consoles and style definitions.

Status chrome and logs go to stderr via ``err_console``; command results
go to stdout via ``out_console`` so they can be piped.
"""

from __future__ import annotations

from rich.console import Console
from rich.theme import Theme

GTASKS_THEME = Theme(
    {
        "info": "cyan",
        "success": "bold green",
        "warning": "bold yellow",
        "error": "bold red",
        "heading": "bold cyan",
        "muted": "dim",
        "status.active": "green",
        "status.expired": "yellow",
        "status.revoked": "bold red",
        "status.error": "red",
        "status.unknown": "dim",
    }
)

err_console = Console(stderr=True, theme=GTASKS_THEME)
out_console = Console(theme=GTASKS_THEME)


def success(message: str) -> None:
    err_console.print(f"[success]✓[/success] {message}", highlight=False)


def info(message: str) -> None:
    err_console.print(f"[info]{message}[/info]", highlight=False)


def warn(message: str) -> None:
    err_console.print(f"[warning]![/warning] {message}", highlight=False)


def error(message: str) -> None:
    err_console.print(f"[error]✗[/error] {message}", highlight=False)
