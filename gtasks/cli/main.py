"""Main CLI entry point for gtasks."""

from __future__ import annotations

import logging
from pathlib import Path

import click
from rich.logging import RichHandler

from gtasks import __version__
from gtasks.cli.accounts import register_account_commands
from gtasks.cli.auth import register_auth_commands
from gtasks.ui.console import err_console
from gtasks.utils.state import CONFIG_ENV_VAR


def configure_logging(verbose: bool) -> None:
    """Send library logs to stderr through Rich."""
    root = logging.getLogger("gtasks")
    root.handlers.clear()
    handler = RichHandler(console=err_console, show_path=False, show_time=verbose)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.propagate = False


@click.group()
@click.version_option(version=__version__, prog_name="gtasks")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    envvar=CONFIG_ENV_VAR,
    help=f"Config file path (default: ~/.config/gtasks/config.json, or ${CONFIG_ENV_VAR})",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: Path | None) -> None:
    """Google Tasks CLI for multi-account task management."""
    obj = ctx.ensure_object(dict)
    obj["verbose"] = verbose
    obj["config_path"] = config_path
    configure_logging(verbose)


register_auth_commands(cli=cli)
register_account_commands(cli=cli)


if __name__ == "__main__":
    cli()
