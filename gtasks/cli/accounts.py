"""Account management commands."""

from __future__ import annotations

import sys

import click

from gtasks.cli.auth import authenticate
from gtasks.cli.context import get_services, resolve_format, run_guarded
from gtasks.core.accounts.resolver import filter_accounts, parse_email_list, resolve_account
from gtasks.core.auth.redirect import DEFAULT_AUTH_TIMEOUT
from gtasks.errors import GTasksError, OAuthNotConfiguredError
from gtasks.ui.console import error, info, success, warn
from gtasks.ui.output import OUTPUT_FORMATS, account_summary, emit_account, emit_accounts

_format_option = click.option(
    "-f",
    "--format",
    "fmt",
    type=click.Choice(OUTPUT_FORMATS),
    default=None,
    help="Output format (default: settings.outputFormat, else table)",
)


def register_account_commands(*, cli: click.Group) -> None:
    """Register the accounts command group on the provided CLI group."""

    @cli.group("accounts")
    def accounts_group() -> None:
        """Manage Google account connections."""

    @accounts_group.command("list")
    @_format_option
    @click.pass_context
    def accounts_list(ctx: click.Context, fmt: str | None) -> None:
        """List all configured accounts."""
        services = get_services(ctx)

        def _list() -> None:
            accounts = services.accounts.list()
            if not accounts:
                info('No accounts configured. Run "gtasks accounts add" to add an account.')
                return
            default = services.accounts.get_default()
            default_email = default.email if default else None
            summaries = [account_summary(a, default_email=default_email) for a in accounts]
            emit_accounts(summaries, resolve_format(services, fmt))

        run_guarded(_list)

    @accounts_group.command("add")
    @click.option(
        "--timeout",
        type=float,
        default=DEFAULT_AUTH_TIMEOUT,
        show_default=True,
        help="Seconds to wait for the browser sign-in",
    )
    @click.pass_context
    def accounts_add(ctx: click.Context, timeout: float) -> None:
        """Add a new Google account via OAuth."""
        services = get_services(ctx)

        def _add() -> None:
            if not services.config_store.is_oauth_configured():
                raise OAuthNotConfiguredError()
            authenticate(ctx, services, timeout)

        run_guarded(_add)

    @accounts_group.command("remove")
    @click.argument("email")
    @click.option("--revoke", is_flag=True, help="Also revoke OAuth access with Google")
    @click.option("--force", is_flag=True, help="Skip confirmation")
    @click.pass_context
    def accounts_remove(ctx: click.Context, email: str, revoke: bool, force: bool) -> None:
        """Remove a configured account."""
        services = get_services(ctx)

        def _remove() -> None:
            account = services.accounts.get(email)
            if not force and not click.confirm(f"Remove {account.email}?", default=False, err=True):
                info("Aborted.")
                return

            if revoke:
                info(f"Revoking access for {account.email}...")
                if services.manager().revoke_access(account.email):
                    success("Access revoked with Google")
                else:
                    warn("Could not revoke access (token may already be invalid)")

            if not services.accounts.remove(account.email):
                error(f"Failed to remove account: {account.email}")
                sys.exit(1)
            success(f"Account removed: {account.email}")

        run_guarded(_remove)

    @accounts_group.command("status")
    @click.argument("email", required=False)
    @click.option("--test", "run_test", is_flag=True, help="Test connectivity with Google")
    @_format_option
    @click.pass_context
    def accounts_status(
        ctx: click.Context,
        email: str | None,
        run_test: bool,
        fmt: str | None,
    ) -> None:
        """Show detailed status for an account (default account if omitted)."""
        services = get_services(ctx)

        def _status() -> None:
            account = resolve_account(services.accounts, email)
            if run_test:
                info(f"Testing connectivity for {account.email}...")
                result = services.manager().test_connectivity(account.email)
                if result.success:
                    success("Connection successful")
                else:
                    error(f"Connection failed: {result.error}")
                account = services.accounts.get(account.email)

            default = services.accounts.get_default()
            summary = account_summary(account, default_email=default.email if default else None)
            emit_account(summary, resolve_format(services, fmt))

        run_guarded(_status)

    @accounts_group.command("default")
    @click.argument("email")
    @click.pass_context
    def accounts_default(ctx: click.Context, email: str) -> None:
        """Set the default account."""
        services = get_services(ctx)

        def _set_default() -> None:
            account = services.accounts.set_default(email)
            success(f"Default account set to: {account.email}")

        run_guarded(_set_default)

    @accounts_group.command("refresh")
    @click.argument("email", required=False)
    @click.option("--all", "all_accounts", is_flag=True, help="Refresh every configured account")
    @click.option("--accounts", "account_filter", help="Comma-separated list of accounts to include")
    @click.option("--force", is_flag=True, help="Refresh even if the token is not near expiry")
    @click.option("--workers", type=int, default=4, show_default=True, help="Parallel refreshes")
    @click.pass_context
    def accounts_refresh(
        ctx: click.Context,
        email: str | None,
        all_accounts: bool,
        account_filter: str | None,
        force: bool,
        workers: int,
    ) -> None:
        """Make sure account credentials are valid, refreshing as needed."""
        services = get_services(ctx)

        def _refresh() -> bool:
            if all_accounts or account_filter:
                selected = filter_accounts(services.accounts, parse_email_list(account_filter))
                targets = [account.email for account in selected]
            else:
                targets = [resolve_account(services.accounts, email).email]

            outcomes = services.manager().refresh_many(targets, force=force, max_workers=workers)
            ok = True
            for target, outcome in outcomes.items():
                if isinstance(outcome, GTasksError):
                    ok = False
                    error(f"{target}: {outcome}")
                    if outcome.hint:
                        click.echo(f"  {outcome.hint}", err=True)
                else:
                    success(f"{target}: credential valid")
            return ok

        if not run_guarded(_refresh):
            sys.exit(1)
