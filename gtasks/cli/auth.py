"""OAuth setup and validation commands."""

from __future__ import annotations

import sys
import webbrowser

import click

from gtasks.cli.context import Services, get_services, run_guarded
from gtasks.core.auth.provider import Identity
from gtasks.core.auth.redirect import DEFAULT_AUTH_TIMEOUT, authenticate_new_account
from gtasks.models.account import DEFAULT_REDIRECT_URI
from gtasks.ui.console import error, info, success

SETUP_STEPS = (
    "Google Cloud OAuth Setup",
    "------------------------",
    "To use this tool, you need OAuth 2.0 credentials from Google Cloud Console.",
    "",
    "Steps:",
    "1. Go to https://console.cloud.google.com/apis/credentials",
    "2. Create or select a project",
    "3. Enable the Google Tasks API",
    "4. Create OAuth 2.0 credentials (Desktop app type)",
    "5. Copy the Client ID and Client Secret",
    "",
)


def authenticate(ctx: click.Context, services: Services, timeout: float) -> Identity:
    """Run the browser flow for one account and report the result."""
    manager = services.manager()
    oauth = services.config_store.oauth_client()
    open_browser = ctx.ensure_object(dict).get("open_browser") or webbrowser.open

    def _show_url(url: str) -> None:
        info("Opening browser for authentication...")
        info(f"If the browser doesn't open, visit: {url}")

    identity = authenticate_new_account(
        manager,
        manager.provider,
        oauth.redirect_uri,
        timeout=timeout,
        open_browser=open_browser,
        on_url=_show_url,
    )
    success(f"Account added: {identity.email}")
    return identity


def register_auth_commands(*, cli: click.Group) -> None:
    """Register the auth command group on the provided CLI group."""

    @cli.group("auth")
    def auth_group() -> None:
        """OAuth setup and validation."""

    @auth_group.command("setup")
    @click.option("--client-id", help="OAuth 2.0 Client ID")
    @click.option("--client-secret", help="OAuth 2.0 Client Secret")
    @click.option(
        "--redirect-uri",
        default=DEFAULT_REDIRECT_URI,
        show_default=True,
        help="OAuth redirect URI",
    )
    @click.option("--skip-auth", is_flag=True, help="Skip account authentication after setup")
    @click.option(
        "--timeout",
        type=float,
        default=DEFAULT_AUTH_TIMEOUT,
        show_default=True,
        help="Seconds to wait for the browser sign-in",
    )
    @click.pass_context
    def auth_setup(
        ctx: click.Context,
        client_id: str | None,
        client_secret: str | None,
        redirect_uri: str,
        skip_auth: bool,
        timeout: float,
    ) -> None:
        """Configure OAuth credentials and authenticate an account."""
        services = get_services(ctx)

        if not client_id or not client_secret:
            for line in SETUP_STEPS:
                info(line)
            if not client_id:
                client_id = click.prompt("Enter Client ID").strip()
            if not client_secret:
                client_secret = click.prompt("Enter Client Secret", hide_input=True).strip()

        if not client_id or not client_secret:
            error("Client ID and Client Secret are required")
            sys.exit(1)

        def _setup() -> None:
            if services.config_store.exists():
                services.config_store.update_oauth(client_id, client_secret, redirect_uri)
                success("OAuth credentials updated")
            else:
                services.config_store.init(client_id, client_secret, redirect_uri)
                success("OAuth credentials configured")

            if not skip_auth:
                info("")
                info("Now authenticate your first Google account...")
                authenticate(ctx, services, timeout)

        run_guarded(_setup)

    @auth_group.command("validate")
    @click.option("--workers", type=int, default=4, show_default=True, help="Parallel probes")
    @click.pass_context
    def auth_validate(ctx: click.Context, workers: int) -> None:
        """Validate OAuth configuration and test account connectivity."""
        services = get_services(ctx)

        def _validate() -> bool:
            if not services.config_store.exists():
                error('No configuration found. Run "gtasks auth setup" first.')
                return False
            if not services.config_store.is_oauth_configured():
                error('OAuth credentials not configured. Run "gtasks auth setup" first.')
                return False
            success("OAuth credentials configured")

            accounts = services.accounts.list()
            if not accounts:
                info('No accounts configured. Run "gtasks accounts add" to add an account.')
                return True

            info(f"Testing connectivity for {len(accounts)} account(s)...")
            results = services.manager().test_all_connectivity(max_workers=workers)
            all_passed = True
            for result in results:
                if result.success:
                    success(f"{result.email}: Connected")
                else:
                    error(f"{result.email}: {result.error}")
                    all_passed = False
            if all_passed:
                success("All accounts validated successfully")
            return all_passed

        if not run_guarded(_validate):
            sys.exit(1)
