"""Per-invocation service wiring and error reporting for CLI commands."""

from __future__ import annotations

import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

import click

from gtasks.core.accounts.store import AccountStore, ConfigStore
from gtasks.core.auth.cipher import TokenCipher
from gtasks.core.auth.keystore import KeyStore
from gtasks.core.auth.lifecycle import CredentialManager
from gtasks.core.auth.provider import GoogleOAuthProvider, OAuthProvider
from gtasks.errors import GTasksError
from gtasks.models.account import OAuthClientConfig
from gtasks.ui.console import error
from gtasks.utils.state import key_path

T = TypeVar("T")

ProviderFactory = Callable[[OAuthClientConfig], OAuthProvider]


@dataclass
class Services:
    """Everything a command needs, rebuilt from disk on every invocation."""

    config_store: ConfigStore
    accounts: AccountStore
    cipher: TokenCipher
    provider_factory: ProviderFactory

    def provider(self) -> OAuthProvider:
        return self.provider_factory(self.config_store.oauth_client())

    def manager(self) -> CredentialManager:
        return CredentialManager(self.accounts, self.cipher, self.provider())


def get_services(ctx: click.Context) -> Services:
    obj = ctx.ensure_object(dict)
    config_path: Path | None = obj.get("config_path")
    config_store = ConfigStore(config_path)
    return Services(
        config_store=config_store,
        accounts=AccountStore(config_store),
        cipher=TokenCipher(KeyStore(key_path(config_store.path))),
        provider_factory=obj.get("provider_factory") or GoogleOAuthProvider,
    )


def run_guarded(callback: Callable[[], T]) -> T:
    """Run a command body, turning credential errors into exit code 1."""
    try:
        return callback()
    except GTasksError as exc:
        error(str(exc))
        if exc.hint:
            click.echo(f"  {exc.hint}", err=True)
        sys.exit(1)


def resolve_format(services: Services, fmt: str | None) -> str:
    """Explicit format, else the configured default, else table."""
    if fmt:
        return fmt
    if services.config_store.exists():
        configured = services.config_store.get_setting("outputFormat")
        if isinstance(configured, str) and configured:
            return configured
    return "table"
