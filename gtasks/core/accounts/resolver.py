"""Pick the account an operation should act on."""

from __future__ import annotations

from collections.abc import Iterable

from gtasks.core.accounts.store import AccountStore
from gtasks.errors import AccountNotFoundError, NoAccountsConfiguredError
from gtasks.models.account import Account


def resolve_account(store: AccountStore, email: str | None = None) -> Account:
    """Return the named account, or the default when ``email`` is None.

    Raises AccountNotFoundError for an unknown email and
    NoAccountsConfiguredError when there is nothing to default to.
    """
    if email:
        return store.get(email)
    account = store.get_default()
    if account is None:
        raise NoAccountsConfiguredError()
    return account


def parse_email_list(raw: str | None) -> list[str]:
    """Split a comma-separated email list, dropping blanks."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


def filter_accounts(store: AccountStore, emails: Iterable[str] | None = None) -> list[Account]:
    """Return accounts in insertion order, optionally limited to ``emails``."""
    accounts = store.list()
    if not accounts:
        raise NoAccountsConfiguredError()

    wanted = {email.lower() for email in emails or []}
    if not wanted:
        return accounts

    selected = [account for account in accounts if account.email.lower() in wanted]
    if not selected:
        raise AccountNotFoundError(", ".join(sorted(wanted)))
    return selected
