"""Persistent data models."""

from gtasks.models.account import (
    Account,
    AccountStatus,
    Config,
    OAuthClientConfig,
    Settings,
    TokenBundle,
)

__all__ = [
    "Account",
    "AccountStatus",
    "Config",
    "OAuthClientConfig",
    "Settings",
    "TokenBundle",
]
