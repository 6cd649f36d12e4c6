"""Durable config document and the account store built on it.

Every mutation is load -> mutate -> atomic replace, serialized per config
file within the process. Nothing is cached between calls; the file is the
single source of truth.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, TypeVar

from pydantic import ValidationError

from gtasks.errors import (
    AccountNotFoundError,
    ConfigInvalidError,
    ConfigNotFoundError,
    OAuthNotConfiguredError,
)
from gtasks.models.account import (
    DEFAULT_REDIRECT_URI,
    Account,
    Config,
    OAuthClientConfig,
    Settings,
)
from gtasks.utils.files import atomic_write_text
from gtasks.utils.locks import KeyedLock
from gtasks.utils.state import resolve_config_path

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], datetime]

_FILE_LOCKS = KeyedLock()


def utc_now() -> datetime:
    return datetime.now(UTC)


class ConfigStore:
    """Reads and atomically rewrites the JSON config file."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = resolve_config_path(path)

    @property
    def _lock_key(self) -> str:
        return str(self.path.absolute())

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Config:
        if not self.path.exists():
            raise ConfigNotFoundError(self.path)
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigInvalidError(f"Failed to parse config file {self.path}: {exc}") from exc
        try:
            return Config.model_validate(payload)
        except ValidationError as exc:
            raise ConfigInvalidError(f"Invalid config file {self.path}: {exc}") from exc

    def save(self, config: Config) -> None:
        atomic_write_text(self.path, json.dumps(config.to_json_dict(), indent=2) + "\n")

    def update(self, mutate: Callable[[Config], T]) -> T:
        """Load, apply ``mutate``, and persist, all under the file lock."""
        with _FILE_LOCKS.hold(self._lock_key):
            config = self.load()
            result = mutate(config)
            self.save(config)
            return result

    def init(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str | None = None,
    ) -> Config:
        """Write a fresh config with OAuth credentials and no accounts."""
        config = Config(
            oauth=OAuthClientConfig(
                client_id=client_id,
                client_secret=client_secret,
                redirect_uri=redirect_uri or DEFAULT_REDIRECT_URI,
            ),
            accounts=[],
            settings=Settings(output_format="table"),
        )
        with _FILE_LOCKS.hold(self._lock_key):
            self.save(config)
        return config

    def update_oauth(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str | None = None,
    ) -> Config:
        """Replace OAuth client credentials, creating the config if needed."""
        with _FILE_LOCKS.hold(self._lock_key):
            config = self.load() if self.exists() else Config()
            previous_uri = config.oauth.redirect_uri if config.oauth else None
            config.oauth = OAuthClientConfig(
                client_id=client_id,
                client_secret=client_secret,
                redirect_uri=redirect_uri or previous_uri or DEFAULT_REDIRECT_URI,
            )
            self.save(config)
            return config

    def is_oauth_configured(self) -> bool:
        if not self.exists():
            return False
        config = self.load()
        return config.oauth is not None and config.oauth.configured

    def oauth_client(self) -> OAuthClientConfig:
        """Return client credentials or raise ``OAuthNotConfiguredError``."""
        config = self.load()
        if config.oauth is None or not config.oauth.configured:
            raise OAuthNotConfiguredError()
        return config.oauth

    def get_setting(self, key: str) -> Any:
        settings = self.load().settings.model_dump(by_alias=True)
        return settings.get(key)

    def set_setting(self, key: str, value: Any) -> None:
        def _apply(config: Config) -> None:
            data = config.settings.model_dump(by_alias=True)
            data[key] = value
            config.settings = Settings.model_validate(data)

        self.update(_apply)


class AccountStore:
    """Email-keyed (case-insensitive) account records in insertion order."""

    def __init__(self, config_store: ConfigStore, *, clock: Clock | None = None) -> None:
        self.config_store = config_store
        self.clock = clock or utc_now

    @property
    def path(self) -> Path:
        return self.config_store.path

    def find(self, email: str) -> Account | None:
        config = self.config_store.load()
        index = config.find_index(email)
        return None if index is None else config.accounts[index]

    def get(self, email: str) -> Account:
        account = self.find(email)
        if account is None:
            raise AccountNotFoundError(email)
        return account

    def list(self) -> list[Account]:
        return list(self.config_store.load().accounts)

    def upsert(self, account: Account) -> Account:
        """Merge into the existing record for this email, or append a new one."""

        def _apply(config: Config) -> Account:
            index = config.find_index(account.email)
            if index is None:
                created = account.model_copy()
                if created.added_at is None:
                    created.added_at = self.clock()
                config.accounts.append(created)
                return created
            existing = config.accounts[index]
            merged_data = existing.model_dump()
            merged_data.update(account.model_dump(exclude_unset=True))
            merged_data["email"] = existing.email
            merged = Account.model_validate(merged_data)
            config.accounts[index] = merged
            return merged

        return self.config_store.update(_apply)

    def update(self, email: str, mutate: Callable[[Account], None]) -> Account:
        """Apply ``mutate`` to the stored record and persist it atomically."""

        def _apply(config: Config) -> Account:
            index = config.find_index(email)
            if index is None:
                raise AccountNotFoundError(email)
            account = config.accounts[index]
            mutate(account)
            return account

        return self.config_store.update(_apply)

    def remove(self, email: str) -> bool:
        """Delete an account; reassign the default if it pointed here."""

        def _apply(config: Config) -> bool:
            index = config.find_index(email)
            if index is None:
                return False
            removed = config.accounts.pop(index)
            default = config.settings.default_account
            if default is not None and removed.matches(default):
                config.settings.default_account = (
                    config.accounts[0].email if config.accounts else None
                )
                logger.info(
                    "Default account reassigned to %s",
                    config.settings.default_account or "none",
                )
            return True

        # Avoid rewriting the file when nothing matched.
        if self.find(email) is None:
            return False
        return self.config_store.update(_apply)

    def set_default(self, email: str) -> Account:
        def _apply(config: Config) -> Account:
            index = config.find_index(email)
            if index is None:
                raise AccountNotFoundError(email)
            account = config.accounts[index]
            config.settings.default_account = account.email
            return account

        return self.config_store.update(_apply)

    def get_default(self) -> Account | None:
        """Explicit default if still present, else the first account, else None."""
        config = self.config_store.load()
        default = config.settings.default_account
        if default:
            index = config.find_index(default)
            if index is not None:
                return config.accounts[index]
        return config.accounts[0] if config.accounts else None
