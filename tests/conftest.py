"""Shared test fixtures for the gtasks test suite."""

from __future__ import annotations

from pathlib import Path

import pytest

from gtasks.core.accounts.store import AccountStore, ConfigStore
from gtasks.core.auth.cipher import TokenCipher
from gtasks.core.auth.keystore import KeyStore
from gtasks.core.auth.lifecycle import CredentialManager
from gtasks.utils.state import CONFIG_ENV_VAR, key_path
from tests.helpers import FakeProvider, FixedClock


@pytest.fixture(autouse=True)
def _isolate_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "gtasks" / "config.json"


@pytest.fixture
def config_store(config_path: Path) -> ConfigStore:
    """Config with OAuth client credentials and no accounts."""
    store = ConfigStore(config_path)
    store.init("client-id.apps.googleusercontent.com", "client-secret")
    return store


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def account_store(config_store: ConfigStore, clock: FixedClock) -> AccountStore:
    return AccountStore(config_store, clock=clock)


@pytest.fixture
def cipher(config_path: Path) -> TokenCipher:
    return TokenCipher(KeyStore(key_path(config_path)))


@pytest.fixture
def provider(clock: FixedClock) -> FakeProvider:
    return FakeProvider(clock=clock)


@pytest.fixture
def manager(
    account_store: AccountStore,
    cipher: TokenCipher,
    provider: FakeProvider,
    clock: FixedClock,
) -> CredentialManager:
    return CredentialManager(account_store, cipher, provider, clock=clock)


@pytest.fixture
def live_provider() -> FakeProvider:
    """Provider on the wall clock, for CLI runs that build their own manager."""
    return FakeProvider()


@pytest.fixture
def live_manager(
    config_store: ConfigStore, cipher: TokenCipher, live_provider: FakeProvider
) -> CredentialManager:
    return CredentialManager(AccountStore(config_store), cipher, live_provider)
