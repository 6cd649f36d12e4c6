"""Test helpers: a scriptable OAuth provider, a controllable clock, seeding."""

from __future__ import annotations

import itertools
import socket
import threading
import time
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path
from urllib.parse import parse_qs, urlencode, urlparse

import httpx
from click.testing import CliRunner, Result

from gtasks.cli.main import cli
from gtasks.core.auth.lifecycle import CredentialManager
from gtasks.core.auth.provider import (
    SCOPES,
    FailureKind,
    Identity,
    ProviderFailure,
    RawTokens,
)
from gtasks.models.account import Account

START = datetime(2026, 1, 15, 9, 30, tzinfo=UTC)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


def revoked_failure() -> ProviderFailure:
    return ProviderFailure(
        FailureKind.REVOKED,
        "HTTP 400: invalid_grant: Token has been expired or revoked.",
        status_code=400,
    )


def unauthorized_failure() -> ProviderFailure:
    return ProviderFailure(FailureKind.UNAUTHORIZED, "HTTP 401: Invalid Credentials", status_code=401)


def transient_failure() -> ProviderFailure:
    return ProviderFailure(FailureKind.TRANSIENT, "network error: connection reset")


class FakeProvider:
    """In-memory OAuthProvider whose outcomes are set by the test."""

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] | None = None,
        email: str = "alice@example.com",
        name: str | None = "Alice",
        lifetime: timedelta = timedelta(hours=1),
    ) -> None:
        self.clock = clock or (lambda: datetime.now(UTC))
        self.identity = Identity(email=email, name=name)
        self.lifetime = lifetime

        self.refresh_failure: ProviderFailure | None = None
        self.check_failure: ProviderFailure | None = None
        self.revoke_failure: ProviderFailure | None = None
        self.rotate_refresh_tokens = False
        self.issue_refresh_token = True
        self.refresh_delay = 0.0

        self.refresh_calls: list[str] = []
        self.check_calls: list[str] = []
        self.revoked: list[str] = []
        self.exchanged_codes: list[str] = []

        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def _next(self) -> int:
        with self._lock:
            return next(self._counter)

    def _expiry_ms(self) -> int:
        return int((self.clock() + self.lifetime).timestamp() * 1000)

    def authorization_url(self, scopes: Sequence[str], state: str) -> str:
        query = urlencode({"scope": " ".join(scopes), "state": state})
        return f"https://accounts.example.test/auth?{query}"

    def exchange_code(self, code: str) -> RawTokens:
        with self._lock:
            self.exchanged_codes.append(code)
        n = self._next()
        return RawTokens(
            access_token=f"access-{n}",
            refresh_token=f"refresh-{n}" if self.issue_refresh_token else None,
            expiry_date=self._expiry_ms(),
            scope=" ".join(SCOPES),
        )

    def refresh(self, refresh_token: str) -> RawTokens:
        with self._lock:
            self.refresh_calls.append(refresh_token)
        if self.refresh_delay:
            time.sleep(self.refresh_delay)
        if self.refresh_failure is not None:
            raise self.refresh_failure
        n = self._next()
        return RawTokens(
            access_token=f"access-{n}",
            refresh_token=f"refresh-{n}" if self.rotate_refresh_tokens else None,
            expiry_date=self._expiry_ms(),
        )

    def revoke(self, token: str) -> None:
        with self._lock:
            self.revoked.append(token)
        if self.revoke_failure is not None:
            raise self.revoke_failure

    def fetch_identity(self, access_token: str) -> Identity:
        return self.identity

    def check_access(self, access_token: str) -> None:
        with self._lock:
            self.check_calls.append(access_token)
        if self.check_failure is not None:
            raise self.check_failure


def seed_account(
    manager: CredentialManager,
    email: str,
    *,
    expires_in: timedelta = timedelta(hours=1),
    name: str | None = None,
    refresh_token: str | None = None,
) -> Account:
    """Store an authorized account whose access token expires ``expires_in`` from now."""
    expiry = int((manager.clock() + expires_in).timestamp() * 1000)
    raw = RawTokens(
        access_token=f"seed-access-{email}",
        refresh_token=refresh_token or f"seed-refresh-{email}",
        expiry_date=expiry,
    )
    return manager.store_new_credential(email, name, raw)


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


def browser_signing_in(redirect_uri: str, code: str = "code-1") -> Callable[[str], None]:
    """A stand-in for ``webbrowser.open`` that completes the redirect."""

    def _open(url: str) -> None:
        state = parse_qs(urlparse(url).query)["state"][0]
        httpx.get(redirect_uri, params={"code": code, "state": state}, trust_env=False)

    return _open


def invoke_cli(
    config_path: Path,
    provider: FakeProvider,
    *args: str,
    input: str | None = None,
    open_browser: Callable[[str], object] | None = None,
) -> Result:
    """Run the CLI against ``config_path`` with ``provider`` standing in for Google."""
    obj: dict[str, object] = {"provider_factory": lambda oauth: provider}
    if open_browser is not None:
        obj["open_browser"] = open_browser
    return CliRunner().invoke(cli, ["--config", str(config_path), *args], obj=obj, input=input)
