"""Credential lifecycle: refresh decisions, status tracking, serialization.

Callers ask for a valid credential by email and never deal with expiry.
All provider interactions for one account run under a per-account lock so
two refreshes can never consume the same refresh token concurrently.

Status transitions::

    unknown | active | error -> active   refresh or probe succeeds
    any but revoked -> expired           provider rejects the session (401/403)
    any -> revoked                       provider reports the grant invalid
    any -> error                         any other provider failure
    any -> active                        new authorization, the only way
                                         out of expired and revoked

Only a revoked account is refused up front. An expired account still hands
out its access token until it lapses, and a later refresh may succeed, but
the status stays expired until the account is authorized again.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum

from gtasks.core.accounts.store import AccountStore, utc_now
from gtasks.core.auth.cipher import Credential, TokenCipher
from gtasks.core.auth.provider import FailureKind, OAuthProvider, ProviderFailure, RawTokens
from gtasks.errors import (
    AccessRevokedError,
    AccountNotFoundError,
    CredentialExpiredError,
    DecryptionFailedError,
    GTasksError,
    ProviderError,
)
from gtasks.models.account import Account, AccountStatus, TokenBundle
from gtasks.utils.locks import KeyedLock

logger = logging.getLogger(__name__)

REFRESH_BUFFER = timedelta(minutes=5)
DEFAULT_MAX_WORKERS = 4

_ACCOUNT_LOCKS = KeyedLock()


class StatusCause(StrEnum):
    """What produced a status change."""

    AUTHORIZATION = "authorization"
    REFRESH = "refresh"
    PROBE = "probe"


_S = AccountStatus

# Allowed source statuses per target for refresh and probe outcomes.
_PROVIDER_TRANSITIONS: dict[AccountStatus, frozenset[AccountStatus]] = {
    _S.UNKNOWN: frozenset(),
    _S.ACTIVE: frozenset({_S.UNKNOWN, _S.ACTIVE, _S.ERROR}),
    _S.EXPIRED: frozenset({_S.UNKNOWN, _S.ACTIVE, _S.EXPIRED, _S.ERROR}),
    _S.REVOKED: frozenset({_S.UNKNOWN, _S.ACTIVE, _S.EXPIRED, _S.REVOKED, _S.ERROR}),
    _S.ERROR: frozenset({_S.UNKNOWN, _S.ACTIVE, _S.EXPIRED, _S.REVOKED, _S.ERROR}),
}

_FAILURE_STATUS: dict[FailureKind, AccountStatus] = {
    FailureKind.REVOKED: _S.REVOKED,
    FailureKind.UNAUTHORIZED: _S.EXPIRED,
    FailureKind.TRANSIENT: _S.ERROR,
}


def transition_allowed(current: AccountStatus, target: AccountStatus, cause: StatusCause) -> bool:
    """Return whether ``current -> target`` is a legal edge for ``cause``."""
    if cause is StatusCause.AUTHORIZATION:
        return target is _S.ACTIVE
    return current in _PROVIDER_TRANSITIONS[target]


def next_status(current: AccountStatus, target: AccountStatus, cause: StatusCause) -> AccountStatus:
    """Apply a transition, keeping ``current`` when the edge is illegal."""
    if transition_allowed(current, target, cause):
        return target
    logger.warning("Ignoring %s transition %s -> %s", cause, current, target)
    return current


@dataclass(frozen=True)
class ConnectivityResult:
    """Outcome of a connectivity probe for one account."""

    email: str
    success: bool
    status: AccountStatus
    error: str | None = None


class CredentialManager:
    """Hands out valid credentials and records account health."""

    def __init__(
        self,
        store: AccountStore,
        cipher: TokenCipher,
        provider: OAuthProvider,
        *,
        clock: Callable[[], datetime] | None = None,
        refresh_buffer: timedelta = REFRESH_BUFFER,
    ) -> None:
        self.store = store
        self.cipher = cipher
        self.provider = provider
        self.clock = clock or utc_now
        self.refresh_buffer = refresh_buffer

    # ------------------------------------------------------------------
    # Credential access
    # ------------------------------------------------------------------

    def needs_refresh(self, tokens: TokenBundle | None) -> bool:
        """True when the access token is missing an expiry or expires within the buffer."""
        if tokens is None or tokens.expires_at is None:
            return True
        remaining_ms = tokens.expires_at - _to_epoch_ms(self.clock())
        return remaining_ms <= self.refresh_buffer.total_seconds() * 1000

    def get_valid_credential(self, email: str) -> Credential:
        """Return a plaintext credential, refreshing it first if it is near expiry."""
        return self._acquire(email, force=False)

    def refresh(self, email: str) -> Credential:
        """Refresh regardless of expiry."""
        return self._acquire(email, force=True)

    def refresh_many(
        self,
        emails: Iterable[str],
        *,
        force: bool = False,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> dict[str, Credential | GTasksError]:
        """Refresh several accounts concurrently; one result or error per email."""
        targets = list(dict.fromkeys(emails))
        if not targets:
            return {}

        def _one(email: str) -> Credential | GTasksError:
            try:
                return self._acquire(email, force=force)
            except GTasksError as exc:
                return exc

        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(targets)))) as pool:
            outcomes = list(pool.map(_one, targets))
        return dict(zip(targets, outcomes, strict=True))

    def _acquire(self, email: str, *, force: bool) -> Credential:
        # A forced refresh is satisfied by any commit that lands while it waits.
        seen = self.store.get(email).tokens if force else None
        with _ACCOUNT_LOCKS.hold(self._lock_key(email)):
            # Reload under the lock so a refresh committed by another caller is seen.
            account = self.store.get(email)
            tokens = _usable_tokens(account)

            due = tokens == seen if force else self.needs_refresh(tokens)
            if due:
                return self._refresh_locked(account, tokens)

            credential = self.cipher.decrypt_tokens(account.email, tokens)
            now = self.clock()
            self.store.update(account.email, lambda stored: _touch(stored, now))
            return credential

    def _refresh_locked(self, account: Account, tokens: TokenBundle) -> Credential:
        current = self.cipher.decrypt_tokens(account.email, tokens)

        logger.debug("Refreshing access token for %s", account.email)
        try:
            raw = self.provider.refresh(current.refresh_token)
        except ProviderFailure as exc:
            raise self._record_failure(account.email, exc, StatusCause.REFRESH) from exc

        refresh_token = current.refresh_token
        if raw.refresh_token and raw.refresh_token != current.refresh_token:
            logger.warning("Provider issued a new refresh token for %s; storing it", account.email)
            refresh_token = raw.refresh_token

        scope = raw.scope or current.scope
        bundle = self.cipher.encrypt_tokens(raw.access_token, refresh_token, raw.expiry_date, scope)
        now = self.clock()

        def _apply(stored: Account) -> None:
            stored.tokens = bundle
            stored.status = next_status(stored.status, _S.ACTIVE, StatusCause.REFRESH)
            stored.last_used = now

        self.store.update(account.email, _apply)
        logger.info("Refreshed access token for %s", account.email)
        return Credential(
            email=account.email,
            access_token=raw.access_token,
            refresh_token=refresh_token,
            expires_at=raw.expiry_date,
            scope=scope,
        )

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def store_new_credential(
        self,
        email: str,
        display_name: str | None,
        raw_tokens: RawTokens,
    ) -> Account:
        """Persist tokens from a fresh authorization-code exchange."""
        with _ACCOUNT_LOCKS.hold(self._lock_key(email)):
            refresh_token = raw_tokens.refresh_token or self._existing_refresh_token(email)
            if not refresh_token:
                raise ProviderError(email, "authorization did not return a refresh token")

            bundle = self.cipher.encrypt_tokens(
                raw_tokens.access_token,
                refresh_token,
                raw_tokens.expiry_date,
                raw_tokens.scope,
            )
            fields: dict[str, object] = {
                "email": email,
                "tokens": bundle,
                "status": next_status(_S.UNKNOWN, _S.ACTIVE, StatusCause.AUTHORIZATION),
                "last_used": self.clock(),
            }
            if display_name:
                fields["display_name"] = display_name
            account = self.store.upsert(Account.model_validate(fields))
            logger.info("Stored credentials for %s", account.email)
            return account

    def _existing_refresh_token(self, email: str) -> str | None:
        existing = self.store.find(email)
        if existing is None or existing.tokens is None:
            return None
        try:
            return self.cipher.decrypt(existing.tokens.refresh_token)
        except DecryptionFailedError:
            return None

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def test_connectivity(self, email: str) -> ConnectivityResult:
        """Probe the resource API with the account's credential and record the outcome."""
        with _ACCOUNT_LOCKS.hold(self._lock_key(email)):
            try:
                credential = self.get_valid_credential(email)
                try:
                    self.provider.check_access(credential.access_token)
                except ProviderFailure as exc:
                    raise self._record_failure(email, exc, StatusCause.PROBE) from exc
                self._set_status(email, _S.ACTIVE, StatusCause.PROBE)
            except AccountNotFoundError:
                raise
            except GTasksError as exc:
                return ConnectivityResult(
                    email=email,
                    success=False,
                    status=self.store.get(email).status,
                    error=str(exc),
                )
            return ConnectivityResult(email=email, success=True, status=self.store.get(email).status)

    def test_all_connectivity(
        self,
        emails: Iterable[str] | None = None,
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> list[ConnectivityResult]:
        """Probe every (or the given) account concurrently, in insertion order."""
        targets = list(emails) if emails is not None else [a.email for a in self.store.list()]
        if not targets:
            return []
        with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(targets)))) as pool:
            return list(pool.map(self.test_connectivity, targets))

    def validate_stored_tokens(self, email: str) -> bool:
        """Whether the stored bundle still decrypts with the current key."""
        account = self.store.find(email)
        if account is None or account.tokens is None:
            return False
        try:
            self.cipher.decrypt_tokens(account.email, account.tokens)
        except DecryptionFailedError:
            return False
        return True

    def revoke_access(self, email: str) -> bool:
        """Ask the provider to revoke the account's grant.

        Revoking the refresh token invalidates the whole grant. A token
        the provider no longer recognizes counts as already revoked.
        """
        with _ACCOUNT_LOCKS.hold(self._lock_key(email)):
            account = self.store.get(email)
            if account.tokens is None:
                return False
            try:
                token = self.cipher.decrypt(account.tokens.refresh_token)
            except DecryptionFailedError:
                logger.warning("Cannot revoke %s: stored token does not decrypt", email)
                return False
            try:
                self.provider.revoke(token)
            except ProviderFailure as exc:
                if "invalid_token" in exc.detail:
                    return True
                logger.warning("Failed to revoke token for %s: %s", email, exc.detail)
                return False
            return True

    # ------------------------------------------------------------------
    # Status bookkeeping
    # ------------------------------------------------------------------

    def _record_failure(self, email: str, failure: ProviderFailure, cause: StatusCause) -> GTasksError:
        self._set_status(email, _FAILURE_STATUS[failure.kind], cause)
        logger.warning("%s failed for %s (%s): %s", cause, email, failure.kind, failure.detail)
        if failure.kind is FailureKind.REVOKED:
            return AccessRevokedError(email)
        if failure.kind is FailureKind.UNAUTHORIZED:
            return CredentialExpiredError(email, failure.detail)
        return ProviderError(email, failure.detail)

    def _set_status(self, email: str, target: AccountStatus, cause: StatusCause) -> AccountStatus:
        def _apply(stored: Account) -> None:
            previous = stored.status
            stored.status = next_status(previous, target, cause)
            if stored.status != previous:
                logger.info("Account %s: %s -> %s (%s)", stored.email, previous, stored.status, cause)

        return self.store.update(email, _apply).status

    def _lock_key(self, email: str) -> str:
        return f"{self.store.path.absolute()}::{email}"


def _usable_tokens(account: Account) -> TokenBundle:
    """Return the stored bundle, failing fast for a revoked grant."""
    if account.status is _S.REVOKED:
        raise AccessRevokedError(account.email)
    if account.tokens is None:
        raise CredentialExpiredError(account.email, "no stored tokens")
    return account.tokens


def _touch(account: Account, now: datetime) -> None:
    account.last_used = now


def _to_epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)
