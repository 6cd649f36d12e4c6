"""OAuth provider interface and the Google implementation.

The lifecycle manager only talks to ``OAuthProvider``. Implementations
report failures as ``ProviderFailure`` with a ``FailureKind`` so status
transitions never depend on parsing error strings downstream.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable
from urllib.parse import urlencode

import httpx
from pydantic import BaseModel

from gtasks.models.account import OAuthClientConfig

logger = logging.getLogger(__name__)

# Tasks access plus the email needed to key the account.
SCOPES = (
    "https://www.googleapis.com/auth/tasks",
    "https://www.googleapis.com/auth/userinfo.email",
)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
REVOKE_URL = "https://oauth2.googleapis.com/revoke"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
TASKLISTS_URL = "https://tasks.googleapis.com/tasks/v1/users/@me/lists"

_REVOKED_MARKERS = ("invalid_grant", "revoked")
_UNAUTHORIZED_CODES = frozenset({"invalid_client", "unauthorized_client", "invalid_token"})


class FailureKind(StrEnum):
    """How a provider failure affects the account."""

    REVOKED = "revoked"
    UNAUTHORIZED = "unauthorized"
    TRANSIENT = "transient"


class ProviderFailure(Exception):
    """Raised by provider implementations for any failed call."""

    def __init__(self, kind: FailureKind, detail: str, *, status_code: int | None = None) -> None:
        super().__init__(detail)
        self.kind = kind
        self.detail = detail
        self.status_code = status_code


class RawTokens(BaseModel):
    """Plaintext token response from the provider."""

    access_token: str
    refresh_token: str | None = None
    expiry_date: int | None = None
    scope: str | None = None

    @classmethod
    def from_token_response(cls, payload: dict[str, Any], *, now_ms: int) -> RawTokens:
        expiry = payload.get("expiry_date")
        expires_in = payload.get("expires_in")
        if expires_in is not None:
            expiry = now_ms + int(expires_in) * 1000
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expiry_date=expiry,
            scope=payload.get("scope"),
        )


class Identity(BaseModel):
    """Who the tokens belong to."""

    email: str
    name: str | None = None


@runtime_checkable
class OAuthProvider(Protocol):
    """Authorization-code + refresh-token provider capability."""

    def authorization_url(self, scopes: Sequence[str], state: str) -> str:
        """URL the user visits to grant access."""
        ...

    def exchange_code(self, code: str) -> RawTokens:
        """Trade an authorization code for a token pair."""
        ...

    def refresh(self, refresh_token: str) -> RawTokens:
        """Obtain a new access token from a refresh token."""
        ...

    def revoke(self, token: str) -> None:
        """Invalidate a token with the provider.

        Callers pass the refresh token rather than the access token: Google
        accepts either, and revoking the refresh token ends the whole grant.
        """
        ...

    def fetch_identity(self, access_token: str) -> Identity:
        """Look up the email and name behind an access token."""
        ...

    def check_access(self, access_token: str) -> None:
        """Make a trivial authenticated resource call."""
        ...


def classify_failure(status_code: int | None, body: str) -> FailureKind:
    """Map an HTTP error response to a failure kind."""
    lowered = body.lower()
    if any(marker in lowered for marker in _REVOKED_MARKERS):
        return FailureKind.REVOKED
    if status_code in (401, 403):
        return FailureKind.UNAUTHORIZED
    if any(code in lowered for code in _UNAUTHORIZED_CODES):
        return FailureKind.UNAUTHORIZED
    return FailureKind.TRANSIENT


class GoogleOAuthProvider:
    """Google OAuth 2.0 and Tasks API over httpx."""

    def __init__(
        self,
        client: OAuthClientConfig,
        *,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        now_ms: Callable[[], int] | None = None,
    ) -> None:
        self.client = client
        self.timeout = timeout
        self._transport = transport
        self._now_ms = now_ms or (lambda: int(time.time() * 1000))

    def authorization_url(self, scopes: Sequence[str], state: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client.client_id,
            "redirect_uri": self.client.redirect_uri,
            "scope": " ".join(scopes),
            "access_type": "offline",
            # Always prompt so Google returns a refresh token.
            "prompt": "consent",
            "state": state,
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> RawTokens:
        payload = self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "client_id": self.client.client_id,
                "client_secret": self.client.client_secret,
                "redirect_uri": self.client.redirect_uri,
            }
        )
        return RawTokens.from_token_response(payload, now_ms=self._now_ms())

    def refresh(self, refresh_token: str) -> RawTokens:
        payload = self._token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.client.client_id,
                "client_secret": self.client.client_secret,
            }
        )
        return RawTokens.from_token_response(payload, now_ms=self._now_ms())

    def revoke(self, token: str) -> None:
        self._request("POST", REVOKE_URL, data={"token": token})

    def fetch_identity(self, access_token: str) -> Identity:
        data = self._request("GET", USERINFO_URL, access_token=access_token)
        if not data.get("email"):
            raise ProviderFailure(FailureKind.TRANSIENT, "userinfo response has no email")
        return Identity(email=data["email"], name=data.get("name"))

    def check_access(self, access_token: str) -> None:
        self._request("GET", TASKLISTS_URL, params={"maxResults": 1}, access_token=access_token)

    def _token_request(self, form: dict[str, str]) -> dict[str, Any]:
        data = self._request("POST", TOKEN_URL, data=form)
        if "access_token" not in data:
            raise ProviderFailure(FailureKind.TRANSIENT, "token response has no access_token")
        return data

    def _request(
        self,
        method: str,
        url: str,
        *,
        data: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        access_token: str | None = None,
    ) -> dict[str, Any]:
        headers: dict[str, str] = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as http:
                response = http.request(method, url, data=data, params=params, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Request to %s failed: %s", url, type(exc).__name__)
            raise ProviderFailure(FailureKind.TRANSIENT, f"network error: {exc}") from exc

        if response.status_code >= 400:
            kind = classify_failure(response.status_code, response.text)
            logger.warning(
                "Provider returned HTTP %d for %s (%s)", response.status_code, url, kind
            )
            raise ProviderFailure(
                kind,
                f"HTTP {response.status_code}: {_error_summary(response)}",
                status_code=response.status_code,
            )

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderFailure(
                FailureKind.TRANSIENT, "provider returned a non-JSON response"
            ) from exc
        return body if isinstance(body, dict) else {}


def _error_summary(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return str(error.get("message") or error.get("status") or error)
        description = body.get("error_description")
        if error and description:
            return f"{error}: {description}"
        if error:
            return str(error)
    return response.text[:200]
