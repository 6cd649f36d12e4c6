"""Tests for the Google OAuth provider over a mocked httpx transport."""

from __future__ import annotations

from collections.abc import Callable
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from gtasks.core.auth.provider import (
    SCOPES,
    TASKLISTS_URL,
    TOKEN_URL,
    USERINFO_URL,
    FailureKind,
    GoogleOAuthProvider,
    OAuthProvider,
    ProviderFailure,
    RawTokens,
    classify_failure,
)
from gtasks.models.account import OAuthClientConfig

NOW_MS = 1_767_000_000_000


def _provider(handler: Callable[[httpx.Request], httpx.Response]) -> GoogleOAuthProvider:
    client = OAuthClientConfig(
        client_id="cid",
        client_secret="secret",
        redirect_uri="http://localhost:3000/oauth/callback",
    )
    return GoogleOAuthProvider(
        client,
        transport=httpx.MockTransport(handler),
        now_ms=lambda: NOW_MS,
    )


def _form(request: httpx.Request) -> dict[str, str]:
    return {key: values[0] for key, values in parse_qs(request.content.decode()).items()}


def test_satisfies_protocol() -> None:
    assert isinstance(_provider(lambda r: httpx.Response(200)), OAuthProvider)


def test_authorization_url_requests_offline_consent() -> None:
    url = _provider(lambda r: httpx.Response(200)).authorization_url(SCOPES, "state-123")
    query = parse_qs(urlparse(url).query)

    assert query["access_type"] == ["offline"]
    assert query["prompt"] == ["consent"]
    assert query["state"] == ["state-123"]
    assert query["client_id"] == ["cid"]
    assert query["redirect_uri"] == ["http://localhost:3000/oauth/callback"]
    assert query["scope"][0].split() == list(SCOPES)


def test_exchange_code_posts_form_and_converts_expiry() -> None:
    seen: list[dict[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == TOKEN_URL
        seen.append(_form(request))
        return httpx.Response(
            200,
            json={
                "access_token": "ya29.a",
                "refresh_token": "1//r",
                "expires_in": 3599,
                "scope": " ".join(SCOPES),
                "token_type": "Bearer",
            },
        )

    tokens = _provider(handler).exchange_code("auth-code")

    assert seen[0]["grant_type"] == "authorization_code"
    assert seen[0]["code"] == "auth-code"
    assert seen[0]["redirect_uri"] == "http://localhost:3000/oauth/callback"
    assert tokens == RawTokens(
        access_token="ya29.a",
        refresh_token="1//r",
        expiry_date=NOW_MS + 3_599_000,
        scope=" ".join(SCOPES),
    )


def test_refresh_sends_refresh_token() -> None:
    seen: list[dict[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(_form(request))
        return httpx.Response(200, json={"access_token": "ya29.b", "expires_in": 60})

    tokens = _provider(handler).refresh("1//r")

    assert seen[0] == {
        "grant_type": "refresh_token",
        "refresh_token": "1//r",
        "client_id": "cid",
        "client_secret": "secret",
    }
    assert tokens.refresh_token is None
    assert tokens.expiry_date == NOW_MS + 60_000


@pytest.mark.parametrize(
    ("status", "body", "kind"),
    [
        (
            400,
            {"error": "invalid_grant", "error_description": "Token has been expired or revoked."},
            FailureKind.REVOKED,
        ),
        (401, {"error": "invalid_client"}, FailureKind.UNAUTHORIZED),
        (403, {"error": "access_denied"}, FailureKind.UNAUTHORIZED),
        (500, {"error": "internal_failure"}, FailureKind.TRANSIENT),
        (429, {"error": "rate_limit_exceeded"}, FailureKind.TRANSIENT),
    ],
)
def test_refresh_errors_are_classified(status: int, body: dict, kind: FailureKind) -> None:
    provider = _provider(lambda request: httpx.Response(status, json=body))

    with pytest.raises(ProviderFailure) as exc:
        provider.refresh("1//r")

    assert exc.value.kind is kind
    assert exc.value.status_code == status
    assert f"HTTP {status}" in exc.value.detail


def test_network_error_is_transient() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ProviderFailure) as exc:
        _provider(handler).refresh("1//r")

    assert exc.value.kind is FailureKind.TRANSIENT
    assert exc.value.status_code is None


def test_non_json_success_is_transient() -> None:
    provider = _provider(lambda request: httpx.Response(200, text="<html>oops</html>"))
    with pytest.raises(ProviderFailure) as exc:
        provider.refresh("1//r")
    assert exc.value.kind is FailureKind.TRANSIENT


def test_fetch_identity_uses_bearer_token() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == USERINFO_URL
        assert request.headers["Authorization"] == "Bearer ya29.a"
        return httpx.Response(200, json={"email": "alice@example.com", "name": "Alice"})

    identity = _provider(handler).fetch_identity("ya29.a")
    assert identity.email == "alice@example.com"
    assert identity.name == "Alice"


def test_check_access_lists_one_tasklist() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.host == httpx.URL(TASKLISTS_URL).host
        assert request.url.path.endswith("/lists")
        assert request.url.params["maxResults"] == "1"
        return httpx.Response(200, json={"items": []})

    _provider(handler).check_access("ya29.a")


@pytest.mark.parametrize(
    ("status", "message"),
    [(401, "Invalid Credentials"), (403, "Request had insufficient authentication scopes.")],
)
def test_check_access_unauthorized(status: int, message: str) -> None:
    body = {"error": {"code": status, "message": message}}
    provider = _provider(lambda request: httpx.Response(status, json=body))
    with pytest.raises(ProviderFailure) as exc:
        provider.check_access("ya29.a")
    assert exc.value.kind is FailureKind.UNAUTHORIZED
    assert message in exc.value.detail


def test_revoke_posts_token() -> None:
    seen: list[dict[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(_form(request))
        return httpx.Response(200)

    _provider(handler).revoke("1//r")
    assert seen == [{"token": "1//r"}]


@pytest.mark.parametrize(
    ("status", "body", "kind"),
    [
        (400, '{"error": "invalid_grant"}', FailureKind.REVOKED),
        (400, "Token has been REVOKED", FailureKind.REVOKED),
        (401, "", FailureKind.UNAUTHORIZED),
        (403, '{"error": {"code": 403, "status": "PERMISSION_DENIED"}}', FailureKind.UNAUTHORIZED),
        (400, '{"error": "invalid_token"}', FailureKind.UNAUTHORIZED),
        (503, "backend unavailable", FailureKind.TRANSIENT),
        (None, "", FailureKind.TRANSIENT),
    ],
)
def test_classify_failure(status: int | None, body: str, kind: FailureKind) -> None:
    assert classify_failure(status, body) is kind
