"""Interactive authorization-code flow over a loopback redirect."""

from __future__ import annotations

import logging
import secrets
import threading
import webbrowser
from collections.abc import Callable
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from types import TracebackType
from urllib.parse import parse_qs, urlparse

from gtasks.core.auth.lifecycle import CredentialManager
from gtasks.core.auth.provider import SCOPES, Identity, OAuthProvider, ProviderFailure
from gtasks.errors import AuthorizationTimeoutError, GTasksError, ProviderError

logger = logging.getLogger(__name__)

DEFAULT_AUTH_TIMEOUT = 300.0
DEFAULT_PORT = 3000

_SUCCESS_HTML = "<h1>Authentication Successful</h1><p>You can close this window.</p>"
_FAILURE_HTML = "<h1>Authentication Failed</h1><p>You can close this window.</p>"
_MISSING_HTML = "<h1>Missing Code</h1><p>No authorization code received.</p>"


class RedirectListener:
    """Temporary HTTP server that captures the OAuth redirect.

    Use as a context manager; the server is shut down on exit whether
    or not a code arrived.
    """

    def __init__(self, redirect_uri: str, *, timeout: float = DEFAULT_AUTH_TIMEOUT) -> None:
        parsed = urlparse(redirect_uri)
        self.host = parsed.hostname or "127.0.0.1"
        self.port = parsed.port if parsed.port is not None else DEFAULT_PORT
        self.path = parsed.path or "/"
        self.timeout = timeout
        self._received = threading.Event()
        self._params: dict[str, str] = {}
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def bound_port(self) -> int:
        if self._server is None:
            return self.port
        return int(self._server.server_port)

    def __enter__(self) -> RedirectListener:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.stop()

    def start(self) -> None:
        listener = self

        class Handler(BaseHTTPRequestHandler):
            def log_message(self, _format: str, *_args: object) -> None:
                return

            def _send_html(self, status: int, html: str) -> None:
                encoded = html.encode("utf-8")
                self.send_response(status)
                self.send_header("Content-Type", "text/html; charset=utf-8")
                self.send_header("Content-Length", str(len(encoded)))
                self.end_headers()
                self.wfile.write(encoded)

            def do_GET(self) -> None:  # noqa: N802
                parsed = urlparse(self.path)
                if parsed.path != listener.path:
                    self.send_response(404)
                    self.end_headers()
                    return
                query = {key: values[0] for key, values in parse_qs(parsed.query).items()}
                if "error" in query:
                    self._send_html(400, _FAILURE_HTML)
                elif "code" not in query:
                    self._send_html(400, _MISSING_HTML)
                else:
                    self._send_html(200, _SUCCESS_HTML)
                listener._deliver(query)

        try:
            self._server = ThreadingHTTPServer((self.host, self.port), Handler)
        except OSError as exc:
            raise GTasksError(
                f"Could not listen on {self.host}:{self.port}: {exc}",
                hint="Close the application using this port or change the redirect URI.",
            ) from exc
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        logger.debug("Listening for OAuth redirect on %s:%d%s", self.host, self.bound_port, self.path)

    def stop(self) -> None:
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self._server = None
        self._thread = None

    def _deliver(self, params: dict[str, str]) -> None:
        if self._received.is_set():
            return
        self._params = params
        self._received.set()

    def wait_for_code(self, expected_state: str | None = None) -> str:
        """Block until the redirect arrives and return the authorization code."""
        if not self._received.wait(self.timeout):
            raise AuthorizationTimeoutError(self.timeout)
        params = self._params
        if "error" in params:
            raise ProviderError(None, f"OAuth error: {params['error']}")
        if expected_state is not None and params.get("state") != expected_state:
            raise ProviderError(None, "OAuth state mismatch; discarding redirect")
        code = params.get("code")
        if not code:
            raise ProviderError(None, "No authorization code received")
        return code


def authenticate_new_account(
    manager: CredentialManager,
    provider: OAuthProvider,
    redirect_uri: str,
    *,
    timeout: float = DEFAULT_AUTH_TIMEOUT,
    open_browser: Callable[[str], object] = webbrowser.open,
    on_url: Callable[[str], None] | None = None,
) -> Identity:
    """Run the browser flow and store the resulting credential.

    Returns the identity the tokens belong to.
    """
    state = secrets.token_urlsafe(16)
    url = provider.authorization_url(SCOPES, state)

    with RedirectListener(redirect_uri, timeout=timeout) as listener:
        if on_url is not None:
            on_url(url)
        open_browser(url)
        code = listener.wait_for_code(state)

    try:
        raw_tokens = provider.exchange_code(code)
        identity = provider.fetch_identity(raw_tokens.access_token)
    except ProviderFailure as exc:
        raise ProviderError(None, exc.detail) from exc

    manager.store_new_credential(identity.email, identity.name, raw_tokens)
    return identity
