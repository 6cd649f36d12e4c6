"""Error taxonomy for credential storage and lifecycle failures.

Every error carries a short ``hint`` the CLI prints next to the message so
the operator knows which action resolves it. Only ``ProviderError`` is
retryable; everything else needs operator action.
"""

from __future__ import annotations


class GTasksError(Exception):
    """Base class for all credential-manager errors."""

    hint: str = ""
    retryable: bool = False

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        if hint is not None:
            self.hint = hint


class ConfigNotFoundError(GTasksError):
    """Raised when the config file does not exist."""

    hint = 'Run "gtasks auth setup" to configure OAuth credentials.'

    def __init__(self, path: object) -> None:
        super().__init__(f"Config file not found: {path}")
        self.path = path


class ConfigInvalidError(GTasksError):
    """Raised when the config file cannot be parsed or validated."""

    hint = "Fix or remove the config file, then re-run setup."


class OAuthNotConfiguredError(GTasksError):
    """Raised when client credentials are missing from the config."""

    def __init__(self) -> None:
        super().__init__(
            "OAuth credentials not configured.",
            hint='Run "gtasks auth setup" to configure your Google Cloud OAuth credentials.',
        )


class AccountNotFoundError(GTasksError):
    """Raised when no account matches the requested email."""

    hint = 'Run "gtasks accounts list" to see configured accounts.'

    def __init__(self, email: str) -> None:
        super().__init__(f"Account not found: {email}")
        self.email = email


class NoAccountsConfiguredError(GTasksError):
    """Raised when an operation needs an account and none exist."""

    hint = 'Run "gtasks accounts add" to add an account.'

    def __init__(self) -> None:
        super().__init__("No accounts configured.")


class KeyStoreError(GTasksError):
    """Raised when the encryption key cannot be created or read."""

    hint = "Check permissions on the config directory. A lost key cannot be recovered."


class DecryptionFailedError(GTasksError):
    """Raised when a stored blob fails authentication or is malformed."""

    hint = "Stored credentials are unusable; remove and re-add the account."


class CredentialExpiredError(GTasksError):
    """Raised when the provider reports no valid session for an account."""

    def __init__(self, email: str, detail: str = "") -> None:
        message = f"Authentication expired for {email}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(
            message,
            hint=f'Re-authorize with "gtasks accounts add" and sign in as {email}.',
        )
        self.email = email


class AccessRevokedError(GTasksError):
    """Raised when the provider reports the grant as invalid or revoked."""

    def __init__(self, email: str) -> None:
        super().__init__(
            f"Access revoked for {email}",
            hint=f'Remove and re-add the account: "gtasks accounts remove {email}" '
            'then "gtasks accounts add".',
        )
        self.email = email


class ProviderError(GTasksError):
    """Raised for transient provider failures (network, rate limit, server)."""

    hint = "Temporary failure talking to Google; retry shortly."
    retryable = True

    def __init__(self, email: str | None, detail: str) -> None:
        prefix = f"Provider error for {email}" if email else "Provider error"
        super().__init__(f"{prefix}: {detail}")
        self.email = email
        self.detail = detail


class AuthorizationTimeoutError(GTasksError):
    """Raised when the interactive authorization redirect never arrives."""

    hint = "Re-run the command and finish signing in within the time limit."

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Authentication timed out after {timeout:g} seconds")
        self.timeout = timeout


class StorageWriteFailedError(GTasksError):
    """Raised when an atomic write could not replace the target file."""

    hint = "The previous file is unchanged. Check disk space and permissions."
