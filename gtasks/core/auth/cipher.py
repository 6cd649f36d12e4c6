"""Authenticated encryption of token strings (AES-256-GCM).

A blob is ``base64(nonce[16] || tag[16] || ciphertext)``. Every call to
``encrypt`` draws a fresh random nonce; ``decrypt`` fails closed with
``DecryptionFailedError`` on any malformed, tampered, or foreign blob.
"""

from __future__ import annotations

import base64
import binascii
import os
from dataclasses import dataclass, field

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from gtasks.core.auth.keystore import KeyStore
from gtasks.errors import DecryptionFailedError
from gtasks.models.account import TokenBundle

NONCE_SIZE = 16
TAG_SIZE = 16


@dataclass(frozen=True)
class Credential:
    """Plaintext credential handed to callers. Lives in memory only."""

    email: str
    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)
    expires_at: int | None = None
    scope: str | None = None


class TokenCipher:
    """Encrypts and decrypts token strings with the key store's key."""

    def __init__(self, key_store: KeyStore) -> None:
        self.key_store = key_store

    def encrypt(self, plaintext: str) -> str:
        aesgcm = AESGCM(self.key_store.get_or_create_key())
        nonce = os.urandom(NONCE_SIZE)
        sealed = aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        return base64.b64encode(nonce + tag + ciphertext).decode("ascii")

    def decrypt(self, blob: str) -> str:
        try:
            raw = base64.b64decode(blob, validate=True)
        except (binascii.Error, ValueError, TypeError) as exc:
            raise DecryptionFailedError("Encrypted token is not valid base64") from exc
        # Reject non-canonical encodings so any edit to the stored text is detected.
        if base64.b64encode(raw).decode("ascii") != blob:
            raise DecryptionFailedError("Encrypted token is not canonically encoded")
        if len(raw) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionFailedError("Encrypted token is truncated")

        nonce = raw[:NONCE_SIZE]
        tag = raw[NONCE_SIZE : NONCE_SIZE + TAG_SIZE]
        ciphertext = raw[NONCE_SIZE + TAG_SIZE :]
        aesgcm = AESGCM(self.key_store.get_or_create_key())
        try:
            plaintext = aesgcm.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as exc:
            raise DecryptionFailedError(
                "Failed to decrypt token. It may be corrupted or the encryption key changed."
            ) from exc
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecryptionFailedError("Decrypted token is not valid UTF-8") from exc

    def encrypt_tokens(
        self,
        access_token: str,
        refresh_token: str,
        expires_at: int | None,
        scope: str | None = None,
    ) -> TokenBundle:
        """Encrypt a token pair into a storable bundle."""
        return TokenBundle(
            access_token=self.encrypt(access_token),
            refresh_token=self.encrypt(refresh_token),
            expires_at=expires_at,
            scope=scope,
        )

    def decrypt_tokens(self, email: str, bundle: TokenBundle) -> Credential:
        """Decrypt a stored bundle for immediate use."""
        return Credential(
            email=email,
            access_token=self.decrypt(bundle.access_token),
            refresh_token=self.decrypt(bundle.refresh_token),
            expires_at=bundle.expires_at,
            scope=bundle.scope,
        )
