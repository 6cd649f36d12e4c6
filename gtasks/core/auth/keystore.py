"""Local symmetric key used to encrypt token material at rest."""

from __future__ import annotations

import contextlib
import logging
import os
import secrets
import tempfile
from pathlib import Path

from gtasks.errors import KeyStoreError
from gtasks.utils.files import PRIVATE_FILE_MODE, ensure_private_dir

logger = logging.getLogger(__name__)

KEY_SIZE = 32


class KeyStore:
    """Owns the single 32-byte key stored next to the config file.

    The key is generated on first use and never rotated. Losing or
    replacing the key file makes every stored token undecryptable.
    The key file only ever appears complete: it is written to a sibling
    temp file and hard-linked into place.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._key: bytes | None = None

    def get_or_create_key(self) -> bytes:
        """Return the persisted key, creating it if no key file exists."""
        if self._key is None:
            self._key = self._load_or_create_key()
        return self._key

    def exists(self) -> bool:
        return self.path.exists()

    def _load_or_create_key(self) -> bytes:
        if self.path.exists():
            return self._read_key()

        try:
            ensure_private_dir(self.path.parent)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
        except OSError as exc:
            raise KeyStoreError(f"Could not create key file in {self.path.parent}: {exc}") from exc

        tmp_path = Path(tmp_name)
        key = secrets.token_bytes(KEY_SIZE)
        try:
            with os.fdopen(fd, "wb") as handle:
                if hasattr(os, "fchmod"):
                    os.fchmod(handle.fileno(), PRIVATE_FILE_MODE)
                handle.write(key)
                handle.flush()
                os.fsync(handle.fileno())
            # link() never overwrites, so the first complete key to land wins.
            os.link(tmp_path, self.path)
        except FileExistsError:
            return self._read_key()
        except OSError as exc:
            raise KeyStoreError(f"Could not write key file {self.path}: {exc}") from exc
        finally:
            with contextlib.suppress(OSError):
                tmp_path.unlink()

        logger.info("Generated new encryption key at %s", self.path)
        return key

    def _read_key(self) -> bytes:
        try:
            key = self.path.read_bytes()
        except OSError as exc:
            raise KeyStoreError(f"Could not read key file {self.path}: {exc}") from exc
        if len(key) != KEY_SIZE:
            raise KeyStoreError(
                f"Key file {self.path} has {len(key)} bytes, expected {KEY_SIZE}"
            )
        return key
