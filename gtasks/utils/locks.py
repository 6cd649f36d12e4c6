"""In-process lock helpers."""

from __future__ import annotations

import threading
from collections.abc import Generator
from contextlib import contextmanager


class KeyedLock:
    """A family of re-entrant locks addressed by string key.

    Keys are case-folded, so ``A@x.com`` and ``a@x.com`` share a lock.
    Locks are created on first use and never discarded; the key space
    is the set of configured accounts, which stays small.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.RLock] = {}

    def _get(self, key: str) -> threading.RLock:
        normalized = key.casefold()
        with self._guard:
            lock = self._locks.get(normalized)
            if lock is None:
                lock = threading.RLock()
                self._locks[normalized] = lock
            return lock

    @contextmanager
    def hold(self, key: str) -> Generator[None, None, None]:
        """Hold the lock for ``key`` for the duration of the block."""
        lock = self._get(key)
        with lock:
            yield
