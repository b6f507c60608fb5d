from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator

from domain.errors import RepositoryError


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.holders = 0


class KeyedLock:
    """
    One mutex per key, created on first use.

    Used to serialize read-modify-write cycles on a single account while
    letting operations on different accounts proceed in parallel. A key's
    mutex is dropped once nobody holds or waits for it.
    """

    def __init__(self, timeout: float = 5.0) -> None:
        self._timeout = timeout
        self._guard = threading.Lock()
        self._entries: Dict[Hashable, _Entry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def _enter(self, key: Hashable) -> _Entry:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.holders += 1
            return entry

    def _leave(self, key: Hashable, entry: _Entry) -> None:
        with self._guard:
            entry.holders -= 1
            if entry.holders == 0:
                del self._entries[key]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        entry = self._enter(key)
        try:
            if not entry.lock.acquire(timeout=self._timeout):
                raise RepositoryError(f"Timed out waiting for lock on {key!r}")
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            self._leave(key, entry)
