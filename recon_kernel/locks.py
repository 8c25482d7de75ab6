"""
Per-entity mutual exclusion.

Responsibility:
    Serialize mutating operations on a single GRN, invoice or job while
    leaving operations on unrelated entities free to run in parallel.  This
    is the in-process counterpart of the row lock (``SELECT ... FOR UPDATE``)
    the SQL store takes inside its transaction.

Invariants enforced:
    - At most one holder per key at a time.
    - The table only holds entries for keys that are held or awaited;
      an entry is dropped when its last user releases it.
"""

from __future__ import annotations

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class KeyedLockTable:
    """Reference-counted table of locks keyed by entity identity."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[Hashable, _Entry] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def is_held(self, key: Hashable) -> bool:
        with self._guard:
            entry = self._entries.get(key)
            return entry is not None and entry.lock.locked()
