"""
Per-key locks.

The pump read-modify-write (read status -> validate -> write status ->
append history) must not interleave for the same device. `KeyedLock` hands
out one `threading.Lock` per key and forgets it once nobody holds or waits
on it, so the registry stays as small as the number of busy devices.
"""

import threading
from contextlib import contextmanager
from typing import Iterator


class KeyedLock:
    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
