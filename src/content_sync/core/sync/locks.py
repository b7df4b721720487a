"""Per content type locking."""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class KeyedLock:
    """One re-entrant lock per key.

    Locks are created on first use and dropped once nobody holds or waits
    for them, so the map does not grow with every key ever synced.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}
        self._users: Dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            self._users[key] = self._users.get(key, 0) + 1

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]

    def is_locked(self, key: str) -> bool:
        """Whether any thread holds or waits for ``key``."""
        with self._guard:
            return key in self._users
