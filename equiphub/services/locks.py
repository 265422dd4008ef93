"""
Per-key mutual exclusion for request handlers running in the threadpool.

Locks are created on first use and dropped once no thread holds or waits on
them, so the table only grows with the number of equipment items being
assigned concurrently.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, Optional


class KeyedLock:
    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._waiters: Dict[Hashable, int] = {}

    def _checkout(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            self._waiters[key] = self._waiters.get(key, 0) + 1
            return lock

    def _checkin(self, key: Hashable) -> None:
        with self._guard:
            remaining = self._waiters[key] - 1
            if remaining:
                self._waiters[key] = remaining
            else:
                del self._waiters[key]
                del self._locks[key]

    @contextmanager
    def hold(self, key: Hashable, timeout: Optional[float] = None) -> Iterator[bool]:
        """Acquire the lock for ``key``; yields False if ``timeout`` expired first."""
        lock = self._checkout(key)
        acquired = lock.acquire(timeout=-1 if timeout is None else timeout)
        try:
            yield acquired
        finally:
            if acquired:
                lock.release()
            self._checkin(key)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


equipment_locks = KeyedLock()
