"""
Per-payee locks.

Compliance decisions and payout initiation for the same payee run one at a
time; different payees never wait on each other.

Locks are process-local: reviews and payout initiation are serialized only
when the API runs as a single worker process. Row locks (SELECT ... FOR
UPDATE) narrow the window between processes on PostgreSQL; SQLite ignores
them.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class PayeeLockRegistry:
    """Re-entrant lock per payee, kept only while a thread holds or waits on it."""

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._users: Dict[str, int] = {}
        self._registry_lock = threading.Lock()

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._locks)

    def _checkout(self, payee_ref: str) -> threading.RLock:
        with self._registry_lock:
            lock = self._locks.get(payee_ref)
            if lock is None:
                lock = threading.RLock()
                self._locks[payee_ref] = lock
            self._users[payee_ref] = self._users.get(payee_ref, 0) + 1
            return lock

    def _checkin(self, payee_ref: str) -> None:
        with self._registry_lock:
            remaining = self._users[payee_ref] - 1
            if remaining:
                self._users[payee_ref] = remaining
            else:
                del self._users[payee_ref]
                del self._locks[payee_ref]

    @contextmanager
    def hold(self, payee_ref: str) -> Iterator[None]:
        """Hold the payee's lock for the duration of the block."""
        lock = self._checkout(payee_ref)
        try:
            with lock:
                yield
        finally:
            self._checkin(payee_ref)
