"""
In-process keyed locks for the balance critical section.

One lock per (employee_id, leave_type_id, year). Callers in the same process
queue on the key; different keys never contend. Cross-process safety comes
from the optimistic version column on the balance row, not from here.

A key's lock lives only while someone holds or waits for it.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator, Optional

from leave_portal.core.config import settings
from leave_portal.core.exceptions import TransientError

logger = logging.getLogger(__name__)


class KeyedLockRegistry:
    def __init__(self, timeout: Optional[float] = None):
        self._timeout = timeout
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._users: Dict[Hashable, int] = {}

    @property
    def key_count(self) -> int:
        """Keys currently held or waited on."""
        with self._guard:
            return len(self._locks)

    @property
    def timeout(self) -> float:
        return self._timeout if self._timeout is not None else settings.lock_timeout_seconds

    def _check_out(self, key: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            self._users[key] = self._users.get(key, 0) + 1
            return lock

    def _check_in(self, key: Hashable):
        with self._guard:
            remaining = self._users[key] - 1
            if remaining:
                self._users[key] = remaining
            else:
                del self._users[key]
                del self._locks[key]

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Acquire the lock for `key` or raise TransientError after the timeout."""
        lock = self._check_out(key)
        try:
            if not lock.acquire(timeout=self.timeout):
                logger.warning(f"Timed out waiting for balance lock {key}")
                raise TransientError(
                    "Another operation on this leave balance is in progress, please retry.",
                    details={"key": list(key) if isinstance(key, tuple) else key}
                )
            try:
                yield
            finally:
                lock.release()
        finally:
            self._check_in(key)


balance_locks = KeyedLockRegistry()
