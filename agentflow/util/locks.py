"""In-process keyed locks.

Serializes writers that touch the same resource (e.g. the current-version
flag of one workflow) inside a single process. Cross-process safety comes
from the database transaction and constraints; this lock only removes the
contention so that same-process writers never race each other.

Typical usage:

    with workflow_locks.hold(workflow_id):
        ...clear + set current version...
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class KeyedLock:
    """A registry of re-entrant locks, one per key, released when unused."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}
        self._holders: Dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.RLock())
            self._holders[key] = self._holders.get(key, 0) + 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._holders[key] -= 1
                if self._holders[key] == 0:
                    del self._holders[key]
                    del self._locks[key]

    def active_keys(self) -> int:
        with self._guard:
            return len(self._locks)
