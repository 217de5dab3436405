# camfleet/utils/locks.py
"""
Per-key mutexes for the coordinator.

Registry upserts and mailbox enqueue/drain for the same device_id are
serialised; different device ids get different locks and never contend.
Locks are process-local — run a single worker or rely on the database
transaction checks in command_mailbox when scaling out.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class KeyedLock:
    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self._lock_for(key)
        with lock:
            yield


# Shared by device_registry and command_mailbox
device_locks = KeyedLock()
