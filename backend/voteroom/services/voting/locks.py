"""Per-session lock manager.

Serializes load -> mutate -> store sequences for one session code. Each code
gets an independent FIFO ticket lock, so sessions never contend with each
other. Entries are dropped as soon as nobody holds or waits on them, which
also cleans up after deleted sessions.

There is no acquisition timeout: a holder that never releases stalls its
session. Use ``hold()`` so release happens on every exit path.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class _KeyLock:
    __slots__ = ('cond', 'next_ticket', 'serving', 'refs')

    def __init__(self):
        self.cond = threading.Condition(threading.Lock())
        self.next_ticket = 0
        self.serving = 0
        self.refs = 0


class LockHandle:
    """Ownership of one session lock; release exactly once."""

    def __init__(self, manager: 'SessionLockManager', key: str, entry: _KeyLock):
        self.key = key
        self._manager = manager
        self._entry = entry
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            raise RuntimeError(f"lock for {self.key!r} already released")
        self._released = True
        self._manager._release(self.key, self._entry)


class SessionLockManager:

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, _KeyLock] = {}

    def acquire(self, key: str) -> LockHandle:
        """Block until every earlier caller for ``key`` has released."""
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _KeyLock()
            entry.refs += 1
        with entry.cond:
            ticket = entry.next_ticket
            entry.next_ticket += 1
            while entry.serving != ticket:
                entry.cond.wait()
        return LockHandle(self, key, entry)

    def _release(self, key: str, entry: _KeyLock) -> None:
        with entry.cond:
            entry.serving += 1
            entry.cond.notify_all()
        with self._guard:
            entry.refs -= 1
            if entry.refs == 0 and self._locks.get(key) is entry:
                del self._locks[key]

    @contextmanager
    def hold(self, key: str) -> Iterator[LockHandle]:
        handle = self.acquire(key)
        try:
            yield handle
        finally:
            handle.release()

    def is_tracked(self, key: str) -> bool:
        with self._guard:
            return key in self._locks

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
