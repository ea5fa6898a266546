"""
Per-tournament in-process locks.

Structural operations (group generation, bracket generation, virtual
participant resolution, result recording) serialize on the tournament id.
RLock so a resolver called from inside result recording can re-acquire.
Entries live only while some caller holds or waits on the lock.
"""
import threading
import weakref
from contextlib import contextmanager
from typing import Iterator

_registry_lock = threading.Lock()
_tournament_locks: "weakref.WeakValueDictionary[int, threading.RLock]" = weakref.WeakValueDictionary()


def _lock_for(tournament_id: int) -> threading.RLock:
    with _registry_lock:
        lock = _tournament_locks.get(tournament_id)
        if lock is None:
            lock = threading.RLock()
            _tournament_locks[tournament_id] = lock
        return lock


@contextmanager
def tournament_lock(tournament_id: int) -> Iterator[None]:
    lock = _lock_for(tournament_id)
    with lock:
        yield
