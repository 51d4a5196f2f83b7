"""
Per-user serialization inside one process.

Work for different users never contends; work for the same user (event
ingestion, video-end signals, break expiry) runs one at a time. Across
gunicorn workers the same guarantee comes from row locks taken with
SELECT ... FOR UPDATE on the user's rows.

Locks live in a WeakValueDictionary so idle users do not accumulate.
"""
from __future__ import annotations

import threading
import weakref
from contextlib import ExitStack, contextmanager
from typing import Iterable, Iterator


class _UserLock:
    __slots__ = ("rlock", "__weakref__")

    def __init__(self) -> None:
        self.rlock = threading.RLock()


_registry_lock = threading.Lock()
_locks: "weakref.WeakValueDictionary[str, _UserLock]" = weakref.WeakValueDictionary()


def _lock_for(user_id: str) -> _UserLock:
    with _registry_lock:
        lock = _locks.get(user_id)
        if lock is None:
            lock = _UserLock()
            _locks[user_id] = lock
        return lock


@contextmanager
def user_lock(user_id: str) -> Iterator[None]:
    lock = _lock_for(user_id)
    with lock.rlock:
        yield


@contextmanager
def user_locks(user_ids: Iterable[str]) -> Iterator[None]:
    """Hold several users' locks at once, acquired in sorted order."""
    with ExitStack() as stack:
        for uid in sorted(set(user_ids)):
            stack.enter_context(user_lock(uid))
        yield
