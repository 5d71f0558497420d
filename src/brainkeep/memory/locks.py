"""Per-resource advisory locks.

Tool calls are expected to be serialized by the host; these locks keep two
in-process writers off the same journal or vault file when they are not.
"""

from __future__ import annotations

import threading
import weakref
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

_registry_lock = threading.Lock()
# A lock lives only while some caller holds a reference to it
_locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()


def _get_lock(key: str) -> threading.Lock:
    with _registry_lock:
        lock = _locks.get(key)
        if lock is None:
            lock = _locks[key] = threading.Lock()
        return lock


@contextmanager
def resource_lock(path: Path) -> Iterator[None]:
    """Hold the lock for `path` (resolved) for the duration of the block."""
    lock = _get_lock(str(Path(path).resolve()))
    with lock:
        yield
