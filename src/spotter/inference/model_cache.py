"""
Process-lifetime cache of loaded inference backends.

The cache is an explicit object: create one at process start and hand it to
every ModelLoader that should share models. Two loaders with different
caches never share backends.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

from .backend import InferenceBackend


class ModelCache:
    """
    Thread-safe name -> backend cache with load-once semantics.

    Concurrent get_or_load() calls for the same name run the loader once;
    the other callers block until it finishes and then receive the cached
    backend. A failed load caches nothing, so the next call retries.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, InferenceBackend] = {}
        self._key_locks: Dict[str, threading.Lock] = {}

    def get(self, name: str) -> Optional[InferenceBackend]:
        with self._lock:
            return self._entries.get(name)

    def put(self, name: str, backend: InferenceBackend) -> None:
        with self._lock:
            self._entries[name] = backend

    def _key_lock(self, name: str) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(name)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[name] = lock
            return lock

    def get_or_load(self, name: str, load: Callable[[], InferenceBackend]) -> InferenceBackend:
        cached = self.get(name)
        if cached is not None:
            return cached

        with self._key_lock(name):
            cached = self.get(name)
            if cached is not None:
                return cached

            backend = load()
            self.put(name, backend)
            logging.info(f"Model cached: {name}")
            return backend

    def evict(self, name: str) -> None:
        with self._lock:
            self._entries.pop(name, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._entries)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
