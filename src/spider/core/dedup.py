from __future__ import annotations

import threading
from typing import Iterable, Set


class Deduplicator:
    """Thread-safe seen-set with an atomic check-and-insert.

    `admit` returns True for exactly one caller per key, however many threads
    race on it.
    """

    def __init__(self, keys: Iterable[str] = ()) -> None:
        self._lock = threading.Lock()
        self._seen: Set[str] = set(keys)

    def admit(self, key: str) -> bool:
        with self._lock:
            return self.admit_locked(key)

    def admit_locked(self, key: str) -> bool:
        """`admit` for callers that already serialize access (the frontier)."""
        if key in self._seen:
            return False
        self._seen.add(key)
        return True

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._seen

    def __len__(self) -> int:
        with self._lock:
            return len(self._seen)
