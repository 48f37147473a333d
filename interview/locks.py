from __future__ import annotations  # Per-session mutual exclusion

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List


class SessionLocks:  # Lock per session id, dropped once no thread holds or waits on it
    def __init__(self) -> None:
        self._locks: Dict[str, List] = {}  # session_id -> [lock, holders]
        self._guard = threading.Lock()

    @contextmanager
    def lock_for(self, session_id: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(session_id)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[session_id] = entry
            entry[1] += 1
        lock: threading.Lock = entry[0]
        try:
            with lock:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(session_id, None)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


__all__ = ["SessionLocks"]
