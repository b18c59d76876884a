"""In-process response cache with a fixed TTL.

Entries are only evicted when a lookup finds them expired. Per-process,
so two server processes never share results.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable

from .config import CACHE_TTL


def make_key(owner: str, repo: str, time_range: str) -> str:
    return f"{owner}/{repo}/{time_range}".lower()


class TTLCache:
    """Key -> (value, stored_at) map with lazy expiry."""

    def __init__(self, ttl: float = CACHE_TTL, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, stored_at = entry
            if self._clock() - stored_at > self.ttl:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock())

    def __contains__(self, key: str) -> bool:
        # Raw membership, ignores expiry
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
