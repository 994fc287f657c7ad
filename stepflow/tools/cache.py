from __future__ import annotations

import time
from typing import Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

V = TypeVar("V")


class TTLCache(Generic[V]):
    """Time-bounded result cache for idempotent tool calls."""

    def __init__(
        self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[float, V]] = {}

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [k for k, (stored, _) in self._entries.items() if now - stored > self._ttl]
        for key in expired:
            del self._entries[key]

    def get(self, key: Hashable) -> Optional[V]:
        self._evict_expired()
        entry = self._entries.get(key)
        return entry[1] if entry else None

    def set(self, key: Hashable, value: V) -> None:
        self._entries[key] = (self._clock(), value)

    def __len__(self) -> int:
        self._evict_expired()
        return len(self._entries)
