from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


def candle_cache_key(coin_id: str, days: int) -> str:
    return f"{coin_id}_ohlc_{days}d"


@dataclass(frozen=True)
class CacheEntry:
    timestamp: float
    payload: Any


class TTLCache:
    """Process-lifetime memo of payloads, valid for ``ttl_seconds`` after a put.

    Expired entries are not evicted; they are replaced when the same key is
    written again. Values are replaced whole, never mutated in place.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.time) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.timestamp < self.ttl_seconds

    def get(self, key: str) -> tuple[Any, bool]:
        entry = self._entries.get(key)
        if entry is None or not self._is_fresh(entry):
            return None, False
        return entry.payload, True

    def put(self, key: str, payload: Any) -> None:
        self._entries[key] = CacheEntry(timestamp=self._clock(), payload=payload)

    def has_fresh_entry(self) -> bool:
        return any(self._is_fresh(entry) for entry in self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)
