"""Bounded TTL cache shared by every resolution layer.

Entries expire a fixed time after insertion. An expired entry is treated
exactly like a miss and is dropped on the access that finds it. When the
cache is full, expired entries are purged first and then the oldest
insertion is evicted.
"""

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Hashable, Iterator


@dataclass
class CacheEntry:
    """A stored value with its insertion and expiry times."""
    key: Hashable
    value: Any
    inserted_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class TTLCache:
    """Key -> value store with a maximum size and per-entry expiry."""

    def __init__(
        self,
        max_size: int,
        ttl: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries: OrderedDict[Hashable, CacheEntry] = OrderedDict()

    def get(self, key: Hashable, default: Any = None) -> Any:
        """Return the live value for key, or default if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return default
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return default
        return entry.value

    def set(self, key: Hashable, value: Any) -> None:
        """Store value under key; re-setting a key restarts its TTL."""
        now = self._clock()
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.max_size:
            self._purge_expired(now)
            while len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)

        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            inserted_at=now,
            expires_at=now + self.ttl,
        )

    def delete(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def size(self) -> int:
        """Number of physically stored entries, expired ones included."""
        return len(self._entries)

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def keys(self) -> Iterator[Hashable]:
        """Live keys in insertion order."""
        now = self._clock()
        return iter([k for k, e in self._entries.items() if not e.is_expired(now)])

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]


_MISSING = object()
