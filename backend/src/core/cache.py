"""In-process caches with an injectable clock and per-key async locks."""
import asyncio
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")

# Returns seconds from an arbitrary monotonic origin
Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """A cached value and the clock reading at which it was stored."""

    value: V
    stored_at: float


class TTLCache(Generic[K, V]):
    """
    Key/value cache with a time-to-live and an optional entry cap.

    Expired entries are not evicted proactively: `get` ignores them and the next
    `set` for the same key replaces them. When `max_entries` is exceeded the
    oldest stored entry is dropped.
    """

    def __init__(
        self,
        ttl_seconds: float | None,
        max_entries: int | None = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: dict[K, CacheEntry[V]] = {}

    @property
    def ttl_seconds(self) -> float | None:
        """Validity window, None means entries never expire."""
        return self._ttl

    def is_valid(self, entry: CacheEntry[V]) -> bool:
        """Check `now - stored_at < ttl`."""
        if self._ttl is None:
            return True
        return self._clock() - entry.stored_at < self._ttl

    def get(self, key: K) -> V | None:
        """Return the cached value if present and still valid."""
        entry = self._entries.get(key)
        if entry is None or not self.is_valid(entry):
            return None
        return entry.value

    def get_entry(self, key: K) -> CacheEntry[V] | None:
        """Return the raw entry regardless of validity (stale reads)."""
        return self._entries.get(key)

    def set(self, key: K, value: V) -> CacheEntry[V]:
        """Store a value stamped with the current clock reading."""
        entry = CacheEntry(value=value, stored_at=self._clock())
        # Re-insert so dict order tracks store time for capacity eviction
        self._entries.pop(key, None)
        self._entries[key] = entry
        if self._max_entries is not None:
            while len(self._entries) > self._max_entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
        return entry

    def delete(self, key: K) -> bool:
        """Remove a key, returning whether it was present."""
        return self._entries.pop(key, None) is not None

    def delete_where(self, predicate: Callable[[K, V], bool]) -> int:
        """Remove every entry matching predicate(key, value). Returns count removed."""
        doomed = [key for key, entry in self._entries.items() if predicate(key, entry.value)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        """Drop all entries."""
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[K]:
        return iter(list(self._entries))


class KeyedLocks:
    """
    One asyncio.Lock per key.

    Operations on distinct keys never contend; operations on the same key
    (an authority refresh, a read-modify-write of a record) are serialized.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, key: str) -> asyncio.Lock:
        """Get or create the lock for a key."""
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def discard(self, key: str) -> None:
        """Forget the lock for a key that no longer exists."""
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
