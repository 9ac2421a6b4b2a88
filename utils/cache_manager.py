"""In-memory TTL cache owned by each source adapter.

Provides:
- TTLCache: key -> value mapping with per-entry absolute expiry
- make_key(): stable cache keys from operation name + arguments
- fold_text(): case-insensitive form of free-text arguments

Entries are read lazily (an expired entry is a miss and is dropped on read)
and purged in bulk by sweep(), which the source manager runs periodically.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class CacheEntry:
    """Cached value with its absolute expiry instant (clock seconds)."""

    value: Any
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at


def fold_text(text: str) -> str:
    """Case- and whitespace-insensitive form of free text (queries, genres).

    Examples:
        fold_text("  Naruto   Shippuden ") -> "naruto shippuden"
    """
    return " ".join(text.split()).casefold()


def make_key(operation: str, *args: Any) -> str:
    """Build a stable cache key.

    Arguments are used verbatim: ids and episode tokens are opaque and may
    differ only in case. Fold free text with fold_text() before passing it.

    Args:
        operation: Operation name (search, details, stream, ...)
        *args: Operation arguments

    Returns:
        Key like "search:naruto:1"

    Examples:
        make_key("search", fold_text("  Naruto "), 1) -> "search:naruto:1"
        make_key("stream", "ep-1", None, "sub") -> "stream:ep-1:-:sub"
        make_key("details", "a-AbC") -> "details:a-AbC"
    """
    parts = [operation]
    for arg in args:
        if arg is None:
            parts.append("-")
        elif hasattr(arg, "value"):  # Enum members
            parts.append(str(arg.value))
        else:
            parts.append(str(arg))
    return ":".join(parts)


class TTLCache:
    """Time-bounded memoization for one adapter.

    Args:
        clock: Monotonic seconds source (injectable for tests)
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._clock = clock
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None on miss/expiry."""
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if not entry.is_fresh(self._clock()):
            del self._entries[key]
            self.misses += 1
            return None
        self.hits += 1
        return entry.value

    def set(self, key: str, value: Any, ttl: float) -> None:
        """Store value for ttl seconds, overwriting any previous entry."""
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)

    def sweep(self) -> int:
        """Remove expired entries.

        Returns:
            Number of entries purged
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if not entry.is_fresh(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def clear_by_prefix(self, prefix: str) -> int:
        """Remove all entries whose key starts with prefix (e.g. "search:")."""
        keys = [key for key in self._entries if key.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def stats(self) -> dict:
        """Get cache statistics."""
        now = self._clock()
        live = sum(1 for entry in self._entries.values() if entry.is_fresh(now))
        return {
            "entries": len(self._entries),
            "live": live,
            "expired": len(self._entries) - live,
            "hits": self.hits,
            "misses": self.misses,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.is_fresh(self._clock())
