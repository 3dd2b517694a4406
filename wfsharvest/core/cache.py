"""Time-based cache passed explicitly to components that need one."""

import time
from collections import OrderedDict
from typing import Any, Callable, Generic, Hashable, Optional, TypeVar

T = TypeVar("T")


class TTLCache(Generic[T]):
    """Small in-memory cache with per-entry expiry.

    Entries expire ``ttl`` seconds after they were stored. When
    ``max_entries`` is set the oldest entry is evicted first.

    Examples:
        >>> cache = TTLCache(ttl=60)
        >>> cache.set("https://example.com/wfs", "<xml/>")
        >>> cache.get("https://example.com/wfs")
        '<xml/>'
        >>> cache.invalidate("https://example.com/wfs")
        True
    """

    def __init__(
        self,
        ttl: float = 900.0,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize cache.

        Args:
            ttl: Seconds an entry stays valid (0 disables caching)
            max_entries: Optional upper bound on stored entries
            clock: Time source, injectable for tests
        """
        if ttl < 0:
            raise ValueError(f"ttl must be >= 0, got {ttl}")
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[Hashable, tuple[float, T]] = OrderedDict()

    def get(self, key: Hashable, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return default
        return value

    def set(self, key: Hashable, value: T) -> None:
        if self.ttl == 0:
            return
        self._entries.pop(key, None)
        self._entries[key] = (self._clock() + self.ttl, value)
        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def invalidate(self, key: Hashable) -> bool:
        """Drop one entry. Returns True if it was present."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        sentinel = object()
        return self.get(key, sentinel) is not sentinel

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for expires_at, _ in self._entries.values() if now < expires_at)
