"""
Bounded in-process TTL cache.

Instances are created by the AccessControl container and handed to the
components that need them; nothing here is module-level state. The clock
is injectable so expiry can be tested without sleeping.
"""

import time
from collections import OrderedDict
from typing import Any, Callable, Hashable, Optional

Clock = Callable[[], float]

_MISSING = object()


class TTLCache:
    """LRU-bounded mapping whose entries expire ``ttl`` seconds after insertion."""

    def __init__(
        self,
        ttl: float,
        max_entries: int = 1024,
        clock: Clock = time.monotonic,
    ):
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[Hashable, tuple[float, Any]] = OrderedDict()

    def get(self, key: Hashable, default: Optional[Any] = None) -> Any:
        entry = self._entries.get(key, _MISSING)
        if entry is _MISSING:
            return default

        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return default

        self._entries.move_to_end(key)
        return value

    def set(self, key: Hashable, value: Any) -> None:
        self._entries[key] = (self._clock() + self.ttl, value)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def invalidate(self, *keys: Hashable) -> None:
        for key in keys:
            self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        return len(self._entries)
