import time
from collections import OrderedDict
from typing import Any, Callable

from fixly.config import settings
from fixly.utils.performance import PerformanceMonitor, performance_monitor


class TTLCache:
    """Single-process key/value cache with a fixed time-to-live.

    Expired entries are dropped lazily on read and swept on every write.
    When full, the oldest inserted entry is evicted. Not safe to share
    between processes or threads.
    """

    def __init__(self, ttl_seconds: float, max_size: int,
                 monitor: PerformanceMonitor | None = None,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self.monitor = monitor
        self._clock = clock
        self._entries: OrderedDict[str, tuple[Any, float]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def set(self, key: str, value: Any, ttl: float | None = None):
        self.cleanup()
        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.max_size:
            self._entries.popitem(last=False)
        expires_at = self._clock() + (ttl if ttl is not None else self.ttl_seconds)
        self._entries[key] = (value, expires_at)

    def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            self._record(hit=False)
            return default
        value, expires_at = entry
        if self._clock() > expires_at:
            del self._entries[key]
            self._record(hit=False)
            return default
        self._record(hit=True)
        return value

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def invalidate_prefix(self, prefix: str) -> int:
        keys = [k for k in self._entries if k.startswith(prefix)]
        for key in keys:
            del self._entries[key]
        return len(keys)

    def clear(self):
        self._entries.clear()

    def cleanup(self):
        now = self._clock()
        expired = [k for k, (_, exp) in self._entries.items() if now > exp]
        for key in expired:
            del self._entries[key]

    def stats(self) -> dict:
        self.cleanup()
        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "hit_rate": self.monitor.cache_hit_rate if self.monitor else None,
        }

    def _record(self, hit: bool):
        if self.monitor is None:
            return
        if hit:
            self.monitor.record_cache_hit()
        else:
            self.monitor.record_cache_miss()


browse_cache = TTLCache(settings.cache_ttl_seconds, settings.cache_max_size, monitor=performance_monitor)
