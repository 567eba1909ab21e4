import logging
import time
import uuid
from dataclasses import dataclass

from fixly.config import settings

logger = logging.getLogger("fixly.performance")


@dataclass
class Timer:
    id: str
    start: float
    label: str = ""


class PerformanceMonitor:
    """Process-local request and cache counters.

    Figures reset with the process and are not aggregated across workers.
    """

    def __init__(self, slow_ms: int | None = None, max_samples: int = 1000, max_slow: int = 100):
        self.slow_ms = slow_ms if slow_ms is not None else settings.slow_request_ms
        self.max_samples = max_samples
        self.max_slow = max_slow
        self.clear()

    def clear(self):
        self.requests = 0
        self.errors = 0
        self.cache_hits = 0
        self.cache_misses = 0
        self.response_times: list[float] = []
        self.slow_requests: list[dict] = []

    def start_timer(self, label: str = "") -> Timer:
        return Timer(id=f"req_{uuid.uuid4().hex[:12]}", start=time.perf_counter(), label=label)

    def end_timer(self, timer: Timer, success: bool = True) -> float:
        duration_ms = (time.perf_counter() - timer.start) * 1000
        self.requests += 1
        if not success:
            self.errors += 1

        self.response_times.append(duration_ms)
        if len(self.response_times) > self.max_samples:
            self.response_times = self.response_times[-self.max_samples:]

        if duration_ms > self.slow_ms:
            logger.warning("Slow request %s (%s) took %.0fms", timer.id, timer.label, duration_ms)
            self.slow_requests.append({
                "id": timer.id,
                "label": timer.label,
                "duration_ms": round(duration_ms, 1),
                "timestamp": time.time(),
            })
            if len(self.slow_requests) > self.max_slow:
                self.slow_requests = self.slow_requests[-self.max_slow:]
        return duration_ms

    def record_cache_hit(self):
        self.cache_hits += 1

    def record_cache_miss(self):
        self.cache_misses += 1

    @property
    def cache_hit_rate(self) -> float:
        lookups = self.cache_hits + self.cache_misses
        return round(self.cache_hits / lookups * 100, 2) if lookups else 0.0

    def get_slow_requests(self, limit: int = 10) -> list[dict]:
        return sorted(self.slow_requests, key=lambda r: r["duration_ms"], reverse=True)[:limit]

    def stats(self) -> dict:
        avg = sum(self.response_times) / len(self.response_times) if self.response_times else 0
        return {
            "total_requests": self.requests,
            "average_response_ms": round(avg),
            "slow_requests": len(self.slow_requests),
            "cache_hit_rate": self.cache_hit_rate,
            "errors": self.errors,
            "error_rate": round(self.errors / self.requests * 100, 2) if self.requests else 0.0,
        }


performance_monitor = PerformanceMonitor()
