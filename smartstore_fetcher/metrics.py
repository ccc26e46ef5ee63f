import time
from collections import Counter, deque
from dataclasses import dataclass


@dataclass
class RequestRecord:
    """
    One fetch as seen by the caller.

    Fields:
        timestamp   : Wall-clock time the fetch finished (seconds).
        latency_ms  : End-to-end latency in milliseconds.
        success     : Whether a result was returned.
        cached      : Whether the result came from the cache.
        error       : Classification tag of the failure (e.g. "CAPTCHA"),
                      None on success.
    """
    timestamp: float
    latency_ms: float
    success: bool
    cached: bool = False
    error: str | None = None


def _percentile(sorted_values: list[float], q: float) -> float:
    return sorted_values[min(len(sorted_values) - 1, int(len(sorted_values) * q))]


def format_uptime(seconds: float) -> str:
    seconds = int(seconds)
    minutes, hours = seconds // 60, seconds // 3600
    if hours > 0:
        return f"{hours}h {minutes % 60}m {seconds % 60}s"
    if minutes > 0:
        return f"{minutes}m {seconds % 60}s"
    return f"{seconds}s"


class MetricsTracker:
    """
    Ring buffer of the most recent fetches plus on-demand summaries.

    The buffer holds at most `capacity` records; older ones are dropped
    first. Summaries filter by recency and sort latencies on every call.
    """

    def __init__(self, capacity: int = 10_000, clock=time.time):
        self.capacity = capacity
        self._clock = clock
        self._records: deque[RequestRecord] = deque(maxlen=capacity)
        self._started_at = clock()

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> list[RequestRecord]:
        return list(self._records)

    def record(self, latency_ms: float, success: bool, cached: bool = False, error: str | None = None) -> None:
        self._records.append(
            RequestRecord(timestamp=self._clock(), latency_ms=latency_ms, success=success, cached=cached, error=error)
        )

    def summary(self, window_minutes: float = 60) -> dict:
        now = self._clock()
        uptime = now - self._started_at
        window_s = window_minutes * 60
        recent = [r for r in self._records if now - r.timestamp < window_s]

        if not recent:
            return {
                "total_requests": 0,
                "successful_requests": 0,
                "failed_requests": 0,
                "cached_requests": 0,
                "success_rate": 0.0,
                "error_rate": 0.0,
                "cache_hit_rate": 0.0,
                "average_latency_ms": 0,
                "median_latency_ms": 0,
                "p95_latency_ms": 0,
                "p99_latency_ms": 0,
                "requests_per_minute": 0,
                "uptime_s": int(uptime),
                "uptime": format_uptime(uptime),
            }

        total = len(recent)
        successful = sum(1 for r in recent if r.success)
        cached = sum(1 for r in recent if r.cached)
        latencies = sorted(r.latency_ms for r in recent)

        return {
            "total_requests": total,
            "successful_requests": successful,
            "failed_requests": total - successful,
            "cached_requests": cached,
            "success_rate": round(successful / total * 100, 2),
            "error_rate": round((total - successful) / total * 100, 2),
            "cache_hit_rate": round(cached / total * 100, 2),
            "average_latency_ms": round(sum(latencies) / total),
            "median_latency_ms": round(_percentile(latencies, 0.5)),
            "p95_latency_ms": round(_percentile(latencies, 0.95)),
            "p99_latency_ms": round(_percentile(latencies, 0.99)),
            "min_latency_ms": round(latencies[0]),
            "max_latency_ms": round(latencies[-1]),
            "requests_per_minute": round(total / window_minutes) if window_minutes else total,
            "uptime_s": int(uptime),
            "uptime": format_uptime(uptime),
        }

    def top_errors(self, limit: int = 10) -> list[dict]:
        counts = Counter(r.error or "Unknown" for r in self._records if not r.success)
        return [{"error": error, "count": count} for error, count in counts.most_common(limit)]

    def reset(self) -> None:
        self._records.clear()
        self._started_at = self._clock()
