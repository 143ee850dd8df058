"""Thread-safe counters for judge client activity."""

import threading
from typing import Dict, Any


class JudgeMetrics:
    """Monotonic counters shared by every concurrent rule evaluation."""

    COUNTERS = (
        "requests",
        "successes",
        "failures",
        "retries",
        "timeouts",
        "rate_limits",
    )

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {name: 0 for name in self.COUNTERS}
        self._total_latency = 0.0

    def increment(self, name: str, amount: int = 1) -> None:
        if name not in self._counts:
            raise KeyError(f"Unknown metric: {name}")
        with self._lock:
            self._counts[name] += amount

    def add_latency(self, latency_ms: float) -> None:
        with self._lock:
            self._total_latency += latency_ms

    def get(self, name: str) -> int:
        with self._lock:
            return self._counts[name]

    @property
    def total_latency(self) -> float:
        with self._lock:
            return self._total_latency

    def snapshot(self) -> Dict[str, Any]:
        """Counters plus derived average latency and success rate strings."""
        with self._lock:
            counts = dict(self._counts)
            total_latency = self._total_latency

        requests = counts["requests"]
        if requests > 0:
            average = f"{total_latency / requests:.2f}ms"
            success_rate = f"{counts['successes'] / requests * 100:.2f}%"
        else:
            average = "0ms"
            success_rate = "0.00%"

        return {
            **counts,
            "total_latency": total_latency,
            "average_latency": average,
            "success_rate": success_rate,
        }
