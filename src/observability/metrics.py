import threading
import time
from collections import Counter, deque


class MetricsCollector:
    """Delivery attempt outcomes: lifetime totals per event plus a rolling window."""

    def __init__(self, window_seconds: float = 300):
        self.window_seconds = window_seconds
        self._recent: deque[tuple[float, bool]] = deque()  # (monotonic time, succeeded)
        self._by_event: Counter = Counter()
        self._lock = threading.Lock()

    def record_success(self, event_name: str | None = None) -> None:
        self._record(event_name, True)

    def record_failure(self, event_name: str | None = None) -> None:
        self._record(event_name, False)

    def _record(self, event_name: str | None, succeeded: bool) -> None:
        now = time.monotonic()
        with self._lock:
            self._recent.append((now, succeeded))
            if event_name:
                self._by_event[(event_name, "success" if succeeded else "failure")] += 1
            self._evict(now)

    def _evict(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._recent and self._recent[0][0] < cutoff:
            self._recent.popleft()

    def window(self) -> dict:
        """Attempt counts and failure rate over the last ``window_seconds``."""
        with self._lock:
            self._evict(time.monotonic())
            total = len(self._recent)
            failures = sum(1 for _, succeeded in self._recent if not succeeded)
        return {
            "total": total,
            "success": total - failures,
            "failure": failures,
            "failure_rate": failures / total if total else 0.0,
        }

    def event_counts(self, event_name: str) -> dict[str, int]:
        with self._lock:
            return {
                "success": self._by_event[(event_name, "success")],
                "failure": self._by_event[(event_name, "failure")],
            }
