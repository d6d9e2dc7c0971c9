"""
Performance Monitor

Counters for one consolidation run: comparisons, cache lookups, wall time
and process memory. Pure observability, nothing reads these to make
decisions.
"""

import logging
import threading
import time
from typing import Dict, Any, Optional

import psutil

logger = logging.getLogger(__name__)


def current_memory_mb() -> float:
    """Resident set size of this process in MB."""
    return psutil.Process().memory_info().rss / (1024 * 1024)


class PerformanceMonitor:
    """Tracks comparisons, cache hit rate, elapsed time and memory."""

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        """Zero all counters and timestamps."""
        with self._lock:
            self.start_time: Optional[float] = None
            self.end_time: Optional[float] = None
            self.comparisons = 0
            self.cache_hits = 0
            self.cache_attempts = 0

    def start(self) -> None:
        with self._lock:
            self.start_time = self._clock()
            self.end_time = None

    def stop(self) -> None:
        with self._lock:
            self.end_time = self._clock()

    def record_comparison(self, count: int = 1) -> None:
        with self._lock:
            self.comparisons += count

    def record_cache_lookup(self, hit: bool) -> None:
        with self._lock:
            self.cache_attempts += 1
            if hit:
                self.cache_hits += 1

    @property
    def cache_hit_rate(self) -> float:
        if self.cache_attempts == 0:
            return 0.0
        return self.cache_hits / self.cache_attempts

    @property
    def elapsed_time_seconds(self) -> Optional[float]:
        if self.start_time is None or self.end_time is None:
            return None
        return self.end_time - self.start_time

    def get_stats(self) -> Dict[str, Any]:
        """
        Snapshot of the counters.

        Returns:
            Dict with memory_usage (MB), cache_hit_rate, comparisons,
            cache_hits, cache_attempts and elapsed_time_seconds (None while
            the run has not finished)
        """
        with self._lock:
            return {
                'memory_usage': current_memory_mb(),
                'cache_hit_rate': self.cache_hit_rate,
                'comparisons': self.comparisons,
                'cache_hits': self.cache_hits,
                'cache_attempts': self.cache_attempts,
                'elapsed_time_seconds': self.elapsed_time_seconds,
            }


class PeriodicReporter:
    """
    Logs memory and cache hit rate at a fixed interval while a run is active.

    Usage:
        with PeriodicReporter(monitor, interval=30):
            service.plan_and_merge(...)
    """

    def __init__(self, monitor_source, interval: float = 30.0):
        """
        Args:
            monitor_source: PerformanceMonitor, or a callable returning the
                current one (the service swaps monitors between runs)
            interval: Seconds between log lines
        """
        self._source = monitor_source
        self.interval = interval
        self._timer: Optional[threading.Timer] = None
        self._stopped = threading.Event()

    def _monitor(self) -> PerformanceMonitor:
        return self._source() if callable(self._source) else self._source

    def report(self) -> None:
        stats = self._monitor().get_stats()
        logger.info(f"Memory: {stats['memory_usage']:.2f}MB, "
                    f"Cache hits: {stats['cache_hit_rate'] * 100:.1f}%, "
                    f"Comparisons: {stats['comparisons']}")

    def _tick(self) -> None:
        if self._stopped.is_set():
            return
        self.report()
        self._schedule()

    def _schedule(self) -> None:
        self._timer = threading.Timer(self.interval, self._tick)
        self._timer.daemon = True
        self._timer.start()

    def start(self) -> None:
        self._stopped.clear()
        self._schedule()

    def stop(self) -> None:
        self._stopped.set()
        if self._timer:
            self._timer.cancel()
            self._timer = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False
