"""
Per-run state shared by the scorer, grouper and monitor.
"""

from typing import Dict, Optional, Tuple

from curator.consolidation.monitor import PerformanceMonitor


class ConsolidationRunContext:
    """
    Similarity cache and performance counters for one consolidation run.

    Created by the caller of a run and passed to every component by
    reference, so two runs never share a cache.
    """

    def __init__(self, monitor: Optional[PerformanceMonitor] = None):
        self.monitor = monitor or PerformanceMonitor()
        self._cache: Dict[Tuple[str, str], float] = {}

    @staticmethod
    def cache_key(a: str, b: str) -> Tuple[str, str]:
        """Order-independent key for a pair of strings."""
        return (a, b) if a <= b else (b, a)

    def lookup(self, a: str, b: str) -> Optional[float]:
        """Cached score for (a, b), counting the attempt and any hit."""
        score = self._cache.get(self.cache_key(a, b))
        self.monitor.record_cache_lookup(score is not None)
        return score

    def store(self, a: str, b: str, score: float) -> None:
        self._cache[self.cache_key(a, b)] = score

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def reset(self) -> None:
        """Clear the cache and zero the counters."""
        self._cache.clear()
        self.monitor.reset()
