"""
Approximate matchers

A matcher answers one question: which candidates lie within a distance
budget of a query name? The grouper's approximate path depends only on this
interface, so the indexed rapidfuzz search and the exhaustive scan are
interchangeable.
"""

import logging
from typing import Dict, Hashable, List, Optional, Tuple

from rapidfuzz import process
from rapidfuzz.distance import Levenshtein

from curator.consolidation.monitor import PerformanceMonitor
from curator.consolidation.similarity import SimilarityScorer
from curator.errors import ValidationError

logger = logging.getLogger(__name__)

# (candidate key, similarity), best match first
Match = Tuple[Hashable, float]


class ApproximateMatcher:
    """Interface: near_matches(query, candidates, max_distance)."""

    name = 'base'

    def near_matches(self, query: str, candidates: Dict[Hashable, str],
                     max_distance: float) -> List[Match]:
        """
        Find candidates whose distance to the query is at most max_distance.

        Args:
            query: Lower-cased name to look up
            candidates: Mapping of key -> lower-cased candidate name
            max_distance: Distance budget in [0, 1] (1 - similarity)

        Returns:
            (key, similarity) pairs ranked best first
        """
        raise NotImplementedError


class RapidFuzzMatcher(ApproximateMatcher):
    """Indexed search over the candidates with rapidfuzz's C++ extractor."""

    name = 'rapidfuzz'

    def __init__(self, monitor: Optional[PerformanceMonitor] = None):
        self.monitor = monitor

    def near_matches(self, query, candidates, max_distance):
        if not candidates:
            return []
        if self.monitor:
            self.monitor.record_comparison(len(candidates))

        results = process.extract(
            query,
            candidates,
            scorer=Levenshtein.normalized_distance,
            score_cutoff=max_distance,
            limit=None,
        )
        # dict choices yield (choice, distance, key)
        return [(key, 1.0 - distance) for _, distance, key in results]


class ExhaustiveMatcher(ApproximateMatcher):
    """Scores every candidate with the run's scorer (and its cache)."""

    name = 'exhaustive'

    def __init__(self, scorer: SimilarityScorer):
        self.scorer = scorer

    def near_matches(self, query, candidates, max_distance):
        matches = []
        for key, name in candidates.items():
            score = self.scorer.similarity(query, name)
            if 1.0 - score <= max_distance:
                matches.append((key, score))
        matches.sort(key=lambda m: m[1], reverse=True)
        return matches


def get_matcher(name: str, scorer: SimilarityScorer) -> ApproximateMatcher:
    """Build a matcher by name, sharing the scorer's run context."""
    if name == RapidFuzzMatcher.name:
        return RapidFuzzMatcher(monitor=scorer.context.monitor)
    if name == ExhaustiveMatcher.name:
        return ExhaustiveMatcher(scorer)
    raise ValidationError(f"Unknown matcher: {name!r}")
