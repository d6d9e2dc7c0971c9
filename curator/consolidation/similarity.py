"""
Similarity Scorer

Pairwise name similarity in [0, 1]. Two interchangeable scorers:

- LevenshteinScorer: normalized edit distance
- DiceScorer: bigram Sorensen-Dice coefficient (default, cheaper per pair)

Both memoize through the run context with an order-independent key, so
similarity(a, b) and similarity(b, a) share a cache slot.
"""

import logging
import re
from collections import Counter

from rapidfuzz.distance import Levenshtein

from curator.consolidation.context import ConsolidationRunContext
from curator.errors import ValidationError

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r'\s+')


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with unit cost for substitution, insertion and deletion."""
    return Levenshtein.distance(a, b)


def levenshtein_similarity(a: str, b: str) -> float:
    """(max_len - distance) / max_len, 1.0 for two empty strings."""
    if not a and not b:
        return 1.0
    return Levenshtein.normalized_similarity(a, b)


def _bigrams(text: str) -> Counter:
    return Counter(text[i:i + 2] for i in range(len(text) - 1))


def dice_coefficient(a: str, b: str) -> float:
    """
    Bigram Sorensen-Dice coefficient.

    Whitespace is ignored. Identical strings score 1.0; a string with fewer
    than two characters shares no bigrams and scores 0.0 against anything
    else.
    """
    a = _WHITESPACE.sub('', a)
    b = _WHITESPACE.sub('', b)

    if a == b:
        return 1.0
    if len(a) < 2 or len(b) < 2:
        return 0.0

    intersection = sum((_bigrams(a) & _bigrams(b)).values())
    return (2.0 * intersection) / (len(a) + len(b) - 2)


class SimilarityScorer:
    """Memoizing scorer bound to one run context."""

    name = 'base'

    def __init__(self, context: ConsolidationRunContext):
        self.context = context

    def similarity(self, a: str, b: str) -> float:
        """Similarity of a and b, served from the run cache when possible."""
        self.context.monitor.record_comparison()

        cached = self.context.lookup(a, b)
        if cached is not None:
            return cached

        score = self._compute(a, b)
        self.context.store(a, b, score)
        return score

    def _compute(self, a: str, b: str) -> float:
        raise NotImplementedError


class LevenshteinScorer(SimilarityScorer):
    name = 'levenshtein'

    def _compute(self, a: str, b: str) -> float:
        return levenshtein_similarity(a, b)


class DiceScorer(SimilarityScorer):
    name = 'dice'

    def _compute(self, a: str, b: str) -> float:
        return dice_coefficient(a, b)


SCORERS = {
    LevenshteinScorer.name: LevenshteinScorer,
    DiceScorer.name: DiceScorer,
}


def get_scorer(name: str, context: ConsolidationRunContext) -> SimilarityScorer:
    """
    Build a scorer by name.

    Args:
        name: 'dice' or 'levenshtein'
        context: Run context owning the cache and counters

    Returns:
        Scorer instance
    """
    scorer_cls = SCORERS.get((name or '').lower())
    if scorer_cls is None:
        raise ValidationError(f"Unknown similarity algorithm: {name!r} "
                              f"(expected one of {sorted(SCORERS)})")
    return scorer_cls(context)
