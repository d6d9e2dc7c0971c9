"""
Entity Grouper

Partitions named entities into similarity groups.

Membership is seed-based: an entity joins a group when it is similar enough
to the group's first member, not to any member. Results therefore depend on
input order, which is why the input order is preserved throughout.
"""

import logging
import numbers
from typing import Iterable, List, Optional

from curator.consolidation.matcher import ApproximateMatcher, RapidFuzzMatcher
from curator.consolidation.models import NamedEntity, SimilarityGroup
from curator.consolidation.monitor import current_memory_mb
from curator.consolidation.similarity import SimilarityScorer
from curator.errors import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000
DEFAULT_APPROXIMATE_MIN_SIZE = 5000

# Absorbs float noise in 1 - threshold (e.g. 1 - 0.8 != 0.2)
_EPSILON = 1e-9


def validate_threshold(threshold) -> float:
    """Reject thresholds that are not numbers in [0, 1]."""
    if isinstance(threshold, bool) or not isinstance(threshold, numbers.Real):
        raise ValidationError(f"Similarity threshold must be a number, got {threshold!r}")
    if not 0.0 <= threshold <= 1.0:
        raise ValidationError(f"Similarity threshold must be within [0, 1], got {threshold}")
    return float(threshold)


class EntityGrouper:
    """Groups entities by name similarity."""

    def __init__(self,
                 scorer: SimilarityScorer,
                 matcher: Optional[ApproximateMatcher] = None,
                 batch_size: int = DEFAULT_BATCH_SIZE,
                 approximate_min_size: int = DEFAULT_APPROXIMATE_MIN_SIZE):
        """
        Initialize the grouper.

        Args:
            scorer: Pairwise scorer used by the exhaustive path
            matcher: Candidate search used by the approximate path
                (defaults to rapidfuzz)
            batch_size: Entities per batch on the approximate path
            approximate_min_size: Smallest input for which the approximate
                path is used when requested
        """
        if batch_size < 1:
            raise ValidationError(f"Batch size must be at least 1, got {batch_size}")
        self.scorer = scorer
        self.matcher = matcher or RapidFuzzMatcher(monitor=scorer.context.monitor)
        self.batch_size = batch_size
        self.approximate_min_size = approximate_min_size

    def group(self, entities: Iterable[NamedEntity], threshold: float,
              use_approximate: bool = False) -> List[SimilarityGroup]:
        """
        Group similar entities.

        Args:
            entities: Entities in the order they should be scanned
            threshold: Minimum similarity in [0, 1]
            use_approximate: Prefer the indexed search for large inputs

        Returns:
            Groups of two or more entities, in discovery order
        """
        threshold = validate_threshold(threshold)
        entities = self._dedupe(entities)
        if not entities:
            return []

        if use_approximate and len(entities) >= self.approximate_min_size:
            logger.info(f"Grouping {len(entities)} entities with {self.matcher.name} "
                        f"matcher (threshold={threshold}, batch_size={self.batch_size})")
            groups = self._group_approximate(entities, threshold)
        else:
            logger.info(f"Grouping {len(entities)} entities pairwise with "
                        f"{self.scorer.name} (threshold={threshold})")
            groups = self._group_exhaustive(entities, threshold)

        logger.info(f"Found {len(groups)} groups of similar entities")
        return groups

    @staticmethod
    def _dedupe(entities: Iterable[NamedEntity]) -> List[NamedEntity]:
        unique = []
        seen = set()
        for entity in entities:
            if entity.id in seen:
                logger.warning(f"Duplicate entity id {entity.id} ({entity.name!r}) ignored")
                continue
            seen.add(entity.id)
            unique.append(entity)
        return unique

    def _group_exhaustive(self, entities: List[NamedEntity],
                          threshold: float) -> List[SimilarityGroup]:
        names = [e.name.lower() for e in entities]
        assigned = [False] * len(entities)
        groups = []

        for i, seed in enumerate(entities):
            if assigned[i]:
                continue
            assigned[i] = True
            group = [seed]

            for j in range(i + 1, len(entities)):
                if assigned[j]:
                    continue
                if self.scorer.similarity(names[i], names[j]) >= threshold:
                    group.append(entities[j])
                    assigned[j] = True

            if len(group) > 1:
                groups.append(group)

        return groups

    def _group_approximate(self, entities: List[NamedEntity],
                           threshold: float) -> List[SimilarityGroup]:
        names = [e.name.lower() for e in entities]
        # Unassigned candidates; an index leaves this dict exactly once
        remaining = dict(enumerate(names))
        max_distance = 1.0 - threshold + _EPSILON
        groups = []

        for batch_start in range(0, len(entities), self.batch_size):
            batch_end = min(batch_start + self.batch_size, len(entities))

            for i in range(batch_start, batch_end):
                if i not in remaining:
                    continue
                del remaining[i]
                group = [entities[i]]

                matched = sorted(
                    j for j, score in self.matcher.near_matches(names[i], remaining, max_distance)
                    if j in remaining and score >= threshold - _EPSILON
                )
                # Input order, like the exhaustive path
                for j in matched:
                    group.append(entities[j])
                    del remaining[j]

                if len(group) > 1:
                    groups.append(group)

            logger.debug(f"Batch {batch_start}-{batch_end}: {len(groups)} groups so far, "
                         f"{len(remaining)} unassigned, memory {current_memory_mb():.1f}MB")

        return groups
