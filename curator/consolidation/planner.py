"""
Merge Planner

Picks the surviving ("primary") entity of each similarity group: the one
carrying the most documents, first in group order on ties.
"""

import logging
from typing import List, Sequence

from curator.consolidation.models import MergePlan, NamedEntity, SimilarityGroup
from curator.errors import ValidationError

logger = logging.getLogger(__name__)


class MergePlanner:
    """Turns similarity groups into merge plans."""

    def plan(self, group: Sequence[NamedEntity]) -> MergePlan:
        """
        Plan the merge of one group.

        Args:
            group: Similarity group (at least two entities)

        Returns:
            MergePlan with the primary entity and the entities to retire
        """
        if len(group) < 2:
            raise ValidationError(f"Cannot plan a merge for a group of {len(group)}")

        primary = group[0]
        for entity in group[1:]:
            # Strictly greater keeps the earliest member on ties
            if entity.document_count > primary.document_count:
                primary = entity

        retire = tuple(e for e in group if e.id != primary.id)
        return MergePlan(primary=primary, retire=retire)

    def plan_all(self, groups: Sequence[SimilarityGroup]) -> List[MergePlan]:
        """Plan every group, largest first; a group that cannot be planned is skipped."""
        plans = []
        for group in sort_groups_by_document_count(groups):
            try:
                plans.append(self.plan(group))
            except ValidationError as e:
                names = ', '.join(member.name for member in group)
                logger.warning(f"Skipping group [{names}]: {e}")
        return plans


def sort_groups_by_document_count(groups: Sequence[SimilarityGroup]) -> List[SimilarityGroup]:
    """Groups ordered by total document count, descending (stable)."""
    return sorted(groups,
                  key=lambda group: sum(e.document_count for e in group),
                  reverse=True)
