"""
Fuzzy consolidation of Paperless metadata.

Pipeline: EntityGrouper -> MergePlanner -> MergeExecutor, all sharing one
ConsolidationRunContext per run. ConsolidationService wires them together.
"""

from .models import (
    DocumentReferences,
    EntityKind,
    MergeOutcome,
    MergePlan,
    NamedEntity,
    SimilarityGroup,
)
from .context import ConsolidationRunContext
from .monitor import PerformanceMonitor, PeriodicReporter
from .similarity import DiceScorer, LevenshteinScorer, get_scorer
from .matcher import ApproximateMatcher, ExhaustiveMatcher, RapidFuzzMatcher
from .grouper import EntityGrouper, validate_threshold
from .planner import MergePlanner, sort_groups_by_document_count
from .executor import MergeExecutor
from .service import ConsolidationService

__all__ = [
    'ApproximateMatcher',
    'ConsolidationRunContext',
    'ConsolidationService',
    'DiceScorer',
    'DocumentReferences',
    'EntityGrouper',
    'EntityKind',
    'ExhaustiveMatcher',
    'LevenshteinScorer',
    'MergeExecutor',
    'MergeOutcome',
    'MergePlan',
    'MergePlanner',
    'NamedEntity',
    'PerformanceMonitor',
    'PeriodicReporter',
    'RapidFuzzMatcher',
    'SimilarityGroup',
    'get_scorer',
    'sort_groups_by_document_count',
    'validate_threshold',
]
