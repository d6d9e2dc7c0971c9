"""
Consolidation Service

Entry point for finding and merging near-duplicate tags, correspondents and
document types. Each run gets a fresh ConsolidationRunContext; the last one
is kept so its statistics can be read after the run.

Runs are expected one at a time per Paperless instance: two concurrent runs
merging overlapping entities would race on the same documents.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from curator.config import DEFAULTS, recommended_settings
from curator.consolidation.context import ConsolidationRunContext
from curator.consolidation.executor import MergeExecutor
from curator.consolidation.grouper import EntityGrouper, validate_threshold
from curator.consolidation.matcher import get_matcher
from curator.consolidation.models import EntityKind, MergePlan, SimilarityGroup
from curator.consolidation.monitor import PerformanceMonitor
from curator.consolidation.planner import MergePlanner
from curator.consolidation.similarity import get_scorer
from curator.errors import CuratorError, ValidationError

logger = logging.getLogger(__name__)


class ConsolidationService:
    """Finds similar entities and merges them into one."""

    def __init__(self, paperless_client, config: Optional[Dict[str, Any]] = None,
                 matcher: str = 'rapidfuzz'):
        """
        Initialize the service.

        Args:
            paperless_client: Paperless collaborator (see PaperlessClient)
            config: Configuration dictionary (see curator.config)
            matcher: Approximate matcher name ('rapidfuzz' or 'exhaustive')
        """
        self.paperless = paperless_client
        self.config = dict(DEFAULTS)
        self.config.update(config or {})
        self.matcher_name = matcher
        self.planner = MergePlanner()
        self.last_context: Optional[ConsolidationRunContext] = None

    def _new_context(self) -> ConsolidationRunContext:
        self.last_context = ConsolidationRunContext()
        return self.last_context

    def _grouper(self, context: ConsolidationRunContext) -> EntityGrouper:
        scorer = get_scorer(self.config['similarity_algorithm'], context)
        return EntityGrouper(
            scorer,
            matcher=get_matcher(self.matcher_name, scorer),
            batch_size=self.config['consolidation_batch_size'],
            approximate_min_size=self.config['approximate_min_size'],
        )

    def _resolve(self, threshold, use_approximate):
        if threshold is None:
            threshold = self.config['consolidation_threshold']
        if use_approximate is None:
            use_approximate = self.config['use_advanced_algorithm']
        return validate_threshold(threshold), bool(use_approximate)

    def current_monitor(self) -> PerformanceMonitor:
        """Monitor of the active (or most recent) run."""
        if self.last_context is None:
            self._new_context()
        return self.last_context.monitor

    def find_similar(self, kind, threshold: Optional[float] = None,
                     use_approximate: Optional[bool] = None) -> List[SimilarityGroup]:
        """
        Find groups of similar entities.

        Args:
            kind: 'tags', 'correspondents' or 'document_types'
            threshold: Minimum similarity in [0, 1] (config default if None)
            use_approximate: Use the indexed matcher for large inputs

        Returns:
            Similarity groups in discovery order
        """
        kind = EntityKind.parse(kind)
        threshold, use_approximate = self._resolve(threshold, use_approximate)

        context = self._new_context()
        context.monitor.start()
        try:
            entities = self.paperless.list_entities(kind)
            if not entities:
                return []
            return self._grouper(context).group(entities, threshold, use_approximate)
        finally:
            context.monitor.stop()

    def plan_and_merge(self, kind, threshold: Optional[float] = None,
                       use_approximate: Optional[bool] = None,
                       dry_run: bool = False) -> Dict[str, Any]:
        """
        Find similar entities and merge each group into its primary entity.

        Never raises: failures are reported in the result.

        Returns:
            Dict with success, merge_count, merge_details, errors, outcomes
            and stats
        """
        try:
            kind = EntityKind.parse(kind)
            threshold, use_approximate = self._resolve(threshold, use_approximate)
        except CuratorError as e:
            logger.error(f"Consolidation rejected: {e}")
            return self._failed_result(str(e), dry_run=dry_run)

        context = self._new_context()
        context.monitor.start()
        logger.info(f"Consolidating {kind.label} with threshold {threshold} using "
                    f"{'advanced' if use_approximate else 'standard'} algorithm"
                    f"{' (dry run)' if dry_run else ''}")

        try:
            entities = self.paperless.list_entities(kind)
            groups = self._grouper(context).group(entities, threshold, use_approximate) if entities else []
            plans = self.planner.plan_all(groups)

            executor = MergeExecutor(
                self.paperless, kind,
                max_workers=self.config['merge_workers'],
                dry_run=dry_run,
            )
            results = executor.merge_all(plans)
        except Exception as e:
            logger.error(f"Consolidation of {kind.label} failed: {e}", exc_info=True)
            context.monitor.stop()
            return self._failed_result(str(e), context.monitor.get_stats(), dry_run)

        context.monitor.stop()
        results['stats'] = context.monitor.get_stats()
        results['dry_run'] = dry_run

        stats = results['stats']
        logger.info(f"Merged {results['merge_count']} {kind.label} in "
                    f"{stats['elapsed_time_seconds']:.2f}s "
                    f"({stats['comparisons']} comparisons, "
                    f"cache hit rate {stats['cache_hit_rate'] * 100:.1f}%, "
                    f"memory {stats['memory_usage']:.2f}MB)")
        return results

    def consolidate(self, kind, primary_id: int, merge_ids: Iterable[int],
                    dry_run: bool = False) -> Dict[str, Any]:
        """
        Merge chosen entities into a chosen primary, without similarity search.

        Never raises: unknown ids, an empty selection or a primary that is
        also listed for merging are reported as a failed result before
        anything is written.

        Args:
            kind: 'tags', 'correspondents' or 'document_types'
            primary_id: Entity that survives
            merge_ids: Entities folded into the primary and then deleted
            dry_run: Report the merge without writing anything

        Returns:
            Same shape as plan_and_merge, plus primary and updated_documents
        """
        context = self._new_context()
        context.monitor.start()
        try:
            kind = EntityKind.parse(kind)
            merge_ids = list(dict.fromkeys(merge_ids or []))
            if not merge_ids:
                raise ValidationError("No entities selected for merging")
            if primary_id in merge_ids:
                raise ValidationError(f"Primary {kind.label} {primary_id} cannot also be merged")

            known = {e.id: e for e in self.paperless.list_entities(kind)}
            missing = [i for i in [primary_id] + merge_ids if i not in known]
            if missing:
                raise ValidationError(f"Unknown {kind.label} ids: {missing}")

            plan = MergePlan(primary=known[primary_id],
                             retire=tuple(known[i] for i in merge_ids))
        except Exception as e:
            logger.error(f"Merge rejected: {e}")
            context.monitor.stop()
            result = self._failed_result(str(e), context.monitor.get_stats(), dry_run)
            result.update(primary=None, updated_documents=[])
            return result

        logger.info(f"Merging {len(plan.retire)} {kind.label} into "
                    f"'{plan.primary.name}'{' (dry run)' if dry_run else ''}")
        executor = MergeExecutor(self.paperless, kind,
                                 max_workers=self.config['merge_workers'],
                                 dry_run=dry_run)
        results = executor.merge_all([plan])
        context.monitor.stop()

        results['primary'] = plan.primary.name
        results['updated_documents'] = [
            doc_id for outcome in results['outcomes'] for doc_id in outcome['updated_documents']
        ]
        results['stats'] = context.monitor.get_stats()
        results['dry_run'] = dry_run
        return results

    def get_performance_stats(self) -> Dict[str, Any]:
        """Statistics of the most recent run (zeroed if there was none)."""
        return self.current_monitor().get_stats()

    @staticmethod
    def recommended_settings(entity_count: int) -> Dict[str, Any]:
        """Suggested threshold, batch size and algorithm for a dataset size."""
        return recommended_settings(entity_count)

    def _failed_result(self, error: str, stats: Optional[Dict[str, Any]] = None,
                       dry_run: bool = False) -> Dict[str, Any]:
        return {
            'success': False,
            'merge_count': 0,
            'merge_details': [],
            'errors': [error],
            'outcomes': [],
            'stats': stats or self.get_performance_stats(),
            'dry_run': dry_run,
        }
