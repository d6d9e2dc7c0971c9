"""
Merge Executor

Applies merge plans against Paperless:

1. collect every document referencing a retiring entity (one map, keyed by
   document id, so a document is written once per plan)
2. rewrite its references: drop retiring ids, add the primary id
3. delete the retiring entities whose documents were all rewritten

Re-running a plan converges: documents that already carry the primary and
no retiring ids are skipped, and deleting an entity that is already gone
counts as done. A retiring entity with a failed listing or a failed
document write is never deleted.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, FrozenSet, Iterable, Optional, Set

from curator.consolidation.models import EntityKind, MergeOutcome, MergePlan
from curator.errors import ExternalCallError, PartialMergeFailure

logger = logging.getLogger(__name__)


class MergeExecutor:
    """Rewrites document references and retires merged entities."""

    def __init__(self, paperless_client, kind: EntityKind,
                 max_workers: int = 1, dry_run: bool = False):
        """
        Initialize the executor.

        Args:
            paperless_client: Collaborator offering list_documents_referencing,
                update_document_references and delete_entity
            kind: Entity kind the plans refer to
            max_workers: Parallel document writers (1 = sequential)
            dry_run: Compute and log changes without writing anything
        """
        self.paperless = paperless_client
        self.kind = EntityKind.parse(kind)
        self.max_workers = max(1, int(max_workers))
        self.dry_run = dry_run

    def merge(self, plan: MergePlan, raise_on_error: bool = False) -> MergeOutcome:
        """
        Apply one merge plan.

        Args:
            plan: Plan to apply
            raise_on_error: Raise PartialMergeFailure instead of returning a
                failed outcome

        Returns:
            MergeOutcome describing updated documents and deleted/kept entities
        """
        outcome = MergeOutcome(plan=plan)
        retire_ids = plan.retire_ids
        blocked: Set[int] = set()
        documents: Dict[int, FrozenSet[int]] = {}

        for entity in plan.retire:
            try:
                references = self.paperless.list_documents_referencing(self.kind, entity.id)
            except ExternalCallError as e:
                outcome.errors.append(
                    f"Could not list documents for {self.kind.label} "
                    f"'{entity.name}' ({entity.id}): {e}")
                blocked.add(entity.id)
                continue

            for doc in references:
                documents.setdefault(doc.id, doc.reference_ids)

        updates = {}
        for doc_id, current in documents.items():
            if not current & retire_ids:
                # Listing was stale; nothing left to move on this document
                continue
            new_refs = (current - retire_ids) | {plan.primary.id}
            if new_refs != current:
                updates[doc_id] = frozenset(new_refs)

        logger.info(f"Merging {len(plan.retire)} {self.kind.label} into "
                    f"'{plan.primary.name}' ({plan.primary.id}): "
                    f"{len(updates)} documents to update")

        for doc_id in self._apply_updates(updates, outcome):
            blocked |= documents[doc_id] & retire_ids

        for entity in plan.retire:
            if entity.id in blocked:
                logger.warning(f"Keeping {self.kind.label} '{entity.name}' ({entity.id}): "
                               f"some of its documents were not updated")
                outcome.kept_ids.append(entity.id)
                continue

            if self.dry_run:
                logger.info(f"[dry run] Would delete {self.kind.label} '{entity.name}' ({entity.id})")
                outcome.deleted_ids.append(entity.id)
                continue

            try:
                self.paperless.delete_entity(self.kind, entity.id)
                outcome.deleted_ids.append(entity.id)
            except ExternalCallError as e:
                outcome.errors.append(
                    f"Could not delete {self.kind.label} '{entity.name}' ({entity.id}): {e}")
                outcome.kept_ids.append(entity.id)

        if raise_on_error and not outcome.success:
            raise PartialMergeFailure(outcome)
        return outcome

    def _write(self, doc_id: int, reference_ids: FrozenSet[int]) -> Optional[str]:
        """Write one document; returns an error message on failure."""
        if self.dry_run:
            logger.info(f"[dry run] Would set {self.kind.document_field} of document "
                        f"{doc_id} to {sorted(reference_ids)}")
            return None
        try:
            if self.paperless.update_document_references(doc_id, self.kind, reference_ids):
                return None
            return f"Document {doc_id} was not updated"
        except ExternalCallError as e:
            return f"Could not update document {doc_id}: {e}"

    def _apply_updates(self, updates: Dict[int, FrozenSet[int]],
                       outcome: MergeOutcome) -> Set[int]:
        """Write all updates; returns the ids of documents that failed."""
        doc_ids = list(updates)
        if self.max_workers > 1 and len(doc_ids) > 1:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(doc_ids)),
                                    thread_name_prefix='merge-writer') as pool:
                results = list(pool.map(lambda d: self._write(d, updates[d]), doc_ids))
        else:
            results = [self._write(d, updates[d]) for d in doc_ids]

        failed = set()
        for doc_id, error in zip(doc_ids, results):
            if error:
                logger.error(error)
                outcome.errors.append(error)
                failed.add(doc_id)
            else:
                outcome.updated_documents.append(doc_id)
        return failed

    def merge_all(self, plans: Iterable[MergePlan]) -> Dict[str, Any]:
        """
        Apply several plans; failures stay contained to their plan.

        Returns:
            Dict with success, merge_count (entities retired), merge_details,
            errors and per-plan outcomes
        """
        results = {
            'success': True,
            'merge_count': 0,
            'merge_details': [],
            'errors': [],
            'outcomes': [],
        }

        for plan in plans:
            try:
                outcome = self.merge(plan)
            except Exception as e:
                logger.error(f"Merge into '{plan.primary.name}' failed: {e}", exc_info=True)
                results['success'] = False
                results['errors'].append(f"Merge into '{plan.primary.name}' failed: {e}")
                continue

            results['outcomes'].append(outcome.to_dict())

            if outcome.deleted_ids:
                deleted = set(outcome.deleted_ids)
                names = ', '.join(e.name for e in plan.retire if e.id in deleted)
                verb = 'Would merge' if self.dry_run else 'Merged'
                results['merge_count'] += len(deleted)
                results['merge_details'].append(
                    f"{verb} {self.kind.label} {names} into {plan.primary.name}")

            if not outcome.success:
                results['success'] = False
                results['errors'].extend(outcome.errors)

        return results
