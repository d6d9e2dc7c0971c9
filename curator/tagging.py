"""
Document Tagging

Runs new Paperless documents through the LLM and writes the extracted title,
tags, correspondent and document type back.
"""

import logging
from typing import Any, Dict, List, Optional

from curator.config import DEFAULTS
from curator.consolidation.models import EntityKind
from curator.errors import CuratorError

logger = logging.getLogger(__name__)


class DocumentTagger:
    """Applies AI-extracted metadata to documents."""

    def __init__(self, paperless_client, llm_client,
                 config: Optional[Dict[str, Any]] = None,
                 state_manager=None):
        """
        Initialize the tagger.

        Args:
            paperless_client: PaperlessClient instance
            llm_client: LLMClient instance
            config: Configuration dictionary (see curator.config)
            state_manager: StateManager used by process_new_documents
        """
        self.paperless = paperless_client
        self.llm = llm_client
        self.config = dict(DEFAULTS)
        self.config.update(config or {})
        self.state = state_manager

    def _existing_names(self, kind: EntityKind) -> List[str]:
        return [e.name for e in self.paperless.list_entities(kind)]

    def process_tags(self, tag_names: List[str]) -> List[int]:
        """
        Resolve tag names to ids, creating missing tags.

        Names are matched case-insensitively; the first spelling wins.
        """
        names = list(tag_names)
        if self.config['add_ai_processed_tag']:
            names.append(self.config['ai_processed_tag_name'])

        seen = set()
        tag_ids = []
        for name in names:
            name = (name or '').strip()
            if not name or name.lower() in seen:
                continue
            seen.add(name.lower())
            tag_ids.append(self.paperless.get_or_create_entity(EntityKind.TAGS, name))
        return tag_ids

    def build_update(self, document: Dict[str, Any], metadata: Dict[str, Any]) -> Dict[str, Any]:
        """Fields to patch, honouring the activate_* switches."""
        update: Dict[str, Any] = {}

        if self.config['activate_tagging']:
            tag_ids = self.process_tags(metadata['tags'])
            current = list(document.get('tags') or [])
            update['tags'] = current + [t for t in tag_ids if t not in current]

        if (self.config['activate_correspondents'] and metadata.get('correspondent')):
            if document.get('correspondent'):
                logger.debug(f"Document {document['id']} already has correspondent "
                             f"{document['correspondent']}, keeping it")
            else:
                update['correspondent'] = self.paperless.get_or_create_entity(
                    EntityKind.CORRESPONDENTS, metadata['correspondent'])

        if self.config['activate_document_type']:
            update['document_type'] = self.paperless.get_or_create_entity(
                EntityKind.DOCUMENT_TYPES, metadata['document_type'])

        if self.config['activate_title']:
            update['title'] = metadata['title']

        if metadata.get('document_date'):
            update['created'] = metadata['document_date']

        return update

    def tag_document(self, document_id: int) -> Dict[str, Any]:
        """
        Analyze one document and write its metadata.

        Returns:
            Dict with success, document_id and either the applied fields or
            an error message
        """
        try:
            document = self.paperless.get_document(document_id)
            content = document.get('content') or ''
            if not content.strip():
                raise CuratorError("Document has no text content")

            metadata = self.llm.analyze_document(
                content,
                existing_tags=self._existing_names(EntityKind.TAGS),
                existing_correspondents=self._existing_names(EntityKind.CORRESPONDENTS),
            )
            update = self.build_update(document, metadata)
            if update:
                self.paperless.update_document(document_id, update)
        except CuratorError as e:
            logger.error(f"Tagging document {document_id} failed: {e}")
            return {'success': False, 'document_id': document_id, 'error': str(e)}

        logger.info(f"Tagged document {document_id} ('{metadata['title']}')")
        return {'success': True, 'document_id': document_id, 'updated_fields': update}

    def process_new_documents(self, limit: Optional[int] = None) -> Dict[str, Any]:
        """
        Tag every document the state manager has not seen yet.

        Documents are walked oldest-modified first so the state cursor only
        moves forward.
        """
        results = {'processed': 0, 'failed': 0, 'skipped': 0, 'details': []}

        for doc in self.paperless.iter_documents(ordering='modified'):
            if limit is not None and results['processed'] + results['failed'] >= limit:
                break

            modified = doc.get('modified') or ''
            if self.state and not self.state.should_process_document(modified, doc['id']):
                results['skipped'] += 1
                continue

            result = self.tag_document(doc['id'])
            results['details'].append(result)
            if result['success']:
                results['processed'] += 1
            else:
                results['failed'] += 1

            if self.state:
                self.state.mark_processed(modified, doc['id'])

        logger.info(f"Tagging run finished: {results['processed']} processed, "
                    f"{results['failed']} failed, {results['skipped']} skipped")
        return results
