"""
Document Summaries

Generates AI summaries of documents and stores them as Paperless notes.
Only the most recent AI summaries are kept; notes written by users are
never modified.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List

from curator.errors import CuratorError, SummaryError

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 100000
MAX_SUMMARY_LENGTH = 1000
MAX_NOTES_LENGTH = 10000
MAX_SUMMARIES_KEPT = 3

SUMMARY_HEADER = '--- AI Generated Summary'


def is_summary_note(note: Dict[str, Any]) -> bool:
    return (note.get('note') or '').startswith(SUMMARY_HEADER)


class SummaryService:
    """Summarizes documents into notes."""

    def __init__(self, paperless_client, llm_client):
        self.paperless = paperless_client
        self.llm = llm_client

    def validate_content(self, content) -> bool:
        """True for non-empty text within MAX_CONTENT_LENGTH."""
        if not content or not isinstance(content, str) or not content.strip():
            return False
        if len(content) > MAX_CONTENT_LENGTH:
            logger.warning(f"Document content exceeds maximum length "
                           f"({len(content)} > {MAX_CONTENT_LENGTH})")
            return False
        return True

    def generate_summary(self, content: str, title: str) -> str:
        """
        Summarize document content.

        Args:
            content: Document text
            title: Document title

        Returns:
            Summary text, truncated to MAX_SUMMARY_LENGTH plus an ellipsis
        """
        analysis = self.llm.summarize(content, title, MAX_SUMMARY_LENGTH)
        summary = (analysis or '').strip()
        if not summary:
            raise SummaryError("LLM returned an empty summary")

        if len(summary) > MAX_SUMMARY_LENGTH:
            summary = summary[:MAX_SUMMARY_LENGTH] + '...'
        return summary

    def format_note(self, summary: str) -> str:
        timestamp = datetime.now(timezone.utc).isoformat()
        note = f"{SUMMARY_HEADER} ({timestamp}) ---\n\n{summary}"
        return note[:MAX_NOTES_LENGTH]

    def save_to_notes(self, document_id: int, summary: str) -> bool:
        """
        Add the summary as a note and prune older AI summaries.

        Returns:
            True once the note is stored
        """
        notes = self.paperless.add_document_note(document_id, self.format_note(summary))
        if not isinstance(notes, list):
            notes = self.paperless.get_document_notes(document_id)

        summaries = sorted((n for n in notes if is_summary_note(n)),
                           key=lambda n: (n.get('created') or '', n.get('id', 0)))
        for note in summaries[:-MAX_SUMMARIES_KEPT]:
            self.paperless.delete_document_note(document_id, note['id'])
        return True

    def generate_and_save_summary(self, document_id: int) -> Dict[str, Any]:
        """
        Summarize one document and store the summary.

        Returns:
            Result dict; failures carry an error message instead of raising
        """
        try:
            document = self.paperless.get_document(document_id)
            content = document.get('content')
            if not self.validate_content(content):
                return {'success': False, 'document_id': document_id,
                        'error': 'Invalid or missing document content'}

            title = document.get('title') or ''
            summary = self.generate_summary(content, title)
            notes_updated = self.save_to_notes(document_id, summary)
        except CuratorError as e:
            logger.error(f"Summary for document {document_id} failed: {e}")
            return {'success': False, 'document_id': document_id, 'error': str(e)}

        logger.info(f"Saved summary for document {document_id} ({len(summary)} chars)")
        return {
            'success': True,
            'document_id': document_id,
            'title': title,
            'summary': summary,
            'notes_updated': notes_updated,
        }

    def batch_process_summaries(self, document_ids: Iterable[int]) -> Dict[str, Any]:
        """Summarize several documents; success is False if any failed."""
        details: List[Dict[str, Any]] = []
        for document_id in document_ids:
            details.append(self.generate_and_save_summary(document_id))

        failed = sum(1 for d in details if not d['success'])
        return {
            'success': failed == 0,
            'processed': len(details) - failed,
            'failed': failed,
            'details': details,
        }
