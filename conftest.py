"""
Shared fixtures: an in-memory stand-in for Paperless-ngx.
"""

import threading

import pytest

from curator.consolidation.models import DocumentReferences, EntityKind, NamedEntity
from curator.errors import DocumentUpdateFailed, EntityDeleteFailed, EntityFetchFailed


class FakePaperless:
    """Implements the PaperlessClient methods the pipelines use, with fault injection."""

    def __init__(self):
        self.entities = {kind: {} for kind in EntityKind}
        self.documents = {}
        self.notes = {}
        self.fail_listing = set()    # entity ids whose document listing fails
        self.broken_listing = set()  # entity ids whose listing raises an unexpected error
        self.fail_updates = set()    # document ids whose writes fail
        self.fail_deletes = set()    # entity ids whose delete fails
        self.list_entities_calls = 0
        self.reference_updates = []
        self.patches = []
        self.deleted = []
        self._lock = threading.Lock()
        self._next_id = 1000

    def add_entity(self, kind, entity_id, name, document_count=0):
        kind = EntityKind.parse(kind)
        self.entities[kind][entity_id] = NamedEntity(entity_id, name, document_count)

    def add_document(self, doc_id, **fields):
        doc = {'id': doc_id, 'title': f'Document {doc_id}', 'content': '',
               'tags': [], 'correspondent': None, 'document_type': None,
               'modified': '2024-01-01T00:00:00Z'}
        doc.update(fields)
        self.documents[doc_id] = doc
        return doc

    def _next(self):
        with self._lock:
            self._next_id += 1
            return self._next_id

    @staticmethod
    def _refs(doc, kind):
        value = doc.get(kind.document_field)
        if kind.multi_valued:
            return frozenset(value or [])
        return frozenset() if value is None else frozenset([value])

    # consolidation collaborator

    def list_entities(self, kind):
        self.list_entities_calls += 1
        return list(self.entities[EntityKind.parse(kind)].values())

    def list_documents_referencing(self, kind, entity_id):
        kind = EntityKind.parse(kind)
        if entity_id in self.fail_listing:
            raise EntityFetchFailed(f"listing documents of {entity_id} failed", status_code=500)
        if entity_id in self.broken_listing:
            raise ValueError(f"unreadable listing for {entity_id}")
        return [DocumentReferences(doc_id, self._refs(doc, kind))
                for doc_id, doc in sorted(self.documents.items())
                if entity_id in self._refs(doc, kind)]

    def update_document_references(self, document_id, kind, reference_ids):
        kind = EntityKind.parse(kind)
        with self._lock:
            self.reference_updates.append((document_id, frozenset(reference_ids)))
        if document_id in self.fail_updates:
            raise DocumentUpdateFailed(f"PATCH document {document_id} failed", status_code=500)
        ids = sorted(reference_ids)
        doc = self.documents[document_id]
        doc[kind.document_field] = ids if kind.multi_valued else (ids[0] if ids else None)
        return True

    def delete_entity(self, kind, entity_id):
        kind = EntityKind.parse(kind)
        if entity_id in self.fail_deletes:
            raise EntityDeleteFailed(f"DELETE {entity_id} failed", status_code=500)
        # Missing entities count as deleted, like a 404 from the real API
        self.entities[kind].pop(entity_id, None)
        self.deleted.append(entity_id)
        return True

    # tagging / summary collaborator

    def get_document(self, document_id):
        if document_id not in self.documents:
            raise EntityFetchFailed(f"document {document_id} not found", status_code=404)
        return dict(self.documents[document_id])

    def iter_documents(self, ordering='-modified', **filters):
        reverse = ordering.startswith('-')
        docs = sorted(self.documents.values(), key=lambda d: (d['modified'], d['id']),
                      reverse=reverse)
        return iter([dict(d) for d in docs])

    def update_document(self, document_id, fields):
        self.patches.append((document_id, dict(fields)))
        if document_id in self.fail_updates:
            raise DocumentUpdateFailed(f"PATCH document {document_id} failed", status_code=500)
        self.documents[document_id].update(fields)
        return dict(self.documents[document_id])

    def get_or_create_entity(self, kind, name):
        kind = EntityKind.parse(kind)
        for entity in self.entities[kind].values():
            if entity.name.lower() == name.lower():
                return entity.id
        entity_id = self._next()
        self.entities[kind][entity_id] = NamedEntity(entity_id, name)
        return entity_id

    def get_document_notes(self, document_id):
        return list(self.notes.get(document_id, []))

    def add_document_note(self, document_id, note):
        notes = self.notes.setdefault(document_id, [])
        notes.append({'id': self._next(), 'note': note,
                      'created': f'2024-01-01T00:00:{len(notes):02d}Z'})
        return list(notes)

    def delete_document_note(self, document_id, note_id):
        self.notes[document_id] = [n for n in self.notes.get(document_id, [])
                                   if n['id'] != note_id]


@pytest.fixture
def paperless():
    return FakePaperless()
