"""
Tests for the AI tagging pipeline.
"""

from unittest.mock import MagicMock

import pytest

from curator.consolidation.models import EntityKind
from curator.errors import LLMError
from curator.state import StateManager
from curator.tagging import DocumentTagger

METADATA = {
    'title': 'Electricity bill March',
    'correspondent': 'City Power',
    'tags': ['bill', 'Utilities', 'utilities'],
    'document_type': 'Invoice',
    'document_date': '2024-03-05',
    'language': 'en',
}


@pytest.fixture
def llm():
    client = MagicMock()
    client.analyze_document.return_value = dict(METADATA)
    return client


@pytest.fixture
def store(paperless):
    paperless.add_entity('tags', 1, 'Bill')
    paperless.add_entity('correspondents', 5, 'City Power')
    paperless.add_entity('correspondents', 6, 'Landlord')
    paperless.add_document(1, content='Amount due', tags=[1], modified='2024-01-01T00:00:00Z')
    paperless.add_document(2, content='Rent', correspondent=6, modified='2024-01-02T00:00:00Z')
    return paperless


def tag_id(paperless, name):
    return next(e.id for e in paperless.entities[EntityKind.TAGS].values() if e.name == name)


def test_tag_document(store, llm):
    result = DocumentTagger(store, llm).tag_document(1)

    assert result['success']
    doc = store.documents[1]
    assert doc['tags'] == [1, tag_id(store, 'Utilities')]
    assert doc['correspondent'] == 5
    assert doc['title'] == 'Electricity bill March'
    assert doc['created'] == '2024-03-05'
    assert store.entities[EntityKind.DOCUMENT_TYPES][doc['document_type']].name == 'Invoice'

    llm.analyze_document.assert_called_once_with(
        'Amount due', existing_tags=['Bill'], existing_correspondents=['City Power', 'Landlord'])


def test_existing_correspondent_is_kept(store, llm):
    DocumentTagger(store, llm).tag_document(2)

    assert store.documents[2]['correspondent'] == 6
    _, fields = store.patches[-1]
    assert 'correspondent' not in fields


def test_tags_are_deduplicated_case_insensitively(store, llm):
    tagger = DocumentTagger(store, llm)
    tag_ids = tagger.process_tags(['Receipt', 'receipt', ' RECEIPT ', ''])
    assert len(tag_ids) == 1
    assert store.entities[EntityKind.TAGS][tag_ids[0]].name == 'Receipt'


def test_ai_processed_tag(store, llm):
    tagger = DocumentTagger(store, llm, {'add_ai_processed_tag': True})
    tagger.tag_document(1)
    assert tag_id(store, 'ai-processed') in store.documents[1]['tags']


def test_disabled_fields_are_not_written(store, llm):
    config = {'activate_tagging': False, 'activate_correspondents': False,
              'activate_document_type': False, 'activate_title': False}

    DocumentTagger(store, llm, config).tag_document(1)

    _, fields = store.patches[-1]
    assert fields == {'created': '2024-03-05'}


def test_llm_failure_is_reported(store, llm):
    llm.analyze_document.side_effect = LLMError('Could not find JSON in LLM response')

    result = DocumentTagger(store, llm).tag_document(1)

    assert result == {'success': False, 'document_id': 1,
                      'error': 'Could not find JSON in LLM response'}
    assert store.patches == []


def test_document_without_content(store, llm):
    store.add_document(3, content='  ')
    result = DocumentTagger(store, llm).tag_document(3)
    assert not result['success']
    llm.analyze_document.assert_not_called()


def test_process_new_documents_uses_state(store, llm, tmp_path):
    state = StateManager(state_dir=str(tmp_path))
    tagger = DocumentTagger(store, llm, state_manager=state)

    first = tagger.process_new_documents()
    assert first['processed'] == 2
    assert [d['document_id'] for d in first['details']] == [1, 2]

    second = tagger.process_new_documents()
    assert second['processed'] == 0
    assert second['skipped'] == 2


def test_process_new_documents_limit(store, llm, tmp_path):
    tagger = DocumentTagger(store, llm, state_manager=StateManager(state_dir=str(tmp_path)))

    assert tagger.process_new_documents(limit=1)['processed'] == 1
    assert tagger.process_new_documents()['processed'] == 1
