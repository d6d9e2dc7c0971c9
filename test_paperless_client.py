"""
Tests for the Paperless REST client against a mocked requests session.
"""

from unittest.mock import MagicMock

import pytest
import requests

from curator.consolidation.models import DocumentReferences, EntityKind, NamedEntity
from curator.errors import (
    DocumentUpdateFailed,
    EntityDeleteFailed,
    EntityFetchFailed,
    ValidationError,
)
from curator.paperless_client import PaperlessClient
from curator.retry import is_transient, is_transient_status


def make_response(status=200, payload=None):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(
            f"{status} error", response=response)
    return response


def page(results, next_url=None):
    return make_response(payload={'count': len(results), 'next': next_url, 'results': results})


@pytest.fixture
def client():
    c = PaperlessClient('http://paperless:8000/', 'secret', retry_min_wait=0, retry_max_wait=0)
    c.session = MagicMock()
    return c


def test_session_headers():
    c = PaperlessClient('http://paperless:8000', 'secret')
    assert c.session.headers['Authorization'] == 'Token secret'
    assert c.base_url == 'http://paperless:8000'


def test_list_entities_follows_pagination(client):
    client.session.request.side_effect = [
        page([{'id': 1, 'name': 'Invoice', 'document_count': 4}],
             next_url='http://paperless:8000/api/tags/?page=2'),
        page([{'id': 2, 'name': 'invoice', 'document_count': 1},
              {'id': 3, 'name': ''}]),
    ]

    entities = client.list_entities('tags')

    assert entities == [NamedEntity(1, 'Invoice', 4), NamedEntity(2, 'invoice', 1)]
    first, second = client.session.request.call_args_list
    assert first.args == ('GET', 'http://paperless:8000/api/tags/')
    assert first.kwargs['timeout'] == 30.0
    assert second.args == ('GET', 'http://paperless:8000/api/tags/?page=2')
    assert second.kwargs['params'] is None


def test_list_documents_referencing(client):
    client.session.request.return_value = page([
        {'id': 10, 'correspondent': 4},
        {'id': 11, 'correspondent': None},
    ])

    docs = client.list_documents_referencing(EntityKind.CORRESPONDENTS, 4)

    assert docs == [DocumentReferences(10, frozenset({4})), DocumentReferences(11, frozenset())]
    params = client.session.request.call_args.kwargs['params']
    assert params['correspondent__id'] == 4


def test_list_documents_referencing_tags(client):
    client.session.request.return_value = page([{'id': 10, 'tags': [1, 2]}])

    docs = client.list_documents_referencing('tags', 2)

    assert docs == [DocumentReferences(10, frozenset({1, 2}))]
    assert client.session.request.call_args.kwargs['params']['tags__id__all'] == 2


def test_transient_status_is_retried(client):
    client.session.request.side_effect = [make_response(503), page([])]
    assert client.list_entities('tags') == []
    assert client.session.request.call_count == 2


def test_connection_error_is_retried(client):
    client.session.request.side_effect = [requests.ConnectionError('reset'), page([])]
    assert client.list_entities('tags') == []
    assert client.session.request.call_count == 2


def test_retries_exhausted(client):
    client.session.request.return_value = make_response(429)

    with pytest.raises(EntityFetchFailed) as excinfo:
        client.list_entities('tags')

    assert excinfo.value.status_code == 429
    assert client.session.request.call_count == 3


def test_client_error_is_not_retried(client):
    client.session.request.return_value = make_response(403)

    with pytest.raises(EntityFetchFailed) as excinfo:
        client.list_entities('tags')

    assert excinfo.value.status_code == 403
    assert client.session.request.call_count == 1


def test_update_document_references(client):
    client.session.request.return_value = make_response(payload={'id': 10})

    assert client.update_document_references(10, 'tags', [3, 1, 3])
    method, url = client.session.request.call_args.args
    assert (method, url) == ('PATCH', 'http://paperless:8000/api/documents/10/')
    assert client.session.request.call_args.kwargs['json'] == {'tags': [1, 3]}

    client.update_document_references(10, 'document_types', [])
    assert client.session.request.call_args.kwargs['json'] == {'document_type': None}

    client.update_document_references(10, 'correspondents', [7])
    assert client.session.request.call_args.kwargs['json'] == {'correspondent': 7}


def test_single_valued_kind_rejects_several_ids(client):
    with pytest.raises(ValidationError):
        client.update_document_references(10, 'correspondents', [1, 2])
    client.session.request.assert_not_called()


def test_update_failure(client):
    client.session.request.return_value = make_response(400)
    with pytest.raises(DocumentUpdateFailed):
        client.update_document(10, {'title': 'x'})


def test_delete_entity(client):
    client.session.request.return_value = make_response(204)
    assert client.delete_entity('tags', 5)
    assert client.session.request.call_args.args == ('DELETE', 'http://paperless:8000/api/tags/5/')


def test_delete_of_missing_entity_succeeds(client):
    client.session.request.return_value = make_response(404)
    assert client.delete_entity('tags', 5)


def test_delete_failure(client):
    client.session.request.return_value = make_response(500)
    with pytest.raises(EntityDeleteFailed) as excinfo:
        client.delete_entity('tags', 5)
    assert excinfo.value.status_code == 500
    assert client.session.request.call_count == 3


def test_get_or_create_entity(client):
    client.session.request.side_effect = [
        make_response(payload={'results': [{'id': 8, 'name': 'Invoice'}]}),
        make_response(payload={'results': []}),
        make_response(payload={'id': 9, 'name': 'Receipt'}),
    ]

    assert client.get_or_create_entity('tags', 'invoice') == 8
    assert client.get_or_create_entity('tags', ' Receipt ') == 9
    assert client.session.request.call_args.kwargs['json'] == {'name': 'Receipt'}

    with pytest.raises(ValidationError):
        client.get_or_create_entity('tags', '  ')


def test_document_notes(client):
    client.session.request.side_effect = [
        make_response(payload=[{'id': 2, 'note': 'b', 'created': '2024-02-01'},
                               {'id': 1, 'note': 'a', 'created': '2024-01-01'}]),
        make_response(payload=[{'id': 3, 'note': 'new'}]),
        make_response(204),
    ]

    notes = client.get_document_notes(10)
    assert [n['id'] for n in notes] == [1, 2]

    assert client.add_document_note(10, 'new') == [{'id': 3, 'note': 'new'}]
    client.delete_document_note(10, 3)
    assert client.session.request.call_args.kwargs['params'] == {'id': 3}


def test_health_check(client):
    client.session.request.return_value = make_response(payload={'results': []})
    assert client.health_check()

    client.session.request.return_value = make_response(401)
    assert not client.health_check()


def test_transient_classification():
    assert is_transient_status(500)
    assert is_transient_status(429)
    assert not is_transient_status(404)
    assert is_transient(requests.Timeout())
    assert not is_transient(ValueError())
    assert is_transient(requests.HTTPError(response=make_response(502)))
    assert not is_transient(requests.HTTPError(response=make_response(400)))


def test_invalid_json_listing_raises_fetch_failure(client):
    response = make_response(200)
    response.json.side_effect = ValueError('Expecting value: line 1 column 1 (char 0)')
    client.session.request.return_value = response

    with pytest.raises(EntityFetchFailed) as excinfo:
        client.list_documents_referencing('tags', 2)

    assert 'invalid JSON' in str(excinfo.value)
    assert excinfo.value.status_code == 200


def test_unexpected_payload_shapes(client):
    client.session.request.return_value = make_response(payload=['not', 'a', 'page'])
    with pytest.raises(EntityFetchFailed):
        client.list_entities('tags')

    client.session.request.return_value = make_response(payload={'results': {'id': 1}})
    with pytest.raises(EntityFetchFailed):
        client.list_entities('tags')

    client.session.request.return_value = make_response(payload='<html>')
    with pytest.raises(EntityFetchFailed):
        client.get_document(10)


def test_document_without_id_raises_fetch_failure(client):
    client.session.request.return_value = page([{'tags': [2]}])
    with pytest.raises(EntityFetchFailed):
        client.list_documents_referencing('tags', 2)


def test_create_is_not_retried(client):
    client.session.request.side_effect = [
        make_response(payload={'results': []}),
        make_response(503),
    ]

    with pytest.raises(DocumentUpdateFailed) as excinfo:
        client.get_or_create_entity('tags', 'Receipt')

    assert excinfo.value.status_code == 503
    assert client.session.request.call_count == 2


def test_create_without_id_in_response(client):
    client.session.request.side_effect = [
        make_response(payload={'results': []}),
        make_response(payload={'name': 'Receipt'}),
    ]
    with pytest.raises(DocumentUpdateFailed):
        client.get_or_create_entity('tags', 'Receipt')


def test_add_note_is_not_retried(client):
    client.session.request.side_effect = [requests.ConnectionError('reset'), make_response(payload=[])]

    with pytest.raises(DocumentUpdateFailed):
        client.add_document_note(10, 'summary')

    assert client.session.request.call_count == 1
