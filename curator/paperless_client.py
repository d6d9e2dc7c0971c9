"""
Paperless API Client

Handles all interactions with the Paperless-ngx API.
"""

import logging
import threading
import time
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional

import requests

from curator.consolidation.models import DocumentReferences, EntityKind, NamedEntity
from curator.errors import (
    DocumentUpdateFailed,
    EntityDeleteFailed,
    EntityFetchFailed,
    ExternalCallError,
    TransientExternalError,
    ValidationError,
)
from curator.retry import external_retry, is_transient_status

logger = logging.getLogger(__name__)


def _status_of(exc: BaseException) -> Optional[int]:
    if isinstance(exc, TransientExternalError):
        return exc.status_code
    response = getattr(exc, 'response', None)
    return response.status_code if response is not None else None


class PaperlessClient:
    """Client for interacting with Paperless-ngx API."""

    def __init__(self, base_url: str, api_token: str,
                 timeout: float = 30.0,
                 min_request_interval: float = 0.0,
                 page_size: int = 100,
                 max_retries: int = 3,
                 retry_min_wait: float = 1,
                 retry_max_wait: float = 10):
        """
        Initialize the Paperless API client.

        Args:
            base_url: Base URL of Paperless API (e.g., http://paperless-web:8000)
            api_token: API authentication token
            timeout: Per-request timeout in seconds
            min_request_interval: Minimum spacing between requests in seconds
            page_size: Page size for paginated listings
            max_retries: Attempts per request for transient failures
            retry_min_wait: Lower bound of the retry backoff in seconds
            retry_max_wait: Upper bound of the retry backoff in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.api_token = api_token
        self.timeout = timeout
        self.min_request_interval = min_request_interval
        self.page_size = page_size
        self.session = requests.Session()
        self.session.headers.update({
            'Authorization': f'Token {api_token}',
            'Content-Type': 'application/json'
        })

        self._rate_lock = threading.Lock()
        self._last_request_time = 0.0
        self._send_with_retry = external_retry(
            attempts=max_retries, min_wait=retry_min_wait, max_wait=retry_max_wait
        )(self._send)

    def _wait_for_rate_limit(self) -> None:
        if self.min_request_interval <= 0:
            return
        with self._rate_lock:
            elapsed = time.monotonic() - self._last_request_time
            if elapsed < self.min_request_interval:
                time.sleep(self.min_request_interval - elapsed)
            self._last_request_time = time.monotonic()

    def _send(self, method: str, path: str, **kwargs) -> requests.Response:
        """One HTTP attempt. Transient statuses raise TransientExternalError."""
        self._wait_for_rate_limit()
        url = path if path.startswith('http') else f'{self.base_url}{path}'

        response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        if is_transient_status(response.status_code):
            logger.debug(f"{method} {url} returned {response.status_code}, will retry")
            raise TransientExternalError(
                f"{method} {url} returned {response.status_code}",
                status_code=response.status_code,
            )
        response.raise_for_status()
        return response

    def _request(self, method: str, path: str, error_cls=ExternalCallError,
                 retry: bool = True, **kwargs) -> requests.Response:
        """
        Send a request, translating failures into error_cls.

        Non-idempotent writes pass retry=False: a create whose response was
        lost may already have been applied, and sending it again would
        duplicate it.
        """
        send = self._send_with_retry if retry else self._send
        try:
            return send(method, path, **kwargs)
        except (requests.RequestException, TransientExternalError) as e:
            status = _status_of(e)
            logger.error(f"Paperless {method} {path} failed (status={status}): {e}")
            raise error_cls(f"{method} {path} failed: {e}", status_code=status) from e

    @staticmethod
    def _json(response: requests.Response, method: str, path: str,
              error_cls=ExternalCallError, expect=dict):
        """Decode a JSON body, translating bad payloads into error_cls."""
        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Paperless {method} {path} returned invalid JSON: {e}")
            raise error_cls(f"{method} {path} returned invalid JSON: {e}",
                            status_code=response.status_code) from e
        if expect is not None and not isinstance(data, expect):
            raise error_cls(f"{method} {path} returned an unexpected "
                            f"{type(data).__name__} payload",
                            status_code=response.status_code)
        return data

    def _paginate(self, path: str, params: Optional[Dict[str, Any]] = None,
                  error_cls=EntityFetchFailed) -> Iterator[Dict[str, Any]]:
        """Yield every result of a paginated listing, following `next` links."""
        params = dict(params or {})
        params.setdefault('page_size', self.page_size)
        next_url: Optional[str] = path

        while next_url:
            response = self._request('GET', next_url, error_cls=error_cls, params=params)
            data = self._json(response, 'GET', next_url, error_cls)
            results = data.get('results') or []
            if not isinstance(results, list):
                raise error_cls(f"GET {next_url} returned malformed results",
                                status_code=response.status_code)
            yield from results
            next_url = data.get('next')
            # The next link already carries the query string
            params = None

    def get_documents(self,
                      ordering: str = '-modified',
                      page_size: int = 100,
                      page: int = 1,
                      modified_after: Optional[str] = None,
                      **filters) -> Dict[str, Any]:
        """
        Fetch one page of documents.

        Args:
            ordering: Sort order (e.g., '-modified' for newest first)
            page_size: Number of results per page
            page: Page number
            modified_after: ISO datetime string to filter by modified date
            **filters: Extra Paperless filters (e.g. title__icontains)

        Returns:
            API response with results, count, next, previous
        """
        params = {'ordering': ordering, 'page_size': page_size, 'page': page, **filters}
        if modified_after:
            params['modified__gt'] = modified_after

        logger.debug(f"Fetching documents: {params}")
        response = self._request('GET', '/api/documents/', error_cls=EntityFetchFailed, params=params)
        return self._json(response, 'GET', '/api/documents/', EntityFetchFailed)

    def iter_documents(self, ordering: str = '-modified', **filters) -> Iterator[Dict[str, Any]]:
        """Iterate over all documents matching the filters."""
        return self._paginate('/api/documents/', {'ordering': ordering, **filters})

    def get_document(self, document_id: int) -> Dict[str, Any]:
        """
        Fetch a single document by ID.

        Args:
            document_id: Document ID

        Returns:
            Document details including content, tags, correspondent
        """
        logger.debug(f"Fetching document {document_id}")
        path = f'/api/documents/{document_id}/'
        response = self._request('GET', path, error_cls=EntityFetchFailed)
        return self._json(response, 'GET', path, EntityFetchFailed)

    def update_document(self, document_id: int, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Patch a document.

        Args:
            document_id: Document ID
            fields: Fields to set

        Returns:
            Updated document
        """
        logger.info(f"Updating document {document_id}: {sorted(fields)}")
        path = f'/api/documents/{document_id}/'
        response = self._request('PATCH', path, error_cls=DocumentUpdateFailed, json=fields)
        return self._json(response, 'PATCH', path, DocumentUpdateFailed)

    def list_entities(self, kind) -> List[NamedEntity]:
        """
        List every tag, correspondent or document type.

        Args:
            kind: EntityKind or its name

        Returns:
            Entities in API order; malformed records are skipped
        """
        kind = EntityKind.parse(kind)
        entities = []
        for record in self._paginate(kind.endpoint, {'ordering': 'id'}):
            try:
                entities.append(NamedEntity.from_api(record))
            except ValidationError as e:
                logger.warning(f"Skipping malformed {kind.label} record: {e}")

        logger.info(f"Fetched {len(entities)} {kind.label}")
        return entities

    @staticmethod
    def _references(document: Dict[str, Any], kind: EntityKind) -> FrozenSet[int]:
        value = document.get(kind.document_field)
        if kind.multi_valued:
            return frozenset(value or [])
        return frozenset() if value is None else frozenset([value])

    def list_documents_referencing(self, kind, entity_id: int) -> List[DocumentReferences]:
        """
        List documents carrying an entity.

        Args:
            kind: EntityKind or its name
            entity_id: Entity ID

        Returns:
            Document ids with their current reference ids of that kind
        """
        kind = EntityKind.parse(kind)
        params = {kind.document_filter: entity_id, 'ordering': 'id'}
        references = []
        for doc in self._paginate('/api/documents/', params):
            try:
                references.append(DocumentReferences(
                    id=doc['id'], reference_ids=self._references(doc, kind)))
            except (KeyError, TypeError) as e:
                raise EntityFetchFailed(
                    f"Malformed document while listing {kind.label} {entity_id}: {e!r}") from e
        return references

    def update_document_references(self, document_id: int, kind,
                                   reference_ids: Iterable[int]) -> bool:
        """
        Replace a document's references of one kind.

        Args:
            document_id: Document ID
            kind: EntityKind or its name
            reference_ids: New reference ids (at most one for single-valued kinds)

        Returns:
            True when the write was accepted
        """
        kind = EntityKind.parse(kind)
        ids = sorted(set(reference_ids))
        if kind.multi_valued:
            value = ids
        elif len(ids) > 1:
            raise ValidationError(f"Document {document_id} can carry only one "
                                  f"{kind.document_field}, got {ids}")
        else:
            value = ids[0] if ids else None

        self.update_document(document_id, {kind.document_field: value})
        return True

    def delete_entity(self, kind, entity_id: int) -> bool:
        """
        Delete a tag, correspondent or document type.

        An entity that is already gone counts as deleted.
        """
        kind = EntityKind.parse(kind)
        try:
            self._request('DELETE', f'{kind.endpoint}{entity_id}/', error_cls=EntityDeleteFailed)
        except EntityDeleteFailed as e:
            if e.status_code == 404:
                logger.info(f"{kind.label} {entity_id} already deleted")
                return True
            raise
        logger.info(f"Deleted {kind.label} {entity_id}")
        return True

    def find_entity(self, kind, name: str) -> Optional[Dict[str, Any]]:
        """Look up an entity by case-insensitive exact name."""
        kind = EntityKind.parse(kind)
        response = self._request('GET', kind.endpoint, error_cls=EntityFetchFailed,
                                 params={'name__iexact': name})
        results = self._json(response, 'GET', kind.endpoint, EntityFetchFailed).get('results') or []
        return results[0] if results else None

    def get_or_create_entity(self, kind, name: str) -> int:
        """
        Get entity ID by name, or create it if it doesn't exist.

        Args:
            kind: EntityKind or its name
            name: Entity name (e.g., 'Invoice')

        Returns:
            Entity ID
        """
        kind = EntityKind.parse(kind)
        name = (name or '').strip()
        if not name:
            raise ValidationError(f"Cannot create a {kind.label} record with an empty name")

        existing = self.find_entity(kind, name)
        if existing:
            logger.debug(f"Found existing {kind.label} '{name}' with ID {existing['id']}")
            return existing['id']

        response = self._request('POST', kind.endpoint, error_cls=DocumentUpdateFailed,
                                 retry=False, json={'name': name})
        created = self._json(response, 'POST', kind.endpoint, DocumentUpdateFailed)
        if 'id' not in created:
            raise DocumentUpdateFailed(f"POST {kind.endpoint} returned no id for '{name}'",
                                       status_code=response.status_code)
        entity_id = created['id']
        logger.info(f"Created new {kind.label} '{name}' with ID {entity_id}")
        return entity_id

    def get_document_notes(self, document_id: int) -> List[Dict[str, Any]]:
        """Notes attached to a document, oldest first."""
        path = f'/api/documents/{document_id}/notes/'
        response = self._request('GET', path, error_cls=EntityFetchFailed)
        data = self._json(response, 'GET', path, EntityFetchFailed, expect=(dict, list))
        notes = data.get('results', []) if isinstance(data, dict) else data
        return sorted(notes, key=lambda n: (n.get('created') or '', n.get('id', 0)))

    def add_document_note(self, document_id: int, note: str) -> List[Dict[str, Any]]:
        """
        Attach a note to a document.

        Returns:
            The document's notes after the write
        """
        logger.info(f"Adding note to document {document_id} ({len(note)} chars)")
        path = f'/api/documents/{document_id}/notes/'
        response = self._request('POST', path, error_cls=DocumentUpdateFailed,
                                 retry=False, json={'note': note})
        return self._json(response, 'POST', path, DocumentUpdateFailed, expect=(dict, list))

    def delete_document_note(self, document_id: int, note_id: int) -> None:
        """Remove one note from a document."""
        logger.info(f"Deleting note {note_id} of document {document_id}")
        self._request('DELETE', f'/api/documents/{document_id}/notes/',
                      error_cls=DocumentUpdateFailed, params={'id': note_id})

    def health_check(self) -> bool:
        """
        Check if Paperless API is accessible.

        Returns:
            True if healthy, False otherwise
        """
        try:
            self._request('GET', '/api/documents/', params={'page_size': 1})
            return True
        except ExternalCallError as e:
            logger.error(f"Health check failed: {e}")
            return False
