"""
Error taxonomy for the curator.

Transient failures are retried inside the Paperless client; everything that
escapes the client is one of the ExternalCallError subclasses.
"""

from typing import Optional


class CuratorError(Exception):
    """Base class for all curator errors."""


class ValidationError(CuratorError):
    """Invalid caller input (threshold out of range, empty entity name, ...)."""


class TransientExternalError(CuratorError):
    """Network timeout, 5xx or 429 from an external service. Retryable."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ExternalCallError(CuratorError):
    """An external call failed for good (after retries, or non-retryable)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class EntityFetchFailed(ExternalCallError):
    """Listing entities or documents failed."""


class DocumentUpdateFailed(ExternalCallError):
    """Writing a document failed."""


class EntityDeleteFailed(ExternalCallError):
    """Deleting a tag, correspondent or document type failed."""


class PartialMergeFailure(CuratorError):
    """One or more documents of a merge plan could not be updated."""

    def __init__(self, outcome):
        self.outcome = outcome
        super().__init__(
            f"Merge into '{outcome.plan.primary.name}' left "
            f"{len(outcome.kept_ids)} entities in place: {'; '.join(outcome.errors)}"
        )


class LLMError(CuratorError):
    """The LLM client is unavailable or returned an unusable response."""


class SummaryError(CuratorError):
    """Summary generation produced nothing usable."""
