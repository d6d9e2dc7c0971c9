"""
Retry policy for external calls.

Only transient failures are retried: connection errors, timeouts, HTTP 5xx
and HTTP 429. Everything else surfaces on the first attempt.
"""

import logging

import requests
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from curator.errors import TransientExternalError

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 3
DEFAULT_MIN_WAIT = 1
DEFAULT_MAX_WAIT = 10


def is_transient_status(status_code: int) -> bool:
    """True for status codes worth retrying (429 and 5xx)."""
    return status_code == 429 or 500 <= status_code < 600


def is_transient(exc: BaseException) -> bool:
    """Classify an exception raised by an external call."""
    if isinstance(exc, TransientExternalError):
        return True
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return is_transient_status(exc.response.status_code)
    return False


def external_retry(attempts: int = DEFAULT_ATTEMPTS,
                   min_wait: float = DEFAULT_MIN_WAIT,
                   max_wait: float = DEFAULT_MAX_WAIT):
    """
    Build a tenacity decorator for one external call.

    Args:
        attempts: Total attempts including the first one
        min_wait: Lower bound of the exponential backoff (seconds)
        max_wait: Upper bound of the exponential backoff (seconds)

    Returns:
        Decorator that retries transient failures and re-raises the last error
    """
    return retry(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(min=min_wait, max=max_wait),
        retry=retry_if_exception(is_transient),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
