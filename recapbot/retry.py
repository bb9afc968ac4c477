"""Retry utilities with exponential backoff.

Transient transport failures against third-party APIs (connection drops,
timeouts) are retried; HTTP status errors are not, the caller decides.
"""

from __future__ import annotations

import logging
from typing import Callable

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)


TRANSIENT_HTTP_ERRORS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)


def retry_on_transport_error(max_attempts: int = 3, max_wait: float = 10.0) -> Callable:
    """Retry an async call on transient httpx transport errors.

    Args:
        max_attempts: Maximum number of attempts (including the first)
        max_wait: Upper bound for the exponential backoff, in seconds

    Returns:
        Decorator applying the retry policy
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=1, max=max_wait),
        retry=retry_if_exception_type(TRANSIENT_HTTP_ERRORS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def retry_on_llm_error(max_attempts: int = 3) -> Callable:
    """Retry an async LLM call with exponential backoff.

    LangChain chat models surface provider failures as a variety of SDK
    exceptions, so any exception except cancellation is retried.
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        retry=retry_if_exception_type(Exception),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )

