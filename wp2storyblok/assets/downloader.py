"""
HTTP download helpers for external assets.

A small retry wrapper handles transient failures (connection errors,
timeouts, 429 and 5xx responses, zero-byte bodies) with exponential backoff.
:func:`fetch_url` streams a single URL into memory and refuses bodies above
a size limit.  Both are used by :class:`~wp2storyblok.assets.deduplicator.AssetDeduplicator`.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

import requests

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRY_STATUSES = (429, 500, 502, 503, 504)
USER_AGENT = "wp2storyblok/1.0 (+asset staging)"
CHUNK_SIZE = 64 * 1024


class AssetDownloadError(Exception):
    """A download attempt produced no usable body."""

    retryable = True


class EmptyDownloadError(AssetDownloadError):
    """The server answered with a zero-byte body."""


class AssetTooLargeError(AssetDownloadError):
    """The body exceeds the configured size limit; retrying cannot help."""

    retryable = False


def _retry_after(response: Optional[requests.Response]) -> Optional[float]:
    if response is None:
        return None
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


def with_retries(
    fn: Callable[[], T],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    sleep_fn: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``fn`` until it succeeds, retrying transient failures.

    Retries happen on connection errors and timeouts, on HTTP status codes
    429 and 5xx, and on retryable :class:`AssetDownloadError`.  Backoff is
    exponential (``base_delay * 2 ** attempt``) unless the server sends a
    numeric ``Retry-After`` header.

    :param fn: A zero-argument callable performing one attempt.
    :param max_attempts: Maximum number of attempts before giving up.
    :param base_delay: Base delay in seconds for exponential backoff.
    :param sleep_fn: Injected for tests.
    :return: Whatever ``fn`` returns on the first successful attempt.
    :raises: The last error once all attempts fail, or immediately for
        errors that are not retryable.
    """
    attempt = 0
    while True:
        try:
            return fn()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            if status not in RETRY_STATUSES or attempt >= max_attempts - 1:
                raise
            wait = _retry_after(e.response)
            if wait is None:
                wait = base_delay * (2 ** attempt)
        except (requests.RequestException, AssetDownloadError) as e:
            if not getattr(e, "retryable", True) or attempt >= max_attempts - 1:
                raise
            wait = base_delay * (2 ** attempt)
        logger.debug("Attempt %d failed, retrying in %.2fs", attempt + 1, wait)
        sleep_fn(wait)
        attempt += 1


def fetch_url(
    url: str,
    *,
    timeout: float = 30.0,
    max_file_size: Optional[int] = None,
    session: Optional[requests.Session] = None,
) -> bytes:
    """
    Download ``url`` and return its body.

    :raises requests.RequestException: on network errors and HTTP errors.
    :raises EmptyDownloadError: when the body is empty.
    :raises AssetTooLargeError: when the body exceeds ``max_file_size``.
    """
    http = session or requests
    resp = http.get(url, timeout=timeout, stream=True, headers={"User-Agent": USER_AGENT})
    try:
        resp.raise_for_status()
        declared = resp.headers.get("Content-Length")
        if max_file_size and declared and declared.isdigit() and int(declared) > max_file_size:
            raise AssetTooLargeError(f"{url} is {declared} bytes, limit is {max_file_size}")
        chunks = []
        size = 0
        for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
            if not chunk:
                continue
            size += len(chunk)
            if max_file_size and size > max_file_size:
                raise AssetTooLargeError(f"{url} exceeds the {max_file_size} bytes limit")
            chunks.append(chunk)
    finally:
        resp.close()
    if size == 0:
        raise EmptyDownloadError(f"{url} returned an empty body")
    return b"".join(chunks)
