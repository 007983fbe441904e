"""Bounded-retry HTTP GET used for every upstream resource."""

import asyncio
import json
import logging
from typing import Any
from urllib.parse import urlparse

import httpx

logger = logging.getLogger(__name__)

MAX_CONTENT_SIZE = 10 * 1024 * 1024  # 10 MB
TIMEOUT = 10  # seconds, per attempt
DEFAULT_ATTEMPTS = 3
ALLOWED_SCHEMES = {"http", "https"}

# Errors that fail one attempt; anything else is a bug and propagates
_ATTEMPT_ERRORS = (httpx.HTTPError, httpx.InvalidURL, RuntimeError, ValueError, LookupError)


class FetchError(RuntimeError):
    """Raised once every attempt to download *url* has failed."""

    def __init__(self, url: str, last_cause: BaseException | None = None) -> None:
        self.url = url
        self.last_cause = last_cause
        message = f"Failed to fetch {url}"
        if last_cause is not None:
            message += f": {last_cause}"
        super().__init__(message)


def _validate_url(url: str) -> None:
    """Raise ValueError if *url* is not an absolute http(s) URL."""
    parsed = urlparse(url)

    if parsed.scheme not in ALLOWED_SCHEMES:
        raise ValueError(f"Scheme '{parsed.scheme}' is not allowed. Use http or https.")

    if not parsed.hostname:
        raise ValueError("URL must have a valid hostname.")


def _decode(body: bytes, charset: str | None) -> str:
    """Decode *body* with the declared *charset*, falling back to UTF-8 for unknown ones."""
    try:
        return body.decode(charset or "utf-8", errors="replace")
    except LookupError:
        logger.warning("Unknown charset %r, decoding as utf-8", charset)
        return body.decode("utf-8", errors="replace")


async def _download(client: httpx.AsyncClient, url: str) -> str:
    async with client.stream("GET", url) as response:
        response.raise_for_status()

        content_length = response.headers.get("content-length")
        if content_length and int(content_length) > MAX_CONTENT_SIZE:
            raise RuntimeError("Response body exceeds the maximum allowed size.")

        chunks = []
        total = 0
        async for chunk in response.aiter_bytes():
            total += len(chunk)
            if total > MAX_CONTENT_SIZE:
                raise RuntimeError("Response body exceeds the maximum allowed size.")
            chunks.append(chunk)

        return _decode(b"".join(chunks), response.charset_encoding)


async def fetch_resource(
    url: str,
    *,
    parse_json: bool = False,
    max_attempts: int = DEFAULT_ATTEMPTS,
    timeout: float = TIMEOUT,
    backoff: float = 0,
    client: httpx.AsyncClient | None = None,
) -> Any:
    """Download *url*, retrying up to *max_attempts* times.

    Every attempt is an identical GET.  A transport error, a non-2xx status,
    an oversize body or (with *parse_json*) an undecodable body all count as
    a failed attempt.  When *backoff* is non-zero the fetcher sleeps
    ``backoff * attempt`` seconds before the next attempt.

    Returns:
        The body as text, or the decoded JSON value when *parse_json* is set.

    Raises:
        FetchError: once all attempts have failed, carrying the last cause.
    """
    try:
        _validate_url(url)
    except ValueError as exc:
        raise FetchError(url, exc) from exc

    max_attempts = max(1, max_attempts)
    last_cause: BaseException | None = None

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(follow_redirects=True, timeout=timeout)

    try:
        for attempt in range(1, max_attempts + 1):
            logger.debug("Downloading %s (json: %s, attempt %d)", url, parse_json, attempt)
            try:
                body = await _download(client, url)
                return json.loads(body) if parse_json else body
            except _ATTEMPT_ERRORS as exc:
                last_cause = exc
                logger.warning(
                    "Attempt %d/%d for %s failed: %s", attempt, max_attempts, url, exc
                )

            if backoff and attempt < max_attempts:
                await asyncio.sleep(backoff * attempt)
    finally:
        if owns_client:
            await client.aclose()

    raise FetchError(url, last_cause)
