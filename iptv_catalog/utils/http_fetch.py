"""
HTTP fetch utilities

This module fetches feed text over HTTP with retry logic and transport caching disabled.
"""
import asyncio
import logging

import httpx

from iptv_catalog.exceptions import NetworkError
from iptv_catalog.utils.logging_helpers import sanitize_url_for_logging


logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store",
    "Pragma": "no-cache",
}


class HttpFetcher:
    """
    Fetches feed text with exponential backoff retry logic.

    Retries on transient network errors (timeouts, connection errors, 5xx).
    Does NOT retry on 4xx HTTP errors (client errors).
    """

    def __init__(
        self,
        timeout: float | None = 120.0,
        max_retries: int = 3,
        backoff_factor: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Args:
            timeout: HTTP timeout in seconds (None/0 keeps the httpx default)
            max_retries: Maximum number of attempts
            backoff_factor: Exponential backoff multiplier (wait = backoff_factor ^ attempt)
            transport: Optional custom transport
        """
        client_kwargs: dict = {
            "headers": NO_CACHE_HEADERS,
            "follow_redirects": True,
        }
        if timeout:
            client_kwargs["timeout"] = timeout
        if transport is not None:
            client_kwargs["transport"] = transport

        self._client = httpx.AsyncClient(**client_kwargs)
        self.max_retries = max(1, max_retries)
        self.backoff_factor = backoff_factor

    async def fetch(self, url: str) -> str:
        """
        Fetch a URL and return the response body as text

        Raises:
            NetworkError: If the fetch fails after all retries or on a 4xx response
        """
        safe_url = sanitize_url_for_logging(url)
        logger.info(f"Fetching {safe_url}...")

        last_error: Exception | None = None

        for attempt in range(self.max_retries):
            try:
                response = await self._client.get(url)
                response.raise_for_status()
                text = response.text
                logger.info(f"Fetched {len(response.content) / 1024:.1f} KB from {safe_url}")
                return text

            except (httpx.TimeoutException, httpx.TransportError) as e:
                # Transient network errors - retry
                last_error = e
                if attempt < self.max_retries - 1:
                    wait_time = self.backoff_factor ** attempt
                    logger.warning(
                        f"Fetch attempt {attempt + 1}/{self.max_retries} failed (transient error): {type(e).__name__}. "
                        f"Retrying in {wait_time:.1f}s..."
                    )
                    await asyncio.sleep(wait_time)
                else:
                    logger.error(f"Fetch failed after {self.max_retries} attempts (transient error): {safe_url}")

            except httpx.RequestError as e:
                # Redirect loops and undecodable bodies do not improve on retry
                logger.error(f"Fetch failed ({type(e).__name__}) for {safe_url}")
                raise NetworkError(f"Feed could not be fetched ({type(e).__name__}): {safe_url}") from e

            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                if 400 <= status_code < 500:
                    logger.error(f"HTTP {status_code} (client error) for {safe_url}")
                    raise NetworkError(
                        f"Feed could not be fetched (status {status_code}): {safe_url}",
                        status_code=status_code,
                    ) from e

                # 5xx server error - retry
                last_error = e
                if attempt < self.max_retries - 1:
                    wait_time = self.backoff_factor ** attempt
                    logger.warning(
                        f"Fetch attempt {attempt + 1}/{self.max_retries} failed "
                        f"(HTTP {status_code} server error). "
                        f"Retrying in {wait_time:.1f}s..."
                    )
                    await asyncio.sleep(wait_time)
                else:
                    logger.error(f"Fetch failed after {self.max_retries} attempts (HTTP {status_code})")

        status_code = None
        if isinstance(last_error, httpx.HTTPStatusError):
            status_code = last_error.response.status_code
        raise NetworkError(
            f"Feed could not be fetched after {self.max_retries} attempts: {safe_url} ({last_error})",
            status_code=status_code,
        ) from last_error

    async def aclose(self) -> None:
        """Close the underlying HTTP client"""
        await self._client.aclose()
