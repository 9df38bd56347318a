"""
Snapshot Fetcher - Direct-then-Relay REST Client

This module provides the single HTTP entry point for REST snapshots. Every
request is first sent directly to the exchange. If that fails (non-200
status, transport error, undecodable body) the same URL is retried exactly
once through a pass-through relay that wraps the upstream body in a JSON
envelope:

    GET {relay_url}{quote(url)}  ->  {"contents": "<raw upstream body>", ...}

Direct calls can be refused by cross-origin policies when the dashboard runs
in a browser context. The relay adds latency, so it is only ever a fallback.

Usage:
    async with SnapshotFetcher() as fetcher:
        data = await fetcher.fetch_with_fallback(
            "https://api.binance.com/api/v3/ticker/24hr?symbol=BTCUSDT"
        )
"""

import asyncio
import json
import time
from typing import Any, Optional
from urllib.parse import quote

import aiohttp

from core.config import settings
from core.errors import FetchUnavailable
from core.logging import get_logger, log_api_request, log_api_response


class SnapshotFetcher:
    """
    Async HTTP client with a one-shot relay fallback.

    Attributes:
        relay_url: Relay prefix; the URL-encoded target is appended
        timeout: Optional total request timeout in seconds (None = no deadline)
        session: aiohttp ClientSession for HTTP requests

    Notes:
        - Uses context manager for automatic session cleanup
        - No retries beyond the single relay attempt
    """

    def __init__(self, relay_url: Optional[str] = None, timeout: Optional[float] = None):
        self.relay_url = relay_url if relay_url is not None else settings.relay_url
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.session: Optional[aiohttp.ClientSession] = None
        self.logger = get_logger(__name__)

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        )
        self.logger.debug("SnapshotFetcher session created")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()
            self.session = None
            self.logger.debug("SnapshotFetcher session closed")

    # ============================================
    # Fetching
    # ============================================

    async def fetch_with_fallback(self, url: str) -> Any:
        """
        Fetch a JSON document, falling back to the relay on any direct failure.

        Args:
            url: Fully built exchange URL

        Returns:
            Parsed JSON, or the raw relayed body when it is not JSON

        Raises:
            FetchUnavailable: If the relay attempt also fails (relay error as __cause__)
        """
        try:
            log_api_request("fetcher", url)
            return await self._get_json(url)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.warning(f"Direct fetch failed for {url}: {e}. Trying relay...")

        relay_target = f"{self.relay_url}{quote(url, safe='')}"
        try:
            log_api_request("fetcher", relay_target, via="relay")
            envelope = await self._get_json(relay_target)
            return self._unwrap_envelope(envelope)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(f"Relay fetch failed for {url}: {e}")
            raise FetchUnavailable(url) from e

    async def _get_json(self, url: str) -> Any:
        """
        Single GET returning the decoded JSON body.

        Raises:
            RuntimeError: If the session is missing
            aiohttp.ClientResponseError: On a non-200 status
            aiohttp.ClientError / asyncio.TimeoutError / ValueError: On transport or decode failure
        """
        if not self.session:
            raise RuntimeError("Fetcher session not initialized. Use 'async with' statement.")

        started = time.monotonic()
        async with self.session.get(url) as resp:
            log_api_response("fetcher", url, resp.status, time.monotonic() - started)
            if resp.status != 200:
                raise aiohttp.ClientResponseError(
                    resp.request_info,
                    resp.history,
                    status=resp.status,
                    message=f"HTTP {resp.status}",
                )
            # Exchanges are not consistent about Content-Type
            return await resp.json(content_type=None)

    @staticmethod
    def _unwrap_envelope(envelope: Any) -> Any:
        """Return the relayed body, decoded as JSON when possible."""
        if not isinstance(envelope, dict) or not envelope.get("contents"):
            raise ValueError("Relay response missing contents")

        contents = envelope["contents"]
        try:
            return json.loads(contents)
        except (TypeError, ValueError):
            return contents
