"""
HTTP client for probing nodes and fetching node lists.

This module wraps a shared httpx client. Every call carries an explicit
timeout and failures surface as ``ProbeFailure`` or ``FetchFailure`` instead
of httpx exceptions.
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from noderouter.config import get_logger
from noderouter.core.exceptions import FetchFailure, ProbeFailure

logger = get_logger(__name__)


@dataclass(frozen=True)
class ProbeResult:
    """Status and round trip of a single probe request."""
    url: str
    status_code: int
    latency_ms: float


class NetworkProbeClient:
    """HTTP client used for health probes and node list downloads."""

    def __init__(
        self,
        user_agent: str = "noderouter-probe/1.0",
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize the client.

        Args:
            user_agent: User-Agent header sent with every request
            transport: Optional httpx transport, used to inject fakes in tests
        """
        self._headers = {"User-Agent": user_agent}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                headers=self._headers,
                transport=self._transport,
                follow_redirects=False
            )
        return self._client

    async def probe(self, method: str, url: str, timeout: float) -> ProbeResult:
        """
        Issue one request and measure its round trip.

        Args:
            method: HTTP method, usually HEAD
            url: Probe URL
            timeout: Timeout in seconds for the whole request

        Returns:
            ProbeResult with status code and latency

        Raises:
            ProbeFailure: On timeout, an invalid URL or any transport error
        """
        client = self._get_client()
        start_time = time.perf_counter()
        try:
            response = await client.request(method, url, timeout=httpx.Timeout(timeout))
        except httpx.TimeoutException:
            raise ProbeFailure(url, f"timed out after {timeout}s")
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise ProbeFailure(url, f"{type(e).__name__}: {e}")

        latency_ms = (time.perf_counter() - start_time) * 1000
        return ProbeResult(url=url, status_code=response.status_code, latency_ms=latency_ms)

    async def fetch_json(self, url: str, timeout: float, source_name: Optional[str] = None) -> Any:
        """
        Download and decode a JSON document.

        Args:
            url: Document URL
            timeout: Timeout in seconds
            source_name: Name used in errors, defaults to the URL

        Raises:
            FetchFailure: On transport errors, non-2xx status or invalid JSON
        """
        name = source_name or url
        client = self._get_client()
        try:
            response = await client.get(url, timeout=httpx.Timeout(timeout), follow_redirects=True)
            response.raise_for_status()
        except httpx.TimeoutException:
            raise FetchFailure(name, f"timed out after {timeout}s")
        except httpx.HTTPStatusError as e:
            raise FetchFailure(name, f"HTTP {e.response.status_code}")
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise FetchFailure(name, f"{type(e).__name__}: {e}")

        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise FetchFailure(name, f"invalid JSON: {e}")

    async def close(self):
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
