"""Async HTTP client wrapper with retailer-aware headers and timeouts."""

from typing import Any, Dict, Optional

import httpx

from restock.models.config import RetailerConfig
from restock.models.data_models import RetailerType

API_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "Restock/1.0",
}

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Accept-Encoding": "gzip, deflate",
    "DNT": "1",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}


def default_headers(config: RetailerConfig) -> Dict[str, str]:
    """Headers for a retailer: JSON for APIs, browser-like for storefronts, config wins."""
    if config.type == RetailerType.SCRAPING:
        headers = dict(BROWSER_HEADERS)
    else:
        headers = dict(API_HEADERS)
    headers.update(config.headers)
    return headers


class AsyncHTTPClient:
    """
    Async HTTP client wrapper around httpx.AsyncClient.

    Provides:
    - Base URL, default headers and timeouts per retailer
    - Connection pooling via httpx
    - Context manager or explicit open/aclose lifecycle
    """

    def __init__(
        self,
        base_url: str = "",
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 10.0,
        connect_timeout: float = 3.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize HTTP client.

        Args:
            base_url: Prefix for relative request paths
            headers: Default request headers
            timeout: Read, write and pool timeout in seconds
            connect_timeout: Connection timeout in seconds
            transport: Optional transport, used by tests and mock servers
        """
        self.base_url = base_url
        self.headers = headers or {}
        self.timeout = timeout
        self.connect_timeout = connect_timeout
        self.transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @classmethod
    def for_retailer(
        cls,
        config: RetailerConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "AsyncHTTPClient":
        return cls(
            base_url=config.base_url,
            headers=default_headers(config),
            timeout=config.timeout,
            connect_timeout=min(3.0, config.timeout),
            transport=transport,
        )

    @property
    def is_open(self) -> bool:
        return self._client is not None

    async def open(self) -> "AsyncHTTPClient":
        if self._client is None:
            timeout = httpx.Timeout(
                connect=self.connect_timeout,
                read=self.timeout,
                write=self.timeout,
                pool=self.timeout
            )
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                timeout=timeout,
                transport=self.transport,
                follow_redirects=True,
            )
        return self

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        """Enter async context manager."""
        return await self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager."""
        await self.aclose()

    async def get(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> httpx.Response:
        """
        Perform GET request.

        Args:
            url: Absolute URL or path relative to base_url
            params: Query parameters
            **kwargs: Additional arguments for httpx

        Returns:
            HTTP response
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' or open().")

        return await self._client.get(url, params=params, **kwargs)
