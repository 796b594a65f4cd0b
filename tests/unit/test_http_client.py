"""Unit tests for HTTP client wrapper."""

import httpx
import pytest

from restock.fetcher.http_client import API_HEADERS, BROWSER_HEADERS, AsyncHTTPClient, default_headers
from restock.models.data_models import RetailerType
from tests.fixtures.factories import make_retailer_config


class TestDefaultHeaders:

    def test_api_retailers_get_json_headers(self):
        headers = default_headers(make_retailer_config())
        assert headers["Accept"] == API_HEADERS["Accept"]

    def test_scraping_retailers_look_like_a_browser(self):
        config = make_retailer_config("target", RetailerType.SCRAPING, "https://www.target.com", api_key=None)
        headers = default_headers(config)
        assert headers["User-Agent"] == BROWSER_HEADERS["User-Agent"]
        assert "text/html" in headers["Accept"]

    def test_configured_headers_win(self):
        config = make_retailer_config(headers={"User-Agent": "custom/1.0"})
        assert default_headers(config)["User-Agent"] == "custom/1.0"


class TestAsyncHTTPClient:

    @pytest.mark.asyncio
    async def test_context_manager_lifecycle(self):
        client = AsyncHTTPClient()

        async with client:
            assert client.is_open

        assert not client.is_open

    @pytest.mark.asyncio
    async def test_get_before_open_raises(self):
        with pytest.raises(RuntimeError, match="not initialized"):
            await AsyncHTTPClient().get("https://example.com")

    @pytest.mark.asyncio
    async def test_relative_paths_join_base_url(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, json={"ok": True})

        client = AsyncHTTPClient(base_url="https://api.bestbuy.com/v1", transport=httpx.MockTransport(handler))
        async with client:
            response = await client.get("/products/123", params={"format": "json"})

        assert response.json() == {"ok": True}
        assert seen == ["https://api.bestbuy.com/v1/products/123?format=json"]

    @pytest.mark.asyncio
    async def test_follows_redirects(self):
        def handler(request):
            if request.url.path == "/old":
                return httpx.Response(301, headers={"Location": "https://www.target.com/new"})
            return httpx.Response(200, text="moved")

        client = AsyncHTTPClient(transport=httpx.MockTransport(handler))
        async with client:
            response = await client.get("https://www.target.com/old")

        assert response.text == "moved"

    @pytest.mark.asyncio
    async def test_for_retailer_applies_config(self):
        config = make_retailer_config(timeout=7.0)
        client = AsyncHTTPClient.for_retailer(config)

        async with client:
            timeout = client._client.timeout
            assert timeout.read == 7.0
            assert timeout.connect == 3.0
            assert client._client.headers["Accept"] == "application/json"
