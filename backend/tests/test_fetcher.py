"""
Tests for FeedFetcher.

HTTP is served by httpx.MockTransport; no network access.
"""

import asyncio
import json

import httpx
import pytest

from conftest import SAMPLE_API, SAMPLE_RSS, make_rss
from news_ingest.config import Settings
from news_ingest.services.ingestion.base import Source, SourceType
from news_ingest.services.ingestion.errors import (
    FetchError,
    FetchTimeout,
    InvalidFeedFormat,
    PayloadTooLarge,
    UnsupportedSourceType,
)
from news_ingest.services.ingestion.fetcher import FeedFetcher


def fetch_with(handler, source, settings):
    """Run FeedFetcher.fetch against a mocked transport."""

    async def _run():
        transport = httpx.MockTransport(handler)
        async with httpx.AsyncClient(transport=transport) as client:
            return await FeedFetcher(settings, client=client).fetch(source)

    return asyncio.run(_run())


class TestFeedFetcher:
    """Tests for FeedFetcher."""

    def test_fetch_rss(self, rss_source, settings):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, text=SAMPLE_RSS)

        articles = fetch_with(handler, rss_source, settings)

        assert len(articles) == 2
        request = seen[0]
        assert str(request.url) == rss_source.url
        assert request.headers["User-Agent"] == settings.user_agent
        assert "application/rss+xml" in request.headers["Accept"]
        assert "Authorization" not in request.headers

    def test_fetch_api_headers(self, api_source, settings):
        """API sources hit api_endpoint with custom headers and a Bearer token."""
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=SAMPLE_API)

        articles = fetch_with(handler, api_source, settings)

        assert len(articles) == 2
        request = seen[0]
        assert str(request.url) == api_source.api_endpoint
        assert request.headers["Accept"] == "application/json"
        assert request.headers["X-Client"] == "tests"
        assert request.headers["Authorization"] == "Bearer secret-token"

    def test_non_success_status(self, rss_source, settings):
        def handler(request):
            return httpx.Response(503)

        with pytest.raises(FetchError) as exc_info:
            fetch_with(handler, rss_source, settings)

        error = exc_info.value
        assert error.status_code == 503
        assert str(error).startswith(f"Failed to fetch RSS from {rss_source.name}")
        assert "HTTP 503" in str(error)

    def test_api_error_message_prefix(self, api_source, settings):
        def handler(request):
            return httpx.Response(401)

        with pytest.raises(FetchError) as exc_info:
            fetch_with(handler, api_source, settings)

        assert str(exc_info.value).startswith(f"Failed to fetch from API {api_source.name}")

    def test_timeout(self, rss_source, settings):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(FetchTimeout):
            fetch_with(handler, rss_source, settings)

    def test_connection_error(self, rss_source, settings):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(FetchError) as exc_info:
            fetch_with(handler, rss_source, settings)

        assert not isinstance(exc_info.value, FetchTimeout)
        assert "ConnectError" in str(exc_info.value)

    def test_payload_too_large(self, rss_source):
        settings = Settings(_env_file=None, max_payload_bytes=100)

        def handler(request):
            return httpx.Response(200, content=b"x" * 500)

        with pytest.raises(PayloadTooLarge):
            fetch_with(handler, rss_source, settings)

    def test_invalid_json(self, api_source, settings):
        def handler(request):
            return httpx.Response(200, text="{not json")

        with pytest.raises(InvalidFeedFormat):
            fetch_with(handler, api_source, settings)

    def test_invalid_xml(self, rss_source, settings):
        def handler(request):
            return httpx.Response(200, text="<html><body>Oops")

        with pytest.raises(InvalidFeedFormat):
            fetch_with(handler, rss_source, settings)

    def test_items_truncated(self, rss_source):
        settings = Settings(_env_file=None, max_items_per_source=3)
        feed = make_rss([
            {"title": f"Headline number {i}", "link": f"https://example.com/{i}"}
            for i in range(10)
        ])

        def handler(request):
            return httpx.Response(200, text=feed)

        articles = fetch_with(handler, rss_source, settings)
        assert [a.url for a in articles] == [f"https://example.com/{i}" for i in range(3)]

    def test_scraper_unsupported(self, settings):
        source = Source(name="Scraped", url="https://example.com", source_type=SourceType.SCRAPER)

        def handler(request):
            raise AssertionError("scraper sources must not hit the network")

        with pytest.raises(UnsupportedSourceType):
            fetch_with(handler, source, settings)

    def test_json_array_body(self, api_source, settings):
        body = [{"title": "Bare array item", "url": "https://example.com/bare"}]

        def handler(request):
            return httpx.Response(200, content=json.dumps(body).encode())

        articles = fetch_with(handler, api_source, settings)
        assert [a.title for a in articles] == ["Bare array item"]

    def test_owned_client_lifecycle(self, settings):
        async def _run():
            async with FeedFetcher(settings) as fetcher:
                client = fetcher._client
                assert client is not None
            return client, fetcher

        client, fetcher = asyncio.run(_run())
        assert client.is_closed
        assert fetcher._client is None
