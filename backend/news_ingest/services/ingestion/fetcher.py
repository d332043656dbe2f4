"""
HTTP fetching for news sources.

Downloads a source's payload with a bounded timeout and size, then
dispatches to the RSS or JSON API parser by the source's declared type.
"""

from typing import Optional
import json
import logging

import httpx

from news_ingest.config import Settings, get_settings
from news_ingest.services.ingestion.api import APIParser
from news_ingest.services.ingestion.base import RawArticle, Source, SourceType
from news_ingest.services.ingestion.errors import (
    FetchError,
    FetchTimeout,
    InvalidFeedFormat,
    PayloadTooLarge,
    UnsupportedSourceType,
)
from news_ingest.services.ingestion.rss import RSSParser

logger = logging.getLogger(__name__)

RSS_ACCEPT = "application/rss+xml, application/atom+xml, application/xml, text/xml"
JSON_ACCEPT = "application/json"


class FeedFetcher:
    """
    Fetches and parses one source at a time.

    Use as an async context manager, or pass an existing
    ``httpx.AsyncClient`` (which the caller then owns).
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self._client = client
        self._owns_client = client is None

        self.rss_parser = RSSParser(self.settings.summary_max_length)
        self.api_parser = APIParser(self.settings.summary_max_length)

    async def __aenter__(self) -> "FeedFetcher":
        self._get_client()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.settings.fetch_timeout_seconds,
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, source: Source) -> list[RawArticle]:
        """Fetch and parse ``source`` according to its type."""
        if source.source_type == SourceType.RSS:
            articles = await self.fetch_rss(source)
        elif source.source_type == SourceType.API:
            articles = await self.fetch_api(source)
        elif source.source_type == SourceType.SCRAPER:
            raise UnsupportedSourceType(
                f"Scraper sources are not yet implemented ({source.name})",
                source_name=source.name,
            )
        else:
            raise UnsupportedSourceType(
                f"Unsupported source type: {source.source_type}",
                source_name=source.name,
            )

        limit = self.settings.max_items_per_source
        if len(articles) > limit:
            logger.info(
                f"Truncating {source.name} batch from {len(articles)} to {limit} items"
            )
            articles = articles[:limit]

        return articles

    async def fetch_rss(self, source: Source) -> list[RawArticle]:
        prefix = f"Failed to fetch RSS from {source.name}"
        body = await self._download(source, RSS_ACCEPT, prefix)
        return self.rss_parser.parse(body, source)

    async def fetch_api(self, source: Source) -> list[RawArticle]:
        prefix = f"Failed to fetch from API {source.name}"
        body = await self._download(source, JSON_ACCEPT, prefix)

        try:
            data = json.loads(body)
        except ValueError as e:
            raise InvalidFeedFormat(
                f"{prefix}: Invalid JSON ({e})",
                source_name=source.name,
            ) from e

        return self.api_parser.parse(data, source)

    def build_headers(self, source: Source, accept: str) -> dict[str, str]:
        """Default headers, overlaid with the source's own and its API key."""
        headers = {
            "User-Agent": self.settings.user_agent,
            "Accept": accept,
        }
        headers.update(source.headers or {})
        if source.api_key:
            headers["Authorization"] = f"Bearer {source.api_key}"
        return headers

    async def _download(self, source: Source, accept: str, prefix: str) -> bytes:
        """GET the source URL, enforcing a 2xx status and the payload limit."""
        client = self._get_client()
        max_bytes = self.settings.max_payload_bytes

        try:
            async with client.stream(
                "GET",
                source.request_url,
                headers=self.build_headers(source, accept),
            ) as response:
                if not response.is_success:
                    raise FetchError(
                        f"{prefix}: HTTP {response.status_code}: {response.reason_phrase}",
                        source_name=source.name,
                        status_code=response.status_code,
                    )

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > max_bytes:
                    raise PayloadTooLarge(
                        f"{prefix}: payload of {declared} bytes exceeds {max_bytes}",
                        source_name=source.name,
                        status_code=response.status_code,
                    )

                body = bytearray()
                async for chunk in response.aiter_bytes():
                    body.extend(chunk)
                    if len(body) > max_bytes:
                        raise PayloadTooLarge(
                            f"{prefix}: payload exceeds {max_bytes} bytes",
                            source_name=source.name,
                            status_code=response.status_code,
                        )

        except httpx.TimeoutException as e:
            raise FetchTimeout(
                f"{prefix}: request timed out",
                source_name=source.name,
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(
                f"{prefix}: {e.__class__.__name__}: {e}",
                source_name=source.name,
            ) from e

        logger.debug(f"Downloaded {len(body)} bytes from {source.name}")
        return bytes(body)
