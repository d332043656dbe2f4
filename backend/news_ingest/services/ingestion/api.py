"""
Generic JSON API parsing.

Envelope keys and field names are resolved through the ordered lookup
tables below; a new source quirk is a new entry in the right tuple.
"""

from typing import Any, Optional
import logging

from news_ingest.services.ingestion.base import RawArticle, Source, utcnow
from news_ingest.services.ingestion.text import extract_summary, parse_date

logger = logging.getLogger(__name__)

# Keys checked, in order, for the item array when the body is an object.
ITEM_CONTAINERS: tuple[str, ...] = ("articles", "data", "results")

# Canonical field -> source field names, first non-empty value wins.
FIELD_MAPPINGS: dict[str, tuple[str, ...]] = {
    "title": ("title", "headline", "name"),
    "url": ("url", "link", "permalink"),
    "content": ("content", "description", "summary", "body"),
    "published_at": ("published_at", "publishedAt", "date", "created_at"),
    "author": ("author", "writer", "byline"),
    "image_url": ("image", "image_url", "thumbnail", "featured_image"),
}


def locate_items(data: Any) -> list:
    """Find the article array inside an API response."""
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ITEM_CONTAINERS:
            value = data.get(key)
            if isinstance(value, list):
                return value
    return []


def resolve_field(item: dict, canonical: str) -> Any:
    """Value of the first populated synonym for ``canonical``."""
    for name in FIELD_MAPPINGS[canonical]:
        value = item.get(name)
        if value not in (None, "", [], {}):
            return value
    return None


def _as_text(value: Any) -> Optional[str]:
    """Flatten the shapes APIs use for simple strings (objects, lists)."""
    if value is None:
        return None
    if isinstance(value, dict):
        value = value.get("name") or value.get("url") or value.get("href")
    elif isinstance(value, list):
        value = _as_text(value[0]) if value else None
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class APIParser:
    """Maps arbitrary JSON news API payloads onto RawArticle records."""

    def __init__(self, summary_max_length: int = 200):
        self.summary_max_length = summary_max_length

    def parse(self, data: Any, source: Source) -> list[RawArticle]:
        """Parse an already-decoded JSON body fetched from ``source``."""
        items = locate_items(data)
        if not items and not isinstance(data, list):
            logger.warning(f"No article array found in response from {source.name}")

        articles = []
        for position, item in enumerate(items):
            try:
                article = self._parse_item(item, source)
            except Exception as e:
                logger.warning(
                    f"Failed to parse API item {position} from {source.name}: {e}"
                )
                continue

            if article is None:
                logger.warning(
                    f"Skipping API item {position} from {source.name}: missing title or url"
                )
                continue

            articles.append(article)

        return articles

    def _parse_item(self, item: Any, source: Source) -> Optional[RawArticle]:
        if not isinstance(item, dict):
            raise TypeError(f"expected an object, got {type(item).__name__}")

        title = _as_text(resolve_field(item, "title"))
        url = _as_text(resolve_field(item, "url"))
        if not title or not url:
            return None

        content = _as_text(resolve_field(item, "content")) or ""
        raw_date = resolve_field(item, "published_at")

        return RawArticle(
            title=title,
            url=url,
            source_id=source.id,
            content=content,
            summary=extract_summary(content, self.summary_max_length),
            published_at=parse_date(raw_date) or utcnow(),
            author=_as_text(resolve_field(item, "author")),
            image_url=_as_text(resolve_field(item, "image_url")),
            metadata={
                "raw_item": item,
                "source_categories": list(source.categories),
            },
        )
