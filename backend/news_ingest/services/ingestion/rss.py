"""
RSS/Atom feed parsing.

Handles RSS 2.0, RSS 1.0 (RDF) and Atom documents and maps each
item/entry onto the RawArticle shape.
"""

from typing import Optional, Union
from xml.etree import ElementTree
import logging

from news_ingest.services.ingestion.base import RawArticle, Source, utcnow
from news_ingest.services.ingestion.errors import InvalidFeedFormat
from news_ingest.services.ingestion.text import (
    extract_summary,
    find_inline_image,
    parse_date,
)

logger = logging.getLogger(__name__)

# XML namespaces
ATOM_NS = "http://www.w3.org/2005/Atom"
RSS10_NS = "http://purl.org/rss/1.0/"
DC_NS = "http://purl.org/dc/elements/1.1/"
CONTENT_NS = "http://purl.org/rss/1.0/modules/content/"
MEDIA_NS = "http://search.yahoo.com/mrss/"

# Unprefixed feed vocabularies; a plain "title" may live in any of these.
_CORE_NAMESPACES = {"", ATOM_NS, RSS10_NS}

_ITEM_TAGS = {"item", "entry"}

# (namespace, local name); None means any core namespace. First match wins.
CONTENT_SELECTORS = [
    (None, "description"),
    (None, "summary"),
    (None, "content"),
    (CONTENT_NS, "encoded"),
]
DATE_SELECTORS = [
    (None, "pubDate"),
    (None, "published"),
    (None, "updated"),
    (DC_NS, "date"),
]


def _split_tag(tag: str) -> tuple[str, str]:
    if tag.startswith("{"):
        namespace, _, local = tag[1:].partition("}")
        return namespace, local
    return "", tag


def _matches(elem: ElementTree.Element, namespace: Optional[str], name: str) -> bool:
    if not isinstance(elem.tag, str):
        return False
    ns, local = _split_tag(elem.tag)
    if local != name:
        return False
    if namespace is None:
        return ns in _CORE_NAMESPACES
    return ns == namespace


def _find(
    item: ElementTree.Element,
    name: str,
    namespace: Optional[str] = None,
) -> Optional[ElementTree.Element]:
    """First descendant of ``item`` with the given name."""
    for elem in item.iter():
        if elem is not item and _matches(elem, namespace, name):
            return elem
    return None


def _find_all(
    item: ElementTree.Element,
    name: str,
    namespace: Optional[str] = None,
) -> list[ElementTree.Element]:
    return [
        elem for elem in item.iter()
        if elem is not item and _matches(elem, namespace, name)
    ]


def _children(
    item: ElementTree.Element,
    name: str,
    namespace: Optional[str] = None,
) -> list[ElementTree.Element]:
    """Direct children only; nested <source> metadata must not leak in."""
    return [elem for elem in item if _matches(elem, namespace, name)]


def _text(elem: Optional[ElementTree.Element]) -> Optional[str]:
    if elem is None:
        return None
    text = "".join(elem.itertext()).strip()
    return text or None


def _first_text(
    item: ElementTree.Element,
    selectors: list[tuple[Optional[str], str]],
) -> Optional[str]:
    for namespace, name in selectors:
        text = _text(_find(item, name, namespace))
        if text:
            return text
    return None


def _is_image(elem: ElementTree.Element) -> bool:
    return (
        elem.get("medium") == "image"
        or (elem.get("type") or "").startswith("image")
    )


class RSSParser:
    """
    Parses RSS/Atom documents into RawArticle records.

    A document that is not well-formed XML fails the whole source;
    individual broken items are skipped and logged.
    """

    def __init__(self, summary_max_length: int = 200):
        self.summary_max_length = summary_max_length

    def parse(self, payload: Union[str, bytes], source: Source) -> list[RawArticle]:
        """Parse a feed body fetched from ``source``."""
        try:
            if isinstance(payload, str):
                payload = payload.lstrip()
            root = ElementTree.fromstring(payload)
        except ElementTree.ParseError as e:
            raise InvalidFeedFormat(
                f"Failed to parse RSS feed from {source.name}: Invalid XML format ({e})",
                source_name=source.name,
            ) from e

        articles = []
        items = [
            elem for elem in root.iter()
            if isinstance(elem.tag, str) and _split_tag(elem.tag)[1] in _ITEM_TAGS
        ]

        for position, item in enumerate(items):
            try:
                article = self._parse_item(item, source)
            except Exception as e:
                logger.warning(
                    f"Failed to parse item {position} from {source.name}: {e}"
                )
                continue

            if article is None:
                logger.warning(
                    f"Skipping item {position} from {source.name}: missing title or link"
                )
                continue

            articles.append(article)

        logger.debug(f"Parsed {len(articles)}/{len(items)} items from {source.name}")
        return articles

    def _parse_item(
        self,
        item: ElementTree.Element,
        source: Source,
    ) -> Optional[RawArticle]:
        """Parse a single <item> or <entry>."""
        titles = _children(item, "title")
        title = _text(titles[0]) if titles else None
        link = self._extract_link(item)
        if not title or not link:
            return None

        description = _first_text(item, CONTENT_SELECTORS)
        raw_date = _first_text(item, DATE_SELECTORS)
        published_at = parse_date(raw_date) or utcnow()

        author = self._extract_author(item)

        content = (description or "").strip()

        return RawArticle(
            title=title,
            url=link,
            source_id=source.id,
            content=content,
            summary=extract_summary(content, self.summary_max_length),
            published_at=published_at,
            author=author,
            image_url=self._extract_image(item),
            metadata={
                "raw_description": description,
                "raw_pub_date": raw_date,
                "source_categories": list(source.categories),
            },
        )

    def _extract_link(self, item: ElementTree.Element) -> Optional[str]:
        """Text <link> (RSS) or href attribute (Atom), preferring rel=alternate."""
        links = _children(item, "link")
        for link in links:
            text = _text(link)
            if text:
                return text

        fallback = None
        for link in links:
            href = (link.get("href") or "").strip()
            if not href:
                continue
            if link.get("rel", "alternate") == "alternate":
                return href
            fallback = fallback or href
        return fallback

    def _extract_author(self, item: ElementTree.Element) -> Optional[str]:
        """<author> text (or its Atom <name>), then dc:creator."""
        author = _find(item, "author")
        if author is not None:
            name = _text(_find(author, "name")) or _text(author)
            if name:
                return " ".join(name.split())
        return _text(_find(item, "creator", DC_NS))

    def _extract_image(self, item: ElementTree.Element) -> Optional[str]:
        """
        Locate an image URL, in priority order:
        media:thumbnail, media:content (image), enclosure (image),
        <image>, then an inline <img> in the description.
        """
        thumbnail = _find(item, "thumbnail", MEDIA_NS)
        if thumbnail is not None and thumbnail.get("url"):
            return thumbnail.get("url").strip()

        for media in _find_all(item, "content", MEDIA_NS):
            if _is_image(media) and media.get("url"):
                return media.get("url").strip()

        for enclosure in _find_all(item, "enclosure"):
            if _is_image(enclosure) and enclosure.get("url"):
                return enclosure.get("url").strip()

        image = _find(item, "image")
        if image is not None:
            url = image.get("url") or image.get("href") or _text(image)
            if url:
                return url.strip()

        for namespace, name in CONTENT_SELECTORS:
            elem = _find(item, name, namespace)
            if elem is None:
                continue
            inline = find_inline_image("".join(elem.itertext()))
            if inline:
                return inline

        return None
