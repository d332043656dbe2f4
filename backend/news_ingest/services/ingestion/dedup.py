"""
Duplicate detection for a batch of normalized articles.

Two articles are duplicates when their URLs match after stripping
tracking parameters and fragments, or when their normalized titles have
a word-set Jaccard similarity above the threshold. The newest article
in a duplicate cluster is the one kept.

Title comparison is pairwise (O(n^2)); batches are bounded by the
per-source item limit, not by the stored corpus.
"""

from typing import Iterable, Optional, Sequence
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit
import logging
import re

from news_ingest.config import DedupSettings
from news_ingest.services.ingestion.base import RawArticle, as_utc

logger = logging.getLogger(__name__)

_PUNCTUATION_RE = re.compile(r"[^\w\s]")


def normalize_url(url: str, tracking_params: Iterable[str]) -> str:
    """Lower-cased URL without tracking parameters or fragment."""
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return url.strip().lower()

    if not parts.scheme or not parts.netloc:
        return url.strip().lower()

    tracking = {p.lower() for p in tracking_params}
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key.lower() not in tracking
    ]

    path = parts.path or "/"
    clean = urlunsplit((parts.scheme, parts.netloc, path, urlencode(query), ""))
    return clean.lower()


def normalize_title(title: str) -> str:
    """Lower-case, strip punctuation, collapse whitespace."""
    title = _PUNCTUATION_RE.sub("", title.lower())
    return " ".join(title.split())


def jaccard_similarity(a: str, b: str) -> float:
    """Intersection over union of the whitespace-separated word sets."""
    words_a = set(a.split())
    words_b = set(b.split())
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


class Deduplicator:
    """Removes exact-URL and near-title duplicates, keeping the newest."""

    def __init__(self, settings: Optional[DedupSettings] = None):
        self.settings = settings or DedupSettings()

    def normalize_url(self, url: str) -> str:
        return normalize_url(url, self.settings.tracking_params)

    def deduplicate(
        self,
        articles: Sequence[RawArticle],
        existing: Sequence[RawArticle] = (),
    ) -> list[RawArticle]:
        """
        Return the unique subset of ``articles``, newest first.

        Args:
            articles: Batch to deduplicate
            existing: Already-stored articles to treat as seen; never returned

        Returns:
            List of accepted articles sorted by published_at descending
        """
        if not articles:
            return []

        threshold = self.settings.title_similarity_threshold
        seen_urls: set[str] = set()
        seen_titles: list[str] = []

        for article in existing:
            seen_urls.add(self.normalize_url(article.url))
            seen_titles.append(normalize_title(article.title))

        # Stable sort keeps input order among equal timestamps
        ordered = sorted(
            articles,
            key=lambda a: as_utc(a.published_at),
            reverse=True,
        )

        unique = []
        for article in ordered:
            url_key = self.normalize_url(article.url)
            if url_key in seen_urls:
                logger.debug(f"Duplicate URL dropped: {article.url}")
                continue

            title_key = normalize_title(article.title)
            if any(
                jaccard_similarity(title_key, seen) > threshold
                for seen in seen_titles
            ):
                logger.debug(f"Near-duplicate title dropped: {article.title}")
                continue

            unique.append(article)
            seen_urls.add(url_key)
            seen_titles.append(title_key)

        return unique
