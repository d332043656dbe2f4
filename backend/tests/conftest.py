"""Shared test fixtures for news ingestion tests."""

import asyncio
from datetime import datetime, timedelta
from typing import Optional

import pytest

from news_ingest.config import Settings
from news_ingest.services.ingestion.base import (
    HealthCheckRecord,
    IngestionJob,
    JobStatus,
    RawArticle,
    Source,
    SourceType,
    as_utc,
    utcnow,
)
from news_ingest.services.ingestion.errors import StorageError
from news_ingest.storage.base import (
    STATS_WINDOW,
    ArticleStore,
    JobStore,
    SourceStore,
    apply_summary,
    check_source_changes,
    fold_health_check,
    summarize_jobs,
    summarize_sources,
)


SAMPLE_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"
     xmlns:dc="http://purl.org/dc/elements/1.1/"
     xmlns:media="http://search.yahoo.com/mrss/">
  <channel>
    <title>Example Tech News</title>
    <item>
      <title>The Future of Large Language Models</title>
      <link>https://example.com/article/llm-future</link>
      <description>A deep dive into where large language models are headed over the next few years.</description>
      <pubDate>Mon, 15 Jan 2024 09:00:00 GMT</pubDate>
      <author>tech@example.com</author>
      <media:thumbnail url="https://cdn.example.com/llm-thumb.jpg"/>
    </item>
    <item>
      <title>AI Regulation: What to Expect</title>
      <link>https://example.com/article/ai-regulation</link>
      <description><![CDATA[<p>Governments worldwide are <b>grappling</b> with AI policy.</p><img src="https://cdn.example.com/inline.png"/>]]></description>
      <pubDate>Sun, 14 Jan 2024 15:00:00 GMT</pubDate>
      <dc:creator>Jane Doe</dc:creator>
    </item>
  </channel>
</rss>
"""

SAMPLE_ATOM = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Example Atom Feed</title>
  <entry>
    <title>Attention Is All You Need: A Comprehensive Survey</title>
    <link href="https://example.org/papers/attention" rel="alternate" type="text/html"/>
    <link href="https://example.org/papers/attention.pdf" rel="related" type="application/pdf"/>
    <summary>We present a comprehensive survey of attention mechanisms in deep learning.</summary>
    <author><name>John Smith</name><email>john@example.org</email></author>
    <published>2024-01-15T12:00:00Z</published>
  </entry>
</feed>
"""

SAMPLE_API = {
    "status": "ok",
    "articles": [
        {
            "headline": "Markets rally as inflation cools",
            "link": "https://api.example.com/news/markets-rally",
            "body": "Stocks rose sharply after the latest figures showed inflation easing for a third month.",
            "publishedAt": "2024-01-15T08:30:00Z",
            "byline": {"name": "Sam Reporter"},
            "thumbnail": "https://cdn.example.com/markets.jpg",
        },
        {
            "title": "Central bank holds rates steady",
            "url": "https://api.example.com/news/rates",
            "description": "The central bank left interest rates unchanged, citing a resilient labour market.",
            "date": 1705305600,
        },
    ],
}


def make_rss(items: list[dict]) -> str:
    """Build an RSS 2.0 document; None values are omitted."""
    parts = []
    for item in items:
        fields = "".join(
            f"<{tag}>{value}</{tag}>"
            for tag, value in item.items()
            if value is not None
        )
        parts.append(f"<item>{fields}</item>")
    return (
        '<?xml version="1.0"?><rss version="2.0"><channel><title>Feed</title>'
        + "".join(parts)
        + "</channel></rss>"
    )


def make_article(
    title: str = "A perfectly reasonable headline",
    url: str = "https://example.com/story",
    source_id: str = "source-1",
    content: Optional[str] = None,
    published_at: Optional[datetime] = None,
    **kwargs,
) -> RawArticle:
    """Article that passes every quality check unless overridden."""
    if content is None:
        content = "This body text is comfortably longer than fifty characters in total."
    return RawArticle(
        title=title,
        url=url,
        source_id=source_id,
        content=content,
        published_at=published_at or utcnow(),
        **kwargs,
    )


class InMemorySourceStore(SourceStore):
    """Dict-backed SourceStore with the same folding rules as the SQL one."""

    def __init__(self, sources: Optional[list[Source]] = None, smoothing: float = 0.2):
        self.sources = {s.id: s for s in (sources or [])}
        self.health: list[HealthCheckRecord] = []
        self.smoothing = smoothing
        self.fail_health_writes = False

    async def get_sources_ready_for_fetch(self, now=None) -> list[Source]:
        now = as_utc(now or utcnow())
        ready = [s for s in self.sources.values() if s.is_ready(now)]
        ready.sort(
            key=lambda s: (
                -s.priority,
                s.last_fetched_at is not None,
                s.last_fetched_at or now,
            )
        )
        return ready

    async def get_source(self, source_id):
        return self.sources.get(source_id)

    async def list_sources(self):
        return list(self.sources.values())

    async def add_source(self, source):
        self.sources[source.id] = source
        return source

    async def record_health_check(self, record):
        if self.fail_health_writes:
            raise RuntimeError("health table unavailable")
        self.health.append(record)
        fold_health_check(self.sources[record.source_id], record, self.smoothing)

    async def get_health_history(self, source_id, limit=50):
        records = [r for r in self.health if r.source_id == source_id]
        return list(reversed(records))[:limit]

    async def update_source(self, source_id, changes):
        changes = check_source_changes(source_id, changes)
        source = self.sources.get(source_id)
        if source is None:
            raise StorageError(f"Unknown source: {source_id}")
        for name, value in changes.items():
            setattr(source, name, value)
        return source

    async def get_source_stats(self, now=None):
        since = as_utc(now or utcnow()) - STATS_WINDOW
        return summarize_sources(
            self.sources.values(),
            [r for r in self.health if as_utc(r.checked_at) >= since],
        )


class InMemoryArticleStore(ArticleStore):
    """List-backed ArticleStore; set ``fail_with`` to make inserts raise."""

    def __init__(self):
        self.articles: list[RawArticle] = []
        self.stored_at: list[datetime] = []
        self.fail_with: Optional[Exception] = None

    async def insert_raw_articles(self, articles):
        if self.fail_with is not None:
            raise self.fail_with
        now = utcnow()
        self.articles.extend(articles)
        self.stored_at.extend(now for _ in articles)

    async def get_recent_articles(self, since):
        return [
            a for a, stored in zip(self.articles, self.stored_at)
            if stored >= since
        ]


class InMemoryJobStore(JobStore):
    """Dict-backed JobStore; set ``fail_with`` to make every call raise."""

    def __init__(self):
        self.jobs: dict[str, IngestionJob] = {}
        self.fail_with: Optional[Exception] = None

    async def start_job(self, job_type="fetch"):
        if self.fail_with is not None:
            raise self.fail_with
        job = IngestionJob(job_type=job_type, status=JobStatus.RUNNING)
        job.started_at = job.created_at
        self.jobs[job.id] = job
        return job

    async def finish_job(self, job, summary=None, error=None):
        if self.fail_with is not None:
            raise self.fail_with
        apply_summary(job, summary, error)
        self.jobs[job.id] = job
        return job

    async def get_job_history(self, limit=50):
        jobs = sorted(self.jobs.values(), key=lambda j: j.created_at, reverse=True)
        return jobs[:limit]

    async def get_job_stats(self, days_back=7):
        since = utcnow() - timedelta(days=days_back)
        return summarize_jobs(j for j in self.jobs.values() if j.created_at >= since)


class FakeFetcher:
    """
    Stands in for FeedFetcher.

    ``responses`` maps source id to a list of articles, an exception to
    raise, or a callable returning either. ``delay`` is awaited first.
    """

    def __init__(self, responses: Optional[dict] = None, delay: float = 0.0):
        self.responses = responses or {}
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch(self, source: Source) -> list[RawArticle]:
        self.calls.append(source.id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            response = self.responses.get(source.id, [])
            if callable(response):
                response = response()
            if isinstance(response, BaseException):
                raise response
            return response
        finally:
            self.in_flight -= 1


@pytest.fixture
def settings():
    """Settings isolated from any .env file or environment overrides."""
    return Settings(_env_file=None)


@pytest.fixture
def rss_source():
    return Source(
        id="rss-1",
        name="Example Tech News",
        url="https://example.com/feed.xml",
        source_type=SourceType.RSS,
        categories=["technology"],
    )


@pytest.fixture
def api_source():
    return Source(
        id="api-1",
        name="Example API",
        url="https://api.example.com",
        api_endpoint="https://api.example.com/v1/articles",
        source_type=SourceType.API,
        api_key="secret-token",
        headers={"X-Client": "tests"},
    )


@pytest.fixture
def source_store():
    return InMemorySourceStore()


@pytest.fixture
def article_store():
    return InMemoryArticleStore()


@pytest.fixture
def recent():
    """A timestamp one hour ago, comfortably inside the recency window."""
    return utcnow() - timedelta(hours=1)
