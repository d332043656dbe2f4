"""
News ingestion pipeline.

- Feed fetching over HTTP (fetcher.py)
- RSS/Atom and JSON API parsing (rss.py, api.py)
- Quality scoring (quality.py)
- Duplicate detection (dedup.py)
- Cycle orchestration and scheduling (orchestrator.py, scheduler.py; import
  these modules directly, they depend on news_ingest.storage)
"""

from news_ingest.services.ingestion.base import (
    CycleSummary,
    FetchState,
    HealthCheckRecord,
    HealthStatus,
    IngestionJob,
    JobStatus,
    QualityAssessment,
    RawArticle,
    Source,
    SourceError,
    SourceFetchResult,
    SourceStats,
    SourceTestResult,
    SourceType,
)
from news_ingest.services.ingestion.errors import (
    FetchError,
    FetchTimeout,
    IngestionError,
    InvalidFeedFormat,
    PayloadTooLarge,
    StorageError,
    UnsupportedSourceType,
)
from news_ingest.services.ingestion.api import APIParser
from news_ingest.services.ingestion.rss import RSSParser
from news_ingest.services.ingestion.fetcher import FeedFetcher
from news_ingest.services.ingestion.quality import QualityValidator
from news_ingest.services.ingestion.dedup import Deduplicator

__all__ = [
    "CycleSummary",
    "FetchState",
    "HealthCheckRecord",
    "HealthStatus",
    "IngestionJob",
    "JobStatus",
    "QualityAssessment",
    "RawArticle",
    "Source",
    "SourceError",
    "SourceFetchResult",
    "SourceStats",
    "SourceTestResult",
    "SourceType",
    "FetchError",
    "FetchTimeout",
    "IngestionError",
    "InvalidFeedFormat",
    "PayloadTooLarge",
    "StorageError",
    "UnsupportedSourceType",
    "APIParser",
    "RSSParser",
    "FeedFetcher",
    "QualityValidator",
    "Deduplicator",
]
