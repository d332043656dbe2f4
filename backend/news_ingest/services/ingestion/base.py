"""
Data models shared by every stage of the ingestion pipeline.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SourceType(str, Enum):
    """How a source is fetched and parsed."""
    RSS = "rss"
    API = "api"
    SCRAPER = "scraper"


class HealthStatus(str, Enum):
    """Outcome of one fetch attempt."""
    HEALTHY = "healthy"
    WARNING = "warning"
    ERROR = "error"
    TIMEOUT = "timeout"

    @property
    def is_failure(self) -> bool:
        return self in (HealthStatus.ERROR, HealthStatus.TIMEOUT)


class FetchState(str, Enum):
    """Per-source progress through one cycle."""
    PENDING = "pending"
    FETCHING = "fetching"
    PARSED = "parsed"
    VALIDATED = "validated"
    DEDUPLICATED = "deduplicated"
    STORED = "stored"
    FAILED = "failed"


@dataclass
class Source:
    """A configured origin of news articles."""
    name: str
    url: str
    source_type: SourceType = SourceType.RSS
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    description: Optional[str] = None

    # Auth material
    api_key: Optional[str] = None
    api_endpoint: Optional[str] = None
    headers: dict[str, str] = field(default_factory=dict)

    categories: list[str] = field(default_factory=list)
    language: str = "en"
    fetch_interval: int = 3600  # seconds

    # Operational state
    is_active: bool = True
    priority: int = 1  # 1-10, higher first
    quality_score: float = 5.0  # 0-10
    consecutive_failures: int = 0
    max_failures: int = 5
    last_fetched_at: Optional[datetime] = None
    last_successful_fetch_at: Optional[datetime] = None
    articles_today: int = 0

    @property
    def request_url(self) -> str:
        """URL actually requested; API sources may override the public URL."""
        if self.source_type == SourceType.API and self.api_endpoint:
            return self.api_endpoint
        return self.url

    def is_ready(self, now: Optional[datetime] = None) -> bool:
        """Whether this source is due for a fetch."""
        if not self.is_active:
            return False
        if self.consecutive_failures >= self.max_failures:
            return False
        if self.last_fetched_at is None:
            return True
        now = as_utc(now or utcnow())
        elapsed = (now - as_utc(self.last_fetched_at)).total_seconds()
        return elapsed >= self.fetch_interval


@dataclass
class RawArticle:
    """
    Normalized article produced by a parser, before persistence.

    Title and url are always present; parsers drop items missing either.
    """
    title: str
    url: str
    source_id: str
    content: str = ""
    summary: str = ""
    published_at: datetime = field(default_factory=utcnow)
    author: Optional[str] = None
    image_url: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class QualityAssessment:
    """Quality verdict for one article."""
    is_valid: bool
    score: int
    issues: list[str] = field(default_factory=list)


@dataclass
class HealthCheckRecord:
    """Outcome of one fetch attempt for one source."""
    source_id: str
    status: HealthStatus
    response_time_ms: int
    articles_fetched: int = 0
    error_message: Optional[str] = None
    http_status_code: Optional[int] = None
    mean_article_quality: Optional[float] = None  # 0-100
    checked_at: datetime = field(default_factory=utcnow)


@dataclass
class SourceError:
    """Failure entry surfaced in a cycle summary."""
    source_id: str
    source_name: str
    error: str

    def to_dict(self) -> dict:
        return {
            "sourceId": self.source_id,
            "sourceName": self.source_name,
            "error": self.error,
        }


@dataclass
class SourceFetchResult:
    """What happened to one source during a cycle."""
    source_id: str
    source_name: str
    success: bool
    status: HealthStatus
    state: FetchState
    response_time_ms: int = 0
    articles_fetched: int = 0
    articles_rejected: int = 0
    duplicates_removed: int = 0
    articles_stored: int = 0
    error_message: Optional[str] = None

    def __str__(self) -> str:
        mark = "✓" if self.success else "✗"
        line = (
            f"{mark} {self.source_name}: "
            f"fetched={self.articles_fetched}, rejected={self.articles_rejected}, "
            f"duplicates={self.duplicates_removed}, stored={self.articles_stored}, "
            f"time={self.response_time_ms}ms"
        )
        if self.error_message:
            line += f", error={self.error_message}"
        return line


# Shape returned to an admin testing or force-fetching a single source.
SourceTestResult = SourceFetchResult


@dataclass
class CycleSummary:
    """Result of one pass of the orchestrator over all ready sources."""
    total_articles: int = 0
    successful_sources: int = 0
    failed_sources: int = 0
    errors: list[SourceError] = field(default_factory=list)
    results: list[SourceFetchResult] = field(default_factory=list)
    duration_seconds: float = 0.0
    job_id: Optional[str] = None

    def to_dict(self) -> dict:
        data = {
            "totalArticles": self.total_articles,
            "successfulSources": self.successful_sources,
            "failedSources": self.failed_sources,
            "errors": [e.to_dict() for e in self.errors],
        }
        if self.job_id:
            data["jobId"] = self.job_id
        return data

    def __str__(self) -> str:
        return (
            f"articles={self.total_articles}, "
            f"succeeded={self.successful_sources}, failed={self.failed_sources}, "
            f"time={self.duration_seconds:.1f}s"
        )


class JobStatus(str, Enum):
    """Lifecycle of a persisted ingestion job."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class IngestionJob:
    """One recorded ingestion cycle."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    job_type: str = "fetch"
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    articles_fetched: int = 0
    successful_sources: int = 0
    failed_sources: int = 0
    errors: list[dict] = field(default_factory=list)
    error_message: Optional[str] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at is None or self.completed_at is None:
            return None
        return (as_utc(self.completed_at) - as_utc(self.started_at)).total_seconds()

    def __str__(self) -> str:
        line = (
            f"{self.id} {self.status.value}: "
            f"articles={self.articles_fetched}, "
            f"succeeded={self.successful_sources}, failed={self.failed_sources}"
        )
        if self.duration_seconds is not None:
            line += f", time={self.duration_seconds:.1f}s"
        if self.error_message:
            line += f", error={self.error_message}"
        return line


@dataclass
class SourceStats:
    """Registry-wide counts; health figures cover the last 24 hours."""
    total_sources: int = 0
    active_sources: int = 0
    healthy_sources: int = 0
    sources_with_errors: int = 0
    avg_quality_score: float = 0.0
    last_24h_fetches: int = 0

    def to_dict(self) -> dict:
        return {
            "total_sources": self.total_sources,
            "active_sources": self.active_sources,
            "healthy_sources": self.healthy_sources,
            "sources_with_errors": self.sources_with_errors,
            "avg_quality_score": self.avg_quality_score,
            "last_24h_fetches": self.last_24h_fetches,
        }
