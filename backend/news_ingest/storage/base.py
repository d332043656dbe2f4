"""
Storage interfaces consumed by the ingestion pipeline.

The pipeline only talks to these abstractions; concrete backends
live alongside (see ``news_ingest.storage.sql``).
"""
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Iterable, Optional

from news_ingest.services.ingestion.base import (
    CycleSummary,
    HealthCheckRecord,
    HealthStatus,
    IngestionJob,
    JobStatus,
    RawArticle,
    Source,
    SourceStats,
    SourceType,
    as_utc,
    utcnow,
)
from news_ingest.services.ingestion.errors import StorageError

# Fields an operator may change after a source is registered.
EDITABLE_SOURCE_FIELDS = frozenset({
    "name",
    "description",
    "url",
    "source_type",
    "api_key",
    "api_endpoint",
    "headers",
    "categories",
    "language",
    "fetch_interval",
    "priority",
    "quality_score",
    "is_active",
    "max_failures",
    "consecutive_failures",
})

STATS_WINDOW = timedelta(hours=24)


def check_source_changes(source_id: str, changes: dict) -> dict:
    """Reject non-editable fields and coerce source_type to SourceType."""
    unknown = sorted(set(changes) - EDITABLE_SOURCE_FIELDS)
    if unknown:
        raise StorageError(
            f"Failed to update news source {source_id}: "
            f"fields not editable: {', '.join(unknown)}"
        )
    changes = dict(changes)
    if "source_type" in changes:
        changes["source_type"] = SourceType(changes["source_type"])
    return changes


def fold_health_check(source, record: HealthCheckRecord, smoothing: float = 0.2) -> None:
    """
    Update a source's operational fields from one health record.

    ``source`` is anything exposing the Source attributes (the dataclass
    or a database row).
    """
    checked_at = as_utc(record.checked_at)
    source.last_fetched_at = checked_at

    if record.status == HealthStatus.HEALTHY:
        previous = source.last_successful_fetch_at
        if previous is None or as_utc(previous).date() != checked_at.date():
            source.articles_today = 0
        source.articles_today = (source.articles_today or 0) + record.articles_fetched
        source.last_successful_fetch_at = checked_at
        source.consecutive_failures = 0

        if record.mean_article_quality is not None:
            observed = record.mean_article_quality / 10  # 0-100 -> 0-10
            source.quality_score = round(
                (1 - smoothing) * (source.quality_score or 0.0) + smoothing * observed,
                2,
            )

    elif record.status.is_failure:
        source.consecutive_failures = (source.consecutive_failures or 0) + 1


def summarize_sources(
    sources: Iterable[Source],
    recent_checks: Iterable[HealthCheckRecord],
) -> SourceStats:
    """
    Build SourceStats from every source and the health records of the
    last 24 hours. Each source counts once, by its latest recent record.
    """
    sources = list(sources)
    recent_checks = list(recent_checks)

    latest: dict[str, HealthCheckRecord] = {}
    for record in recent_checks:
        seen = latest.get(record.source_id)
        if seen is None or as_utc(seen.checked_at) < as_utc(record.checked_at):
            latest[record.source_id] = record

    average = 0.0
    if sources:
        average = sum(s.quality_score or 0.0 for s in sources) / len(sources)

    return SourceStats(
        total_sources=len(sources),
        active_sources=sum(1 for s in sources if s.is_active),
        healthy_sources=sum(1 for r in latest.values() if r.status == HealthStatus.HEALTHY),
        sources_with_errors=sum(1 for r in latest.values() if r.status == HealthStatus.ERROR),
        avg_quality_score=round(average, 2),
        last_24h_fetches=len(recent_checks),
    )


class ArticleStore(ABC):
    """Destination for accepted articles."""

    @abstractmethod
    async def insert_raw_articles(self, articles: list[RawArticle]) -> None:
        """
        Bulk insert articles.

        Raises:
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def get_recent_articles(self, since: datetime) -> list[RawArticle]:
        """Articles stored at or after ``since``."""
        pass


class SourceStore(ABC):
    """Source registry: definitions plus health bookkeeping."""

    @abstractmethod
    async def get_sources_ready_for_fetch(
        self,
        now: Optional[datetime] = None,
    ) -> list[Source]:
        """
        Active sources under their failure limit whose fetch interval
        has elapsed, highest priority first, never-fetched before others.
        """
        pass

    @abstractmethod
    async def get_source(self, source_id: str) -> Optional[Source]:
        pass

    @abstractmethod
    async def list_sources(self) -> list[Source]:
        pass

    @abstractmethod
    async def add_source(self, source: Source) -> Source:
        pass

    @abstractmethod
    async def record_health_check(self, record: HealthCheckRecord) -> None:
        """
        Append a health record and fold it into the source's counters.

        Healthy resets consecutive_failures; error/timeout increments it.
        """
        pass

    @abstractmethod
    async def get_health_history(
        self,
        source_id: str,
        limit: int = 50,
    ) -> list[HealthCheckRecord]:
        """Most recent health records first."""
        pass

    @abstractmethod
    async def update_source(self, source_id: str, changes: dict) -> Source:
        """
        Apply ``changes`` (keys from EDITABLE_SOURCE_FIELDS) to a source.

        Raises:
            StorageError: If the source is unknown or a field is not editable
        """
        pass

    async def set_active(self, source_id: str, is_active: bool) -> Source:
        """Soft-enable or soft-disable a source; sources are never deleted."""
        return await self.update_source(source_id, {"is_active": is_active})

    async def reset_failures(self, source_id: str) -> Source:
        """Clear consecutive_failures so the ready query picks the source up again."""
        return await self.update_source(source_id, {"consecutive_failures": 0})

    @abstractmethod
    async def get_source_stats(self, now: Optional[datetime] = None) -> SourceStats:
        """Counts over all sources plus health figures for the last 24 hours."""
        pass


class JobStore(ABC):
    """Persistent record of ingestion cycles."""

    @abstractmethod
    async def start_job(self, job_type: str = "fetch") -> IngestionJob:
        """Create a job already marked running."""
        pass

    @abstractmethod
    async def finish_job(
        self,
        job: IngestionJob,
        summary: Optional[CycleSummary] = None,
        error: Optional[str] = None,
    ) -> IngestionJob:
        """
        Mark a job completed with the cycle's totals, or failed with
        ``error`` when the cycle itself raised.
        """
        pass

    @abstractmethod
    async def get_job_history(self, limit: int = 50) -> list[IngestionJob]:
        """Most recent jobs first."""
        pass

    @abstractmethod
    async def get_job_stats(self, days_back: int = 7) -> dict:
        """Job counts, article totals and mean duration over ``days_back`` days."""
        pass


def apply_summary(job: IngestionJob, summary: Optional[CycleSummary], error: Optional[str]) -> None:
    """Move a running job to its final state."""
    job.completed_at = utcnow()
    if error is not None:
        job.status = JobStatus.FAILED
        job.error_message = error
        return

    job.status = JobStatus.COMPLETED
    if summary is not None:
        job.articles_fetched = summary.total_articles
        job.successful_sources = summary.successful_sources
        job.failed_sources = summary.failed_sources
        job.errors = [e.to_dict() for e in summary.errors]


def summarize_jobs(jobs: Iterable[IngestionJob]) -> dict:
    """Aggregate figures for get_job_stats."""
    jobs = list(jobs)
    durations = [j.duration_seconds for j in jobs if j.duration_seconds is not None]
    return {
        "total_jobs": len(jobs),
        "completed_jobs": sum(1 for j in jobs if j.status == JobStatus.COMPLETED),
        "failed_jobs": sum(1 for j in jobs if j.status == JobStatus.FAILED),
        "total_articles_fetched": sum(j.articles_fetched for j in jobs),
        "avg_duration_seconds": (
            round(sum(durations) / len(durations), 2) if durations else None
        ),
    }
