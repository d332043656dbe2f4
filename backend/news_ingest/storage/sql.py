"""
SQLAlchemy-backed source registry, job history and article store.
"""
from datetime import datetime, timedelta
from typing import Optional
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from news_ingest.models.database import (
    Database,
    DBIngestionJob,
    DBNewsSource,
    DBRawArticle,
    DBSourceHealth,
)
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

logger = logging.getLogger(__name__)


def _maybe_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes even for timezone-aware columns
    return as_utc(value) if value is not None else None


def _to_source(row: DBNewsSource) -> Source:
    return Source(
        id=row.id,
        name=row.name,
        description=row.description,
        url=row.url,
        source_type=SourceType(row.source_type),
        api_key=row.api_key,
        api_endpoint=row.api_endpoint,
        headers=dict(row.headers_json or {}),
        categories=list(row.categories_json or []),
        language=row.language,
        fetch_interval=row.fetch_interval,
        is_active=row.is_active,
        priority=row.priority,
        quality_score=row.quality_score,
        consecutive_failures=row.consecutive_failures,
        max_failures=row.max_failures,
        last_fetched_at=_maybe_utc(row.last_fetched_at),
        last_successful_fetch_at=_maybe_utc(row.last_successful_fetch_at),
        articles_today=row.articles_today,
    )


# Source attribute -> news_sources column, where they differ
_SOURCE_COLUMNS = {
    "headers": "headers_json",
    "categories": "categories_json",
}


def _to_health(row: DBSourceHealth) -> HealthCheckRecord:
    return HealthCheckRecord(
        source_id=row.source_id,
        status=HealthStatus(row.status),
        response_time_ms=row.response_time_ms,
        articles_fetched=row.articles_fetched,
        error_message=row.error_message,
        http_status_code=row.http_status_code,
        mean_article_quality=row.mean_article_quality,
        checked_at=as_utc(row.checked_at),
    )


def _to_job(row: DBIngestionJob) -> IngestionJob:
    return IngestionJob(
        id=row.id,
        job_type=row.job_type,
        status=JobStatus(row.status),
        created_at=as_utc(row.created_at),
        started_at=_maybe_utc(row.started_at),
        completed_at=_maybe_utc(row.completed_at),
        articles_fetched=row.articles_fetched,
        successful_sources=row.successful_sources,
        failed_sources=row.failed_sources,
        errors=list(row.errors_json or []),
        error_message=row.error_message,
    )


def _to_article(row: DBRawArticle) -> RawArticle:
    return RawArticle(
        title=row.title,
        url=row.url,
        source_id=row.source_id,
        content=row.content or "",
        summary=row.summary or "",
        published_at=as_utc(row.published_at),
        author=row.author,
        image_url=row.image_url,
        metadata=dict(row.metadata_json or {}),
    )


class SQLSourceStore(SourceStore):
    """Source registry on the ``news_sources`` / ``news_source_health`` tables."""

    def __init__(self, database: Database, quality_smoothing: float = 0.2):
        self.database = database
        self.quality_smoothing = quality_smoothing

    async def get_sources_ready_for_fetch(
        self,
        now: Optional[datetime] = None,
    ) -> list[Source]:
        now = as_utc(now or utcnow())

        async with self.database.async_session() as session:
            result = await session.execute(
                select(DBNewsSource).where(
                    DBNewsSource.is_active.is_(True),
                    DBNewsSource.consecutive_failures < DBNewsSource.max_failures,
                )
            )
            sources = [_to_source(row) for row in result.scalars()]

        # fetch_interval is compared in Python, not SQL
        ready = [s for s in sources if s.is_ready(now)]
        ready.sort(
            key=lambda s: (
                -s.priority,
                s.last_fetched_at is not None,
                s.last_fetched_at or now,
            )
        )
        return ready

    async def get_source(self, source_id: str) -> Optional[Source]:
        async with self.database.async_session() as session:
            row = await session.get(DBNewsSource, source_id)
            return _to_source(row) if row else None

    async def list_sources(self) -> list[Source]:
        async with self.database.async_session() as session:
            result = await session.execute(
                select(DBNewsSource).order_by(
                    DBNewsSource.priority.desc(), DBNewsSource.name
                )
            )
            return [_to_source(row) for row in result.scalars()]

    async def add_source(self, source: Source) -> Source:
        row = DBNewsSource(
            id=source.id,
            name=source.name,
            description=source.description,
            url=source.url,
            source_type=source.source_type.value,
            api_key=source.api_key,
            api_endpoint=source.api_endpoint,
            headers_json=dict(source.headers),
            categories_json=list(source.categories),
            language=source.language,
            fetch_interval=source.fetch_interval,
            is_active=source.is_active,
            priority=source.priority,
            quality_score=source.quality_score,
            consecutive_failures=source.consecutive_failures,
            max_failures=source.max_failures,
            last_fetched_at=source.last_fetched_at,
            last_successful_fetch_at=source.last_successful_fetch_at,
            articles_today=source.articles_today,
        )

        try:
            async with self.database.async_session() as session:
                session.add(row)
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to create news source {source.name}: {e}",
                source_name=source.name,
            ) from e

        logger.info(f"Added source {source.name} ({source.source_type.value})")
        return source

    async def record_health_check(self, record: HealthCheckRecord) -> None:
        try:
            async with self.database.async_session() as session:
                row = await session.get(DBNewsSource, record.source_id)
                if row is None:
                    raise StorageError(f"Unknown source: {record.source_id}")

                session.add(DBSourceHealth(
                    source_id=record.source_id,
                    status=record.status.value,
                    response_time_ms=record.response_time_ms,
                    articles_fetched=record.articles_fetched,
                    error_message=record.error_message,
                    http_status_code=record.http_status_code,
                    mean_article_quality=record.mean_article_quality,
                    checked_at=as_utc(record.checked_at),
                ))
                fold_health_check(row, record, self.quality_smoothing)
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to record health check: {e}",
            ) from e

    async def get_health_history(
        self,
        source_id: str,
        limit: int = 50,
    ) -> list[HealthCheckRecord]:
        async with self.database.async_session() as session:
            result = await session.execute(
                select(DBSourceHealth)
                .where(DBSourceHealth.source_id == source_id)
                .order_by(DBSourceHealth.checked_at.desc(), DBSourceHealth.id.desc())
                .limit(limit)
            )
            return [_to_health(row) for row in result.scalars()]

    async def update_source(self, source_id: str, changes: dict) -> Source:
        changes = check_source_changes(source_id, changes)

        try:
            async with self.database.async_session() as session:
                row = await session.get(DBNewsSource, source_id)
                if row is None:
                    raise StorageError(f"Unknown source: {source_id}")

                for name, value in changes.items():
                    if isinstance(value, SourceType):
                        value = value.value
                    setattr(row, _SOURCE_COLUMNS.get(name, name), value)
                await session.commit()
                source = _to_source(row)
        except SQLAlchemyError as e:
            raise StorageError(
                f"Failed to update news source {source_id}: {e}",
            ) from e

        logger.info(f"Updated source {source.name}: {', '.join(sorted(changes))}")
        return source

    async def get_source_stats(self, now: Optional[datetime] = None) -> SourceStats:
        since = as_utc(now or utcnow()) - STATS_WINDOW

        async with self.database.async_session() as session:
            sources = await session.execute(select(DBNewsSource))
            checks = await session.execute(
                select(DBSourceHealth).where(DBSourceHealth.checked_at >= since)
            )
            return summarize_sources(
                [_to_source(row) for row in sources.scalars()],
                [_to_health(row) for row in checks.scalars()],
            )


class SQLJobStore(JobStore):
    """Ingestion job history on the ``ingestion_jobs`` table."""

    def __init__(self, database: Database):
        self.database = database

    async def start_job(self, job_type: str = "fetch") -> IngestionJob:
        job = IngestionJob(job_type=job_type, status=JobStatus.RUNNING)
        job.started_at = job.created_at

        try:
            async with self.database.async_session() as session:
                session.add(DBIngestionJob(
                    id=job.id,
                    job_type=job.job_type,
                    status=job.status.value,
                    created_at=job.created_at,
                    started_at=job.started_at,
                ))
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create ingestion job: {e}") from e

        return job

    async def finish_job(
        self,
        job: IngestionJob,
        summary: Optional[CycleSummary] = None,
        error: Optional[str] = None,
    ) -> IngestionJob:
        apply_summary(job, summary, error)

        try:
            async with self.database.async_session() as session:
                row = await session.get(DBIngestionJob, job.id)
                if row is None:
                    raise StorageError(f"Unknown ingestion job: {job.id}")

                row.status = job.status.value
                row.completed_at = job.completed_at
                row.articles_fetched = job.articles_fetched
                row.successful_sources = job.successful_sources
                row.failed_sources = job.failed_sources
                row.errors_json = job.errors
                row.error_message = job.error_message
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update job status: {e}") from e

        return job

    async def get_job_history(self, limit: int = 50) -> list[IngestionJob]:
        async with self.database.async_session() as session:
            result = await session.execute(
                select(DBIngestionJob)
                .order_by(DBIngestionJob.created_at.desc())
                .limit(limit)
            )
            return [_to_job(row) for row in result.scalars()]

    async def get_job_stats(self, days_back: int = 7) -> dict:
        since = utcnow() - timedelta(days=days_back)

        async with self.database.async_session() as session:
            result = await session.execute(
                select(DBIngestionJob).where(DBIngestionJob.created_at >= since)
            )
            return summarize_jobs(_to_job(row) for row in result.scalars())


class SQLArticleStore(ArticleStore):
    """Raw article pool on the ``raw_news_articles`` table."""

    def __init__(self, database: Database):
        self.database = database

    async def insert_raw_articles(self, articles: list[RawArticle]) -> None:
        if not articles:
            return

        created_at = utcnow()
        try:
            async with self.database.async_session() as session:
                session.add_all([
                    DBRawArticle(
                        source_id=article.source_id,
                        title=article.title,
                        content=article.content,
                        summary=article.summary,
                        url=article.url,
                        published_at=as_utc(article.published_at),
                        author=article.author,
                        image_url=article.image_url,
                        metadata_json=article.metadata,
                        created_at=created_at,
                    )
                    for article in articles
                ])
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"insert into raw_news_articles failed: {e}") from e

    async def get_recent_articles(self, since: datetime) -> list[RawArticle]:
        async with self.database.async_session() as session:
            result = await session.execute(
                select(DBRawArticle)
                .where(DBRawArticle.created_at >= as_utc(since))
                .order_by(DBRawArticle.published_at.desc())
            )
            return [_to_article(row) for row in result.scalars()]
