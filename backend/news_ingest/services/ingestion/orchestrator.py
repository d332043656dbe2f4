"""
Ingestion Orchestrator - drives one ingestion cycle across all ready sources.

Per source: pending -> fetching -> parsed -> validated -> deduplicated
-> stored, or failed as soon as any stage raises.

Sources are processed in fixed-size chunks: in parallel within a chunk,
strictly sequentially across chunks. One source failing never affects
the others; failures are reported in the cycle summary and recorded as
health checks, and retry is left to the next cycle.
"""

import asyncio
import time
from datetime import timedelta
from typing import Optional

import structlog

from news_ingest.config import Settings, get_settings
from news_ingest.services.ingestion.base import (
    CycleSummary,
    FetchState,
    HealthCheckRecord,
    HealthStatus,
    IngestionJob,
    RawArticle,
    Source,
    SourceError,
    SourceFetchResult,
    SourceTestResult,
    utcnow,
)
from news_ingest.services.ingestion.dedup import Deduplicator
from news_ingest.services.ingestion.errors import (
    FetchError,
    FetchTimeout,
    IngestionError,
    StorageError,
)
from news_ingest.services.ingestion.fetcher import FeedFetcher
from news_ingest.services.ingestion.quality import QualityValidator
from news_ingest.storage.base import ArticleStore, JobStore, SourceStore

logger = structlog.get_logger(__name__)


class _SourceRun:
    """Mutable bookkeeping for one source while it moves through the pipeline."""

    def __init__(self, source: Source):
        self.source = source
        self.state = FetchState.PENDING
        self.started = time.perf_counter()
        self.response_time_ms = 0
        self.fetched: list[RawArticle] = []
        self.rejected = 0
        self.duplicates = 0
        self.stored = 0

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started) * 1000)

    def mean_quality(self) -> Optional[float]:
        scores = [
            a.metadata["quality_score"]
            for a in self.fetched
            if "quality_score" in a.metadata
        ]
        if not scores:
            return None
        return sum(scores) / len(scores)

    def result(
        self,
        status: HealthStatus,
        error_message: Optional[str] = None,
    ) -> SourceFetchResult:
        return SourceFetchResult(
            source_id=self.source.id,
            source_name=self.source.name,
            success=error_message is None,
            status=status,
            state=self.state,
            response_time_ms=self.response_time_ms,
            articles_fetched=len(self.fetched),
            articles_rejected=self.rejected,
            duplicates_removed=self.duplicates,
            articles_stored=self.stored,
            error_message=error_message,
        )


class IngestionOrchestrator:
    """
    Runs ingestion cycles over the sources a SourceStore reports as ready.

    All collaborators are injected; only the source and article stores are
    required. With a job_store, every cycle is recorded as an ingestion job.
    """

    def __init__(
        self,
        source_store: SourceStore,
        article_store: ArticleStore,
        fetcher: Optional[FeedFetcher] = None,
        validator: Optional[QualityValidator] = None,
        deduplicator: Optional[Deduplicator] = None,
        settings: Optional[Settings] = None,
        job_store: Optional[JobStore] = None,
    ):
        self.settings = settings or get_settings()
        self.source_store = source_store
        self.article_store = article_store
        self.job_store = job_store
        self.fetcher = fetcher or FeedFetcher(self.settings)
        self.validator = validator or QualityValidator(self.settings.quality)
        self.deduplicator = deduplicator or Deduplicator(self.settings.dedup)

        self._cycle_lock = asyncio.Lock()

    async def fetch_news_from_all_sources(self) -> CycleSummary:
        """
        Run one full cycle over every ready source.

        Cycles never overlap: a second call waits for the running one.
        """
        async with self._cycle_lock:
            job = await self._start_job()
            try:
                summary = await self._run_cycle()
            except Exception as e:
                await self._finish_job(job, error=str(e) or e.__class__.__name__)
                raise

            if job is not None:
                summary.job_id = job.id
            await self._finish_job(job, summary=summary)
            return summary

    async def _start_job(self) -> Optional[IngestionJob]:
        if self.job_store is None:
            return None
        try:
            return await self.job_store.start_job("fetch")
        except Exception as e:
            logger.error("Failed to create ingestion job", error=str(e))
            return None

    async def _finish_job(
        self,
        job: Optional[IngestionJob],
        summary: Optional[CycleSummary] = None,
        error: Optional[str] = None,
    ) -> None:
        if job is None:
            return
        try:
            await self.job_store.finish_job(job, summary=summary, error=error)
        except Exception as e:
            logger.error("Failed to update ingestion job", job_id=job.id, error=str(e))

    async def _run_cycle(self) -> CycleSummary:
        start = time.perf_counter()
        sources = await self.source_store.get_sources_ready_for_fetch()
        summary = CycleSummary()

        limit = self.settings.concurrency_limit
        logger.info("Starting ingestion cycle", ready_sources=len(sources), concurrency=limit)

        for offset in range(0, len(sources), limit):
            chunk = sources[offset:offset + limit]
            outcomes = await asyncio.gather(
                *(self.process_source(source) for source in chunk),
                return_exceptions=True,
            )

            for source, outcome in zip(chunk, outcomes):
                if isinstance(outcome, BaseException):
                    if isinstance(outcome, asyncio.CancelledError):
                        raise outcome
                    logger.error(
                        "Source processing crashed",
                        source_id=source.id,
                        source_name=source.name,
                        error=str(outcome),
                    )
                    outcome = SourceFetchResult(
                        source_id=source.id,
                        source_name=source.name,
                        success=False,
                        status=HealthStatus.ERROR,
                        state=FetchState.FAILED,
                        error_message=str(outcome) or outcome.__class__.__name__,
                    )
                self._add_to_summary(summary, outcome)

        summary.duration_seconds = time.perf_counter() - start
        logger.info(
            "Ingestion cycle completed",
            total_articles=summary.total_articles,
            successful_sources=summary.successful_sources,
            failed_sources=summary.failed_sources,
            duration_seconds=round(summary.duration_seconds, 2),
        )
        return summary

    def _add_to_summary(self, summary: CycleSummary, result: SourceFetchResult) -> None:
        summary.results.append(result)
        # Stored articles count even when a later step failed the source
        summary.total_articles += result.articles_stored
        if result.success:
            summary.successful_sources += 1
        else:
            summary.failed_sources += 1
            summary.errors.append(SourceError(
                source_id=result.source_id,
                source_name=result.source_name,
                error=result.error_message or "Unknown error",
            ))

    async def process_source(self, source: Source) -> SourceFetchResult:
        """
        Fetch, validate, deduplicate and store one source, then record
        its health. Pipeline failures are returned, not raised.
        """
        run = _SourceRun(source)
        log = logger.bind(source_id=source.id, source_name=source.name)

        try:
            await self._fetch(run)
            accepted = self._validate(run)
            unique = await self._deduplicate(run, accepted)
            await self._store(run, unique)
        except IngestionError as e:
            return await self._fail(run, e, log)
        except Exception as e:
            log.exception("Unexpected error while processing source")
            return await self._fail(run, e, log)

        record = HealthCheckRecord(
            source_id=source.id,
            status=HealthStatus.HEALTHY,
            response_time_ms=run.response_time_ms,
            articles_fetched=len(run.fetched),
            mean_article_quality=run.mean_quality(),
        )
        try:
            await self.source_store.record_health_check(record)
        except Exception as e:
            log.error("Failed to record health check", error=str(e))
            return run.result(
                HealthStatus.ERROR,
                f"Failed to record health check for {source.name} "
                f"({run.stored} articles stored): {e}",
            )

        log.info(
            "Source ingested",
            fetched=len(run.fetched),
            rejected=run.rejected,
            duplicates=run.duplicates,
            stored=run.stored,
            response_time_ms=run.response_time_ms,
        )
        return run.result(HealthStatus.HEALTHY)

    async def _fetch(self, run: _SourceRun) -> None:
        run.state = FetchState.FETCHING
        timeout = self.settings.source_timeout_seconds
        try:
            run.fetched = await asyncio.wait_for(
                self.fetcher.fetch(run.source),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            raise FetchTimeout(
                f"Failed to fetch {run.source.name}: timed out after {timeout:g}s",
                source_name=run.source.name,
            ) from e
        finally:
            run.response_time_ms = run.elapsed_ms()
        run.state = FetchState.PARSED

    def _validate(self, run: _SourceRun) -> list[RawArticle]:
        accepted, rejected = self.validator.filter(run.fetched)
        run.rejected = len(rejected)
        for article, assessment in rejected:
            logger.debug(
                "Article rejected",
                source_name=run.source.name,
                url=article.url,
                score=assessment.score,
                issues=assessment.issues,
            )
        run.state = FetchState.VALIDATED
        return accepted

    async def _deduplicate(self, run: _SourceRun, accepted: list[RawArticle]) -> list[RawArticle]:
        existing: list[RawArticle] = []
        window = self.settings.dedup.history_window_days
        if window and accepted:
            existing = await self.article_store.get_recent_articles(
                utcnow() - timedelta(days=window)
            )

        unique = self.deduplicator.deduplicate(accepted, existing=existing)
        run.duplicates = len(accepted) - len(unique)
        run.state = FetchState.DEDUPLICATED
        return unique

    async def _store(self, run: _SourceRun, articles: list[RawArticle]) -> None:
        if articles:
            try:
                await self.article_store.insert_raw_articles(articles)
            except Exception as e:
                raise StorageError(
                    f"Failed to store articles for {run.source.name}: {e}",
                    source_name=run.source.name,
                ) from e
        run.stored = len(articles)
        run.state = FetchState.STORED

    async def _fail(self, run: _SourceRun, error: Exception, log) -> SourceFetchResult:
        failed_in = run.state
        run.state = FetchState.FAILED
        message = str(error) or error.__class__.__name__
        log.error(
            "Source ingestion failed",
            stage=failed_in.value,
            error=message,
            timed_out=isinstance(error, FetchTimeout),
        )

        record = HealthCheckRecord(
            source_id=run.source.id,
            status=HealthStatus.ERROR,
            response_time_ms=run.response_time_ms or run.elapsed_ms(),
            articles_fetched=0,
            error_message=message,
            http_status_code=error.status_code if isinstance(error, FetchError) else None,
        )
        try:
            await self.source_store.record_health_check(record)
        except Exception as e:
            log.error("Failed to record health check", error=str(e))

        return run.result(HealthStatus.ERROR, message)

    async def fetch_source_now(self, source_id: str) -> SourceTestResult:
        """Admin 'fetch now' for a single source, regardless of schedule."""
        source = await self.source_store.get_source(source_id)
        if source is None:
            return SourceTestResult(
                source_id=source_id,
                source_name="",
                success=False,
                status=HealthStatus.ERROR,
                state=FetchState.FAILED,
                error_message=f"Unknown source: {source_id}",
            )
        return await self.process_source(source)

    async def test_source(self, source: Source) -> SourceTestResult:
        """Dry run: fetch, parse and score a source without writing anything."""
        run = _SourceRun(source)
        try:
            await self._fetch(run)
            self._validate(run)
        except Exception as e:
            run.state = FetchState.FAILED
            return run.result(HealthStatus.ERROR, str(e) or e.__class__.__name__)
        return run.result(HealthStatus.HEALTHY)
