"""
Ingestion Scheduler - triggers orchestrator cycles on a fixed interval.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from news_ingest.services.ingestion.base import CycleSummary
from news_ingest.services.ingestion.orchestrator import IngestionOrchestrator

logger = structlog.get_logger(__name__)

JOB_ID = "news_ingestion_cycle"


class IngestionScheduler:
    """
    Runs ``fetch_news_from_all_sources`` every ``interval_minutes``.

    At most one cycle runs at a time; missed runs are coalesced. Only the
    latest summary is kept here; the orchestrator's job store holds the
    persistent history.
    """

    def __init__(
        self,
        orchestrator: IngestionOrchestrator,
        interval_minutes: int = 15,
        scheduler: Optional[AsyncIOScheduler] = None,
    ):
        self.orchestrator = orchestrator
        self.interval_minutes = interval_minutes
        self.scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)

        self._last_summary: Optional[CycleSummary] = None
        self._last_run_at: Optional[datetime] = None

    def start(self, run_immediately: bool = True) -> None:
        """Register the cycle job and start the scheduler (needs a running loop)."""
        if self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        job_options = {}
        if run_immediately:
            job_options["next_run_time"] = datetime.now(timezone.utc)

        self.scheduler.add_job(
            self.run_cycle,
            IntervalTrigger(minutes=self.interval_minutes),
            id=JOB_ID,
            name="News ingestion cycle",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            **job_options,
        )
        self.scheduler.start()
        logger.info("Ingestion scheduler started", interval_minutes=self.interval_minutes)

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Ingestion scheduler stopped")

    async def run_cycle(self) -> Optional[CycleSummary]:
        """Execute one cycle; failures are logged and the schedule continues."""
        self._last_run_at = datetime.now(timezone.utc)
        try:
            summary = await self.orchestrator.fetch_news_from_all_sources()
        except Exception as e:
            logger.error("Ingestion cycle failed", error=str(e), exc_info=True)
            return None

        for error in summary.errors:
            logger.warning(
                "Source failed",
                source_id=error.source_id,
                source_name=error.source_name,
                error=error.error,
            )

        self._last_summary = summary
        return summary

    @property
    def is_running(self) -> bool:
        return self.scheduler.running

    def get_status(self) -> dict:
        """Get scheduler status."""
        job = self.scheduler.get_job(JOB_ID) if self.scheduler.running else None
        next_run = job.next_run_time if job else None

        return {
            "running": self.is_running,
            "interval_minutes": self.interval_minutes,
            "last_run": self._last_run_at.isoformat() if self._last_run_at else None,
            "next_run": next_run.isoformat() if next_run else None,
            "last_summary": self._last_summary.to_dict() if self._last_summary else None,
            "last_job_id": self._last_summary.job_id if self._last_summary else None,
        }
