"""
Tests for the ingestion scheduler and the CLI entry point.
"""

import asyncio
import json

from news_ingest import cli
from news_ingest.services.ingestion.base import CycleSummary, SourceError
from news_ingest.services.ingestion.scheduler import JOB_ID, IngestionScheduler


class FakeOrchestrator:
    def __init__(self, summary=None, error=None):
        self.summary = summary or CycleSummary()
        self.error = error
        self.runs = 0

    async def fetch_news_from_all_sources(self):
        self.runs += 1
        if self.error:
            raise self.error
        return self.summary


class TestIngestionScheduler:
    """Tests for IngestionScheduler."""

    def test_run_cycle_records_summary(self):
        summary = CycleSummary(
            total_articles=3,
            successful_sources=1,
            failed_sources=1,
            errors=[SourceError("s2", "Source 2", "HTTP 500")],
        )
        scheduler = IngestionScheduler(FakeOrchestrator(summary))

        result = asyncio.run(scheduler.run_cycle())

        assert result is summary
        status = scheduler.get_status()
        assert status["running"] is False
        assert status["last_run"] is not None
        assert status["last_summary"]["totalArticles"] == 3
        assert status["last_summary"]["errors"][0]["sourceId"] == "s2"
        assert status["last_job_id"] is None

    def test_run_cycle_survives_errors(self):
        orchestrator = FakeOrchestrator(error=RuntimeError("database unavailable"))
        scheduler = IngestionScheduler(orchestrator)

        assert asyncio.run(scheduler.run_cycle()) is None
        assert orchestrator.runs == 1
        assert scheduler.get_status()["last_summary"] is None

    def test_start_registers_single_instance_job(self):
        orchestrator = FakeOrchestrator()
        scheduler = IngestionScheduler(orchestrator, interval_minutes=30)

        async def _run():
            scheduler.start(run_immediately=False)
            try:
                job = scheduler.scheduler.get_job(JOB_ID)
                status = scheduler.get_status()
                return job, status
            finally:
                scheduler.stop()

        job, status = asyncio.run(_run())

        assert job.max_instances == 1
        assert job.coalesce is True
        assert job.trigger.interval.total_seconds() == 30 * 60
        assert status["running"] is True
        assert status["interval_minutes"] == 30
        assert status["next_run"] is not None
        assert orchestrator.runs == 0


class TestCLI:
    """Tests for the news-ingest command line."""

    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 1
        assert "usage" in capsys.readouterr().out.lower()

    def test_source_lifecycle(self, tmp_path, capsys):
        db = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"

        assert cli.main(["--database-url", db, "init-db"]) == 0
        assert cli.main([
            "--database-url", db, "add-source", "Example News", "https://example.com/rss",
            "--priority", "5", "--category", "local", "-H", "X-Client: cli",
        ]) == 0
        assert cli.main(["--database-url", db, "sources"]) == 0

        out = capsys.readouterr().out
        assert "Added source Example News" in out
        assert "Total sources: 1" in out
        assert "Example News [rss, active]" in out

    def test_fetch_json_with_no_sources(self, tmp_path, capsys):
        db = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
        assert cli.main(["--database-url", db, "init-db"]) == 0
        capsys.readouterr()

        assert cli.main(["--database-url", db, "fetch", "--json"]) == 0

        summary = json.loads(capsys.readouterr().out)
        job_id = summary.pop("jobId")
        assert summary == {
            "totalArticles": 0,
            "successfulSources": 0,
            "failedSources": 0,
            "errors": [],
        }

        assert cli.main(["--database-url", db, "jobs"]) == 0
        out = capsys.readouterr().out
        assert f"{job_id} completed" in out
        assert "total_jobs: 1" in out

    def test_invalid_header(self, tmp_path, capsys):
        db = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
        assert cli.main(["--database-url", db, "init-db"]) == 0
        assert cli.main([
            "--database-url", db, "add-source", "Bad", "https://bad.example.com", "-H", "nocolon",
        ]) == 1

    def test_disable_enable_and_reset(self, tmp_path, capsys):
        db = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
        assert cli.main(["--database-url", db, "init-db"]) == 0
        assert cli.main(["--database-url", db, "add-source", "Example News", "https://example.com/rss"]) == 0
        source_id = capsys.readouterr().out.strip().rsplit(": ", 1)[1]

        assert cli.main(["--database-url", db, "disable", source_id]) == 0
        assert "Example News [inactive]" in capsys.readouterr().out

        assert cli.main(["--database-url", db, "enable", source_id]) == 0
        assert "Example News [active]" in capsys.readouterr().out

        assert cli.main(["--database-url", db, "reset", source_id]) == 0
        assert "failures=0/5" in capsys.readouterr().out

        assert cli.main(["--database-url", db, "reset", "no-such-source"]) == 1
        assert "Unknown source: no-such-source" in capsys.readouterr().out

    def test_stats_json(self, tmp_path, capsys):
        db = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
        assert cli.main(["--database-url", db, "init-db"]) == 0
        assert cli.main(["--database-url", db, "add-source", "Example News", "https://example.com/rss"]) == 0
        capsys.readouterr()

        assert cli.main(["--database-url", db, "stats", "--json"]) == 0

        stats = json.loads(capsys.readouterr().out)
        assert stats["total_sources"] == 1
        assert stats["active_sources"] == 1
        assert stats["last_24h_fetches"] == 0
