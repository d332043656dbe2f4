#!/usr/bin/env python3
"""
CLI tool for news ingestion.

Usage:
    # Create tables
    news-ingest init-db

    # Register a feed
    news-ingest add-source "Example News" https://example.com/rss --priority 5

    # Run one cycle over all ready sources
    news-ingest fetch --json

    # Force-fetch or dry-run a single source
    news-ingest fetch-source <source-id>
    news-ingest test-source <source-id>

    # Soft-disable, re-enable or clear the failure count of a source
    news-ingest disable <source-id>
    news-ingest enable <source-id>
    news-ingest reset <source-id>

    # Show recent health checks, job history and registry stats
    news-ingest health
    news-ingest jobs --limit 10
    news-ingest stats

    # Run scheduler (continuous)
    news-ingest serve --interval 15
"""

import argparse
import asyncio
import json
import sys

import structlog

from news_ingest.config import Settings, get_settings
from news_ingest.logging_config import configure_logging
from news_ingest.models.database import Database
from news_ingest.services.ingestion import FeedFetcher, Source, SourceType
from news_ingest.services.ingestion.orchestrator import IngestionOrchestrator
from news_ingest.services.ingestion.scheduler import IngestionScheduler
from news_ingest.services.ingestion.errors import StorageError
from news_ingest.storage import SQLArticleStore, SQLJobStore, SQLSourceStore

logger = structlog.get_logger(__name__)


def create_stores(database: Database, settings: Settings) -> tuple[SQLSourceStore, SQLArticleStore]:
    """Create SQL-backed stores on a shared database."""
    return (
        SQLSourceStore(database, quality_smoothing=settings.source_quality_smoothing),
        SQLArticleStore(database),
    )


async def cmd_init_db(args, settings: Settings) -> int:
    """Create database tables."""
    database = Database(settings.database_url)
    try:
        await database.create_tables()
    finally:
        await database.dispose()

    print(f"Database initialised: {settings.database_url}")
    return 0


async def cmd_add_source(args, settings: Settings) -> int:
    """Register a new source."""
    headers = {}
    for header in args.header or []:
        key, sep, value = header.partition(":")
        if not sep:
            print(f"Invalid header (expected 'Name: value'): {header}")
            return 1
        headers[key.strip()] = value.strip()

    source = Source(
        name=args.name,
        url=args.url,
        source_type=SourceType(args.type),
        api_key=args.api_key,
        api_endpoint=args.api_endpoint,
        headers=headers,
        categories=args.category or [],
        language=args.language,
        fetch_interval=args.interval,
        priority=args.priority,
    )

    database = Database(settings.database_url)
    try:
        source_store, _ = create_stores(database, settings)
        await source_store.add_source(source)
    finally:
        await database.dispose()

    print(f"Added source {source.name}: {source.id}")
    return 0


async def cmd_sources(args, settings: Settings) -> int:
    """List configured sources."""
    database = Database(settings.database_url)
    try:
        source_store, _ = create_stores(database, settings)
        sources = await source_store.list_sources()
    finally:
        await database.dispose()

    print("\n" + "=" * 60)
    print("SOURCES")
    print("=" * 60)
    print(f"Total sources: {len(sources)}")
    print()

    for source in sources:
        state = "active" if source.is_active else "inactive"
        print(f"  {source.name} [{source.source_type.value}, {state}]")
        print(f"    ID: {source.id}")
        print(f"    URL: {source.request_url}")
        print(f"    Priority: {source.priority}  Quality: {source.quality_score:.2f}")
        print(
            f"    Failures: {source.consecutive_failures}/{source.max_failures}"
            f"  Articles today: {source.articles_today}"
        )
        last = source.last_fetched_at.isoformat() if source.last_fetched_at else "never"
        print(f"    Last fetched: {last}")
        print()

    return 0


async def cmd_fetch(args, settings: Settings) -> int:
    """Run one ingestion cycle."""
    database = Database(settings.database_url)
    try:
        source_store, article_store = create_stores(database, settings)
        async with FeedFetcher(settings) as fetcher:
            orchestrator = IngestionOrchestrator(
                source_store,
                article_store,
                fetcher=fetcher,
                settings=settings,
                job_store=SQLJobStore(database),
            )
            summary = await orchestrator.fetch_news_from_all_sources()
    finally:
        await database.dispose()

    if args.json:
        print(json.dumps(summary.to_dict(), indent=2))
        return 0 if summary.failed_sources == 0 else 1

    print("\n" + "=" * 60)
    print("INGESTION RESULTS")
    print("=" * 60)

    for result in summary.results:
        print(result)

    print("-" * 60)
    print(summary)

    return 0 if summary.failed_sources == 0 else 1


async def _run_single(args, settings: Settings, dry_run: bool) -> int:
    database = Database(settings.database_url)
    try:
        source_store, article_store = create_stores(database, settings)
        async with FeedFetcher(settings) as fetcher:
            orchestrator = IngestionOrchestrator(
                source_store,
                article_store,
                fetcher=fetcher,
                settings=settings,
            )
            if dry_run:
                source = await source_store.get_source(args.source_id)
                if source is None:
                    print(f"Unknown source: {args.source_id}")
                    return 1
                result = await orchestrator.test_source(source)
            else:
                result = await orchestrator.fetch_source_now(args.source_id)
    finally:
        await database.dispose()

    print(result)
    return 0 if result.success else 1


async def cmd_fetch_source(args, settings: Settings) -> int:
    """Fetch one source now, ignoring its schedule."""
    return await _run_single(args, settings, dry_run=False)


async def cmd_test_source(args, settings: Settings) -> int:
    """Fetch and score one source without storing anything."""
    return await _run_single(args, settings, dry_run=True)


async def cmd_health(args, settings: Settings) -> int:
    """Show recent health checks for every source."""
    database = Database(settings.database_url)
    try:
        source_store, _ = create_stores(database, settings)
        sources = await source_store.list_sources()
        history = {
            source.id: await source_store.get_health_history(source.id, limit=args.limit)
            for source in sources
        }
    finally:
        await database.dispose()

    print("\n" + "=" * 40)
    print("SOURCE HEALTH")
    print("=" * 40)

    all_healthy = True
    for source in sources:
        records = history[source.id]
        latest = records[0] if records else None
        if latest is None:
            status = "- never fetched"
        elif latest.status.is_failure:
            status = f"✗ {latest.status.value.upper()}: {latest.error_message}"
            all_healthy = False
        else:
            status = f"✓ {latest.status.value.upper()} ({latest.articles_fetched} articles)"
        print(f"  {source.name}: {status}")

        for record in records[1:]:
            print(
                f"      {record.checked_at.isoformat()} {record.status.value}"
                f" {record.response_time_ms}ms"
            )

    return 0 if all_healthy else 1


async def _change_source(args, settings: Settings, change) -> int:
    database = Database(settings.database_url)
    try:
        source_store, _ = create_stores(database, settings)
        source = await change(source_store, args.source_id)
    except StorageError as e:
        print(e)
        return 1
    finally:
        await database.dispose()

    state = "active" if source.is_active else "inactive"
    print(
        f"{source.name} [{state}]"
        f" failures={source.consecutive_failures}/{source.max_failures}"
    )
    return 0


async def cmd_enable(args, settings: Settings) -> int:
    """Re-enable a source."""
    return await _change_source(
        args, settings, lambda store, source_id: store.set_active(source_id, True)
    )


async def cmd_disable(args, settings: Settings) -> int:
    """Soft-disable a source; its history is kept."""
    return await _change_source(
        args, settings, lambda store, source_id: store.set_active(source_id, False)
    )


async def cmd_reset(args, settings: Settings) -> int:
    """Clear a source's consecutive failures."""
    return await _change_source(
        args, settings, lambda store, source_id: store.reset_failures(source_id)
    )


async def cmd_jobs(args, settings: Settings) -> int:
    """Show recent ingestion jobs."""
    database = Database(settings.database_url)
    try:
        job_store = SQLJobStore(database)
        jobs = await job_store.get_job_history(limit=args.limit)
        stats = await job_store.get_job_stats(days_back=args.days)
    finally:
        await database.dispose()

    print("\n" + "=" * 60)
    print("INGESTION JOBS")
    print("=" * 60)

    for job in jobs:
        print(f"  {job.created_at.isoformat()} {job}")
        for error in job.errors:
            print(f"      ✗ {error.get('sourceName')}: {error.get('error')}")

    print("-" * 60)
    print(f"Last {args.days} days:")
    for key, value in stats.items():
        print(f"  {key}: {value}")

    return 0


async def cmd_stats(args, settings: Settings) -> int:
    """Show source registry statistics."""
    database = Database(settings.database_url)
    try:
        source_store, _ = create_stores(database, settings)
        stats = await source_store.get_source_stats()
    finally:
        await database.dispose()

    if args.json:
        print(json.dumps(stats.to_dict(), indent=2))
        return 0

    print("\n" + "=" * 40)
    print("SOURCE STATS")
    print("=" * 40)
    for key, value in stats.to_dict().items():
        print(f"  {key}: {value}")

    return 0


async def cmd_serve(args, settings: Settings) -> int:
    """Run continuous scheduler."""
    database = Database(settings.database_url)
    await database.create_tables()
    source_store, article_store = create_stores(database, settings)

    interval = args.interval or settings.fetch_interval_minutes

    async with FeedFetcher(settings) as fetcher:
        orchestrator = IngestionOrchestrator(
            source_store,
            article_store,
            fetcher=fetcher,
            settings=settings,
            job_store=SQLJobStore(database),
        )
        scheduler = IngestionScheduler(orchestrator, interval_minutes=interval)

        print(f"Starting scheduler (fetch every {interval} minutes)")
        print("Press Ctrl+C to stop")

        scheduler.start()
        try:
            # Keep running until interrupted
            while scheduler.is_running:
                await asyncio.sleep(60)
                status = scheduler.get_status()
                logger.debug("Scheduler status", next_run=status["next_run"])
        finally:
            scheduler.stop()
            await database.dispose()

    return 0


COMMANDS = {
    "init-db": cmd_init_db,
    "add-source": cmd_add_source,
    "sources": cmd_sources,
    "fetch": cmd_fetch,
    "fetch-source": cmd_fetch_source,
    "test-source": cmd_test_source,
    "health": cmd_health,
    "enable": cmd_enable,
    "disable": cmd_disable,
    "reset": cmd_reset,
    "jobs": cmd_jobs,
    "stats": cmd_stats,
    "serve": cmd_serve,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="News Ingest - feed ingestion CLI"
    )
    parser.add_argument(
        "--database-url",
        help="Override DATABASE_URL"
    )
    parser.add_argument(
        "--log-level",
        help="Override LOG_LEVEL (DEBUG, INFO, ...)"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("init-db", help="Create database tables")

    # Add-source command
    add_parser = subparsers.add_parser("add-source", help="Register a source")
    add_parser.add_argument("name", help="Display name")
    add_parser.add_argument("url", help="Feed or API URL")
    add_parser.add_argument(
        "--type", "-t",
        choices=[t.value for t in SourceType],
        default=SourceType.RSS.value,
        help="Source type (default: rss)"
    )
    add_parser.add_argument("--api-key", help="Sent as a Bearer token")
    add_parser.add_argument("--api-endpoint", help="URL requested instead of URL for API sources")
    add_parser.add_argument(
        "--header", "-H",
        action="append",
        help="Extra request header 'Name: value' (repeatable)"
    )
    add_parser.add_argument(
        "--category", "-c",
        action="append",
        help="Category tag (repeatable)"
    )
    add_parser.add_argument("--language", default="en", help="Language code (default: en)")
    add_parser.add_argument(
        "--interval", "-i",
        type=int,
        default=3600,
        help="Fetch interval in seconds (default: 3600)"
    )
    add_parser.add_argument(
        "--priority", "-p",
        type=int,
        default=1,
        help="Priority 1-10, higher fetched first (default: 1)"
    )

    subparsers.add_parser("sources", help="List sources")

    # Fetch command
    fetch_parser = subparsers.add_parser("fetch", help="Run one ingestion cycle")
    fetch_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the cycle summary as JSON"
    )

    fetch_one = subparsers.add_parser("fetch-source", help="Fetch one source now")
    fetch_one.add_argument("source_id")

    test_one = subparsers.add_parser("test-source", help="Dry-run one source")
    test_one.add_argument("source_id")

    # Health command
    health_parser = subparsers.add_parser("health", help="Show source health")
    health_parser.add_argument(
        "--limit", "-l",
        type=int,
        default=5,
        help="Health records per source (default: 5)"
    )

    for name, help_text in (
        ("enable", "Re-enable a source"),
        ("disable", "Soft-disable a source"),
        ("reset", "Clear a source's consecutive failures"),
    ):
        change_parser = subparsers.add_parser(name, help=help_text)
        change_parser.add_argument("source_id")

    # Jobs command
    jobs_parser = subparsers.add_parser("jobs", help="Show ingestion job history")
    jobs_parser.add_argument(
        "--limit", "-l",
        type=int,
        default=20,
        help="Jobs to show (default: 20)"
    )
    jobs_parser.add_argument(
        "--days", "-d",
        type=int,
        default=7,
        help="Window for job statistics in days (default: 7)"
    )

    stats_parser = subparsers.add_parser("stats", help="Show source statistics")
    stats_parser.add_argument(
        "--json",
        action="store_true",
        help="Print the statistics as JSON"
    )

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run continuous scheduler")
    serve_parser.add_argument(
        "--interval", "-i",
        type=int,
        help="Fetch interval in minutes (default: FETCH_INTERVAL_MINUTES)"
    )

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    settings = get_settings()
    overrides = {}
    if args.database_url:
        overrides["database_url"] = args.database_url
    if args.log_level:
        overrides["log_level"] = args.log_level
    if overrides:
        settings = settings.model_copy(update=overrides)

    configure_logging(settings.log_level, settings.log_json)

    try:
        return asyncio.run(COMMANDS[args.command](args, settings))
    except KeyboardInterrupt:
        print("\nShutting down...")
        return 0


if __name__ == "__main__":
    sys.exit(main())
