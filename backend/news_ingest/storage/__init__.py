"""
Persistence for sources, health records, ingestion jobs and raw articles.
"""
from news_ingest.storage.base import (
    ArticleStore,
    JobStore,
    SourceStore,
    fold_health_check,
    summarize_sources,
)
from news_ingest.storage.sql import SQLArticleStore, SQLJobStore, SQLSourceStore

__all__ = [
    "ArticleStore",
    "JobStore",
    "SourceStore",
    "fold_health_check",
    "summarize_sources",
    "SQLArticleStore",
    "SQLJobStore",
    "SQLSourceStore",
]
