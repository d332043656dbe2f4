"""
Database models.
"""
from news_ingest.models.database import (
    Base,
    Database,
    DBIngestionJob,
    DBNewsSource,
    DBRawArticle,
    DBSourceHealth,
)

__all__ = [
    "Base",
    "Database",
    "DBIngestionJob",
    "DBNewsSource",
    "DBRawArticle",
    "DBSourceHealth",
]
