"""
News ingestion pipeline: fetch, normalize, validate and deduplicate
articles from RSS/Atom feeds and JSON APIs.
"""

__version__ = "0.1.0"
