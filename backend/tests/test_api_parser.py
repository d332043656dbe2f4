"""
Tests for JSON API parsing and field mapping.
"""

from datetime import datetime, timezone

from conftest import SAMPLE_API
from news_ingest.services.ingestion.api import APIParser, locate_items, resolve_field


class TestLocateItems:
    """Tests for envelope detection."""

    def test_bare_list(self):
        assert locate_items([{"title": "x"}]) == [{"title": "x"}]

    def test_envelope_keys_in_order(self):
        assert locate_items({"data": [1], "results": [2]}) == [1]
        assert locate_items({"articles": [0], "data": [1]}) == [0]
        assert locate_items({"results": [2]}) == [2]

    def test_unknown_shape(self):
        assert locate_items({"items": [1, 2]}) == []
        assert locate_items("nonsense") == []
        assert locate_items({"articles": "not a list"}) == []


class TestResolveField:
    """Tests for synonym resolution."""

    def test_first_populated_synonym_wins(self):
        item = {"title": "", "headline": "Real headline", "name": "ignored"}
        assert resolve_field(item, "title") == "Real headline"

    def test_missing(self):
        assert resolve_field({}, "url") is None


class TestAPIParser:
    """Tests for APIParser."""

    def test_parse_articles_envelope(self, api_source):
        articles = APIParser().parse(SAMPLE_API, api_source)

        assert len(articles) == 2

        first = articles[0]
        assert first.title == "Markets rally as inflation cools"
        assert first.url == "https://api.example.com/news/markets-rally"
        assert first.content.startswith("Stocks rose sharply")
        assert first.author == "Sam Reporter"
        assert first.image_url == "https://cdn.example.com/markets.jpg"
        assert first.published_at == datetime(2024, 1, 15, 8, 30, tzinfo=timezone.utc)
        assert first.source_id == api_source.id

        second = articles[1]
        assert second.title == "Central bank holds rates steady"
        assert second.published_at == datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)
        assert second.author is None

    def test_data_envelope(self, api_source):
        body = {"data": [{"name": "Named item", "permalink": "https://example.com/p"}]}
        articles = APIParser().parse(body, api_source)

        assert [(a.title, a.url) for a in articles] == [("Named item", "https://example.com/p")]

    def test_items_missing_title_or_url_are_skipped(self, api_source):
        body = [
            {"title": "Complete item", "url": "https://example.com/1"},
            {"title": "No url"},
            {"url": "https://example.com/3"},
            "not an object",
            {"headline": "Also complete", "link": "https://example.com/5"},
        ]
        articles = APIParser().parse(body, api_source)

        assert [a.url for a in articles] == ["https://example.com/1", "https://example.com/5"]

    def test_no_items(self, api_source):
        assert APIParser().parse({"status": "ok"}, api_source) == []

    def test_list_author_and_epoch_millis(self, api_source):
        body = [{
            "title": "Millisecond timestamp",
            "url": "https://example.com/ms",
            "author": ["First Author", "Second Author"],
            "created_at": 1705305600000,
        }]
        article = APIParser().parse(body, api_source)[0]

        assert article.author == "First Author"
        assert article.published_at == datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)

    def test_summary_from_content(self, api_source):
        body = [{
            "title": "Summary derived",
            "url": "https://example.com/s",
            "content": "<p>Short <em>HTML</em> body.</p>",
        }]
        article = APIParser().parse(body, api_source)[0]
        assert article.summary == "Short HTML body."
