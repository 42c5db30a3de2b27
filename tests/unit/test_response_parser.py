"""
Unit tests for lenient JSON recovery and URL scraping.
"""

from src.parsers.response_parser import extract_urls, parse_lenient


class TestParseLenient:
    """Tests for parse_lenient()."""

    def test_plain_json_object(self):
        assert parse_lenient('{"title": "T"}') == {"title": "T"}

    def test_object_wrapped_in_prose(self):
        """Prose and code fences around the object are ignored."""
        text = 'Here is your outline:\n```json\n{"title": "T", "sections": []}\n```\nEnjoy!'
        assert parse_lenient(text) == {"title": "T", "sections": []}

    def test_array_wrapped_in_prose(self):
        text = 'Sources:\n[{"name": "A", "link": "https://a.org"}] hope this helps'
        assert parse_lenient(text) == [{"name": "A", "link": "https://a.org"}]

    def test_nested_braces_use_last_closer(self):
        text = 'x {"a": {"b": 1}} y'
        assert parse_lenient(text) == {"a": {"b": 1}}

    def test_unrecoverable_returns_default(self):
        assert parse_lenient("no json here", default={}) == {}
        assert parse_lenient("{broken", default=None) is None

    def test_empty_input_returns_default(self):
        assert parse_lenient("", default=[]) == []
        assert parse_lenient(None, default="d") == "d"


class TestExtractUrls:
    """Tests for extract_urls()."""

    def test_finds_urls_in_order(self):
        text = "See https://a.org/x and (http://b.com/page). Also https://a.org/x again."
        assert extract_urls(text) == ["https://a.org/x", "http://b.com/page"]

    def test_strips_trailing_punctuation(self):
        assert extract_urls("Visit https://example.com.") == ["https://example.com"]

    def test_limit(self):
        text = " ".join(f"https://site{i}.com" for i in range(10))
        assert len(extract_urls(text, limit=5)) == 5

    def test_no_urls(self):
        assert extract_urls("nothing to see") == []
        assert extract_urls(None) == []
