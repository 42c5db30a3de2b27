"""
Unit tests for batch input parsing.

Tests cover:
- Spreadsheet, CSV and JSON uploads
- Pasted text (CSV with header, one title per line)
- Single post entry
- Header aliases and error cases
"""

import io
import json

import pandas as pd
import pytest

from src.converters.exporters import EXAMPLE_TOPICS, build_example_workbook
from src.parsers.topic_parser import InputError, ParsedRows, RawBytes, TopicParser


def _xlsx(rows: list[list[str]], columns: list[str]) -> bytes:
    buffer = io.BytesIO()
    pd.DataFrame(rows, columns=columns).to_excel(buffer, index=False)
    return buffer.getvalue()


class TestFileUploads:
    """Tests for RawBytes sources."""

    def test_excel_with_blog_idea_header(self):
        data = _xlsx(
            [["First idea", "https://a.org"], ["Second idea", None]],
            ["Blog Idea", "Reference Link"],
        )
        topics = TopicParser.parse(RawBytes(filename="ideas.xlsx", data=data))

        assert [t.idea for t in topics] == ["First idea", "Second idea"]
        assert topics[0].reference_link == "https://a.org"
        assert topics[1].reference_link is None

    def test_example_workbook_round_trips(self):
        payload = build_example_workbook()
        topics = TopicParser.parse(RawBytes(filename=payload.filename, data=payload.content))

        assert [(t.idea, t.reference_link) for t in topics] == EXAMPLE_TOPICS

    def test_csv_with_alias_headers(self):
        data = b"Topic,URL\nCats,https://cats.org\nDogs,\n"
        topics = TopicParser.parse(RawBytes(filename="ideas.csv", data=data))

        assert [t.idea for t in topics] == ["Cats", "Dogs"]
        assert topics[0].reference_link == "https://cats.org"

    def test_blank_rows_are_skipped(self):
        data = b"idea,link\nOne,\n,\n  ,https://x.org\nTwo,\n"
        topics = TopicParser.parse(RawBytes(filename="ideas.csv", data=data))
        assert [t.idea for t in topics] == ["One", "Two"]

    def test_json_array(self):
        data = json.dumps([
            {"idea": "A", "reference link": "https://a.org"},
            "B",
        ]).encode()
        topics = TopicParser.parse(RawBytes(filename="ideas.json", data=data))
        assert [t.idea for t in topics] == ["A", "B"]
        assert topics[0].reference_link == "https://a.org"

    def test_json_object_with_topics_key(self):
        data = json.dumps({"topics": [{"title": "Only one"}]}).encode()
        topics = TopicParser.parse(RawBytes(filename="ideas.json", data=data))
        assert [t.idea for t in topics] == ["Only one"]

    def test_missing_idea_column(self):
        data = b"name,url\nx,https://x.org\n"
        with pytest.raises(InputError, match="No idea/topic column"):
            TopicParser.parse(RawBytes(filename="ideas.csv", data=data))

    def test_empty_file(self):
        with pytest.raises(InputError, match="empty"):
            TopicParser.parse(RawBytes(filename="ideas.xlsx", data=b""))

    def test_corrupt_workbook(self):
        with pytest.raises(InputError, match="Failed to load"):
            TopicParser.parse(RawBytes(filename="ideas.xlsx", data=b"not a zip file"))

    @pytest.mark.parametrize("filename", ["ideas.docx", "ideas.xls"])
    def test_unsupported_extension(self, filename):
        with pytest.raises(InputError, match="Unsupported file type"):
            TopicParser.parse(RawBytes(filename=filename, data=b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1"))

    def test_header_only(self):
        with pytest.raises(InputError):
            TopicParser.parse(RawBytes(filename="ideas.csv", data=b"idea,link\n"))


class TestPastedText:
    """Tests for rows_from_text()."""

    def test_csv_text_with_header(self):
        rows = TopicParser.rows_from_text("Blog Idea,Reference Link\nA,https://a.org\nB,\n")
        topics = TopicParser.parse(rows)
        assert [t.idea for t in topics] == ["A", "B"]
        assert topics[0].reference_link == "https://a.org"

    def test_one_title_per_line(self):
        rows = TopicParser.rows_from_text("First post\n\nSecond, with comma\nThird, https://t.org\n")
        topics = TopicParser.parse(rows)

        assert [t.idea for t in topics] == ["First post", "Second, with comma", "Third"]
        assert topics[2].reference_link == "https://t.org"

    def test_empty_text(self):
        with pytest.raises(InputError):
            TopicParser.rows_from_text("   \n")


class TestSingleEntry:
    """Tests for rows_from_single()."""

    def test_idea_and_link(self):
        topics = TopicParser.parse(TopicParser.rows_from_single("  My post ", "https://m.org"))
        assert len(topics) == 1
        assert topics[0].idea == "My post"
        assert topics[0].reference_link == "https://m.org"

    def test_missing_idea(self):
        with pytest.raises(InputError, match="title is required"):
            TopicParser.rows_from_single("")

    def test_parsed_rows_without_rows(self):
        with pytest.raises(InputError, match="no rows"):
            TopicParser.parse(ParsedRows(rows=[]))
