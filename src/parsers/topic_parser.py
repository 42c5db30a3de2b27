"""
Topic parser for batch input.

The application layer hands the orchestrator one explicit input variant:

- ``RawBytes``: an uploaded file (.xlsx, .csv or .json)
- ``ParsedRows``: rows already split into dicts (pasted text, single entry)

Either way the first row is the header; an idea/topic column is required
and a reference link column is optional.
"""

import io
import json
import re
import zipfile
from pathlib import Path
from typing import Any, Union

import pandas as pd
from pydantic import BaseModel, Field, ValidationError

from src.pipeline.state import Topic
from src.utils.logger import get_logger

logger = get_logger(__name__)


IDEA_HEADERS = {"idea", "topic", "blog idea", "blog topic", "title", "blog title", "post title"}
LINK_HEADERS = {"reference link", "link", "url", "reference", "reference url", "post link"}

SPREADSHEET_SUFFIXES = {".xlsx"}


class InputError(ValueError):
    """Raised when batch input is missing, empty or malformed."""


class RawBytes(BaseModel):
    """An uploaded file as received by the application layer."""

    filename: str = Field(..., min_length=1)
    data: bytes


class ParsedRows(BaseModel):
    """Rows keyed by header name."""

    rows: list[dict[str, Any]] = Field(default_factory=list)


TopicSource = Union[RawBytes, ParsedRows]


def _normalize_header(header: Any) -> str:
    return re.sub(r"[\s_]+", " ", str(header)).strip().lower()


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    # openpyxl hyperlink cells and pandas NaN both end up here
    if isinstance(value, float) and value != value:
        return ""
    return str(value).strip()


class TopicParser:
    """Turns a ``TopicSource`` into an ordered list of ``Topic``."""

    @staticmethod
    def parse(source: TopicSource) -> list[Topic]:
        """
        Parse topics from a file upload or pre-split rows.

        Args:
            source: RawBytes or ParsedRows

        Returns:
            Ordered list of topics

        Raises:
            InputError: If the input is empty, unreadable or has no idea column
        """
        if isinstance(source, RawBytes):
            rows = TopicParser.rows_from_bytes(source)
        else:
            rows = source.rows

        topics = TopicParser.topics_from_rows(rows)
        logger.info(f"Parsed {len(topics)} topics")
        return topics

    @staticmethod
    def rows_from_bytes(raw: RawBytes) -> list[dict[str, Any]]:
        """
        Decode an uploaded file into header-keyed rows.

        Raises:
            InputError: On empty data, unknown extension or decode failure
        """
        if not raw.data:
            raise InputError("No file uploaded or the file is empty")

        suffix = Path(raw.filename).suffix.lower()
        logger.debug(f"Reading {raw.filename} ({len(raw.data)} bytes)")

        try:
            if suffix in SPREADSHEET_SUFFIXES:
                df = pd.read_excel(io.BytesIO(raw.data), dtype=str)
            elif suffix == ".csv":
                df = pd.read_csv(io.BytesIO(raw.data), dtype=str, skipinitialspace=True)
            elif suffix == ".json":
                data = json.loads(raw.data.decode("utf-8"))
                return TopicParser._rows_from_json(data)
            else:
                raise InputError(
                    f"Unsupported file type '{suffix or raw.filename}'. "
                    "Upload an .xlsx, .csv or .json file."
                )
        except InputError:
            raise
        except (ValueError, UnicodeDecodeError, zipfile.BadZipFile, pd.errors.ParserError) as e:
            logger.error(f"Failed to load {raw.filename}: {e}")
            raise InputError(
                f"Failed to load {raw.filename}: {e}. "
                "Please ensure you are uploading a valid file."
            ) from e

        return df.fillna("").to_dict(orient="records")

    @staticmethod
    def _rows_from_json(data: Any) -> list[dict[str, Any]]:
        if isinstance(data, dict):
            # {"topics": [...]} or a single object
            data = data.get("topics", data.get("ideas", [data]))
        if not isinstance(data, list):
            raise InputError("JSON input must be an array of topic objects")

        rows = []
        for item in data:
            if isinstance(item, str):
                rows.append({"idea": item})
            elif isinstance(item, dict):
                rows.append(item)
            else:
                raise InputError(f"Unsupported JSON topic entry: {item!r}")
        return rows

    @staticmethod
    def rows_from_text(text: str) -> ParsedRows:
        """
        Split pasted text into rows.

        CSV with a recognised header row is read as a table; anything else
        is one title per line, optionally followed by ``, <url>``.
        """
        text = (text or "").strip()
        if not text:
            raise InputError("No text provided")

        first_line = text.splitlines()[0]
        headers = [_normalize_header(h) for h in first_line.split(",")]
        if any(h in IDEA_HEADERS for h in headers):
            try:
                df = pd.read_csv(io.StringIO(text), dtype=str, skipinitialspace=True)
            except (ValueError, pd.errors.ParserError) as e:
                raise InputError(f"Could not read pasted CSV: {e}") from e
            return ParsedRows(rows=df.fillna("").to_dict(orient="records"))

        rows = []
        for line in text.splitlines():
            line = line.strip()
            if not line:
                continue
            idea, _, link = line.rpartition(",")
            if idea and link.strip().startswith(("http://", "https://")):
                rows.append({"idea": idea.strip(), "reference link": link.strip()})
            else:
                rows.append({"idea": line})
        return ParsedRows(rows=rows)

    @staticmethod
    def rows_from_single(idea: str, link: str | None = None) -> ParsedRows:
        """Build rows for one manually entered post."""
        if not (idea or "").strip():
            raise InputError("Post title is required")
        return ParsedRows(rows=[{"idea": idea, "reference link": link or ""}])

    @staticmethod
    def topics_from_rows(rows: list[dict[str, Any]]) -> list[Topic]:
        """
        Map header-keyed rows to topics.

        Raises:
            InputError: If no idea column exists or no row has an idea
        """
        if not rows:
            raise InputError("The input contains no rows")

        headers = {_normalize_header(h): h for h in rows[0].keys()}
        idea_key = next((headers[h] for h in headers if h in IDEA_HEADERS), None)
        if idea_key is None:
            idea_key = next(
                (headers[h] for h in headers if "idea" in h or "topic" in h), None
            )
        if idea_key is None:
            raise InputError(
                f"No idea/topic column found. Columns present: {list(rows[0].keys())}"
            )
        link_key = next((headers[h] for h in headers if h in LINK_HEADERS), None)

        topics = []
        for index, row in enumerate(rows, start=2):
            idea = _cell_text(row.get(idea_key))
            if not idea:
                logger.debug(f"Skipping row {index}: empty idea")
                continue
            link = _cell_text(row.get(link_key)) if link_key else ""
            try:
                topics.append(Topic(idea=idea, reference_link=link or None))
            except ValidationError as e:
                raise InputError(f"Invalid topic in row {index}: {e}") from e

        if not topics:
            raise InputError("No topics found in the input")
        return topics
