"""
Export Formatter - turns finished posts into a downloadable file.

Tabular formats use the fixed columns Title, Date, Slug, Content, Cost($).
"""

import io
import json
import textwrap
from datetime import datetime
from enum import Enum

import fitz  # pymupdf
import pandas as pd
from pydantic import BaseModel

from src.pipeline.state import Post
from src.utils.logger import get_logger

logger = get_logger(__name__)


TABULAR_COLUMNS = ["Title", "Date", "Slug", "Content", "Cost($)"]

# PDF page geometry (A4, points)
PAGE_WIDTH, PAGE_HEIGHT = 595, 842
MARGIN = 50
LINE_HEIGHT = 14
WRAP_WIDTH = 95


class ExportFormat(str, Enum):
    """Supported export format tags."""

    EXCEL = "excel"
    CSV = "csv"
    MARKDOWN = "markdown"
    JSON = "json"
    PDF = "pdf"
    GOOGLE_SHEETS = "google_sheets"


FORMAT_ALIASES = {
    "xlsx": ExportFormat.EXCEL,
    "spreadsheet": ExportFormat.EXCEL,
    "md": ExportFormat.MARKDOWN,
    "google-sheets": ExportFormat.GOOGLE_SHEETS,
    "googlesheets": ExportFormat.GOOGLE_SHEETS,
    "sheets": ExportFormat.GOOGLE_SHEETS,
}


class UnsupportedFormatError(ValueError):
    """Raised for an export format tag this tool cannot produce."""


class ExportError(RuntimeError):
    """Raised when encoding or publishing the posts fails."""


class ExportPayload(BaseModel):
    """An encoded export, ready to stream or write to disk."""

    content: bytes
    filename: str
    mime_type: str


def parse_format(tag: str) -> ExportFormat:
    """
    Resolve a user supplied format tag.

    Raises:
        UnsupportedFormatError: If the tag is unknown
    """
    normalized = (tag or "").strip().lower()
    if normalized in FORMAT_ALIASES:
        return FORMAT_ALIASES[normalized]
    try:
        return ExportFormat(normalized)
    except ValueError:
        supported = ", ".join(f.value for f in ExportFormat)
        raise UnsupportedFormatError(
            f"Unsupported export format '{tag}'. Supported formats: {supported}"
        ) from None


def posts_to_rows(posts: list[Post]) -> list[list[str]]:
    """Rows (header first) for tabular outputs."""
    rows = [list(TABULAR_COLUMNS)]
    for post in posts:
        rows.append([post.title, post.date, post.slug, post.content, post.cost])
    return rows


def posts_to_dataframe(posts: list[Post]) -> pd.DataFrame:
    header, *rows = posts_to_rows(posts)
    return pd.DataFrame(rows, columns=header)


def _timestamp() -> str:
    return datetime.now().strftime("%Y%m%d_%H%M%S")


class PostExporter:
    """Encodes posts into one of the file formats."""

    MIME_TYPES = {
        ExportFormat.EXCEL: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        ExportFormat.CSV: "text/csv",
        ExportFormat.MARKDOWN: "text/markdown",
        ExportFormat.JSON: "application/json",
        ExportFormat.PDF: "application/pdf",
    }
    EXTENSIONS = {
        ExportFormat.EXCEL: "xlsx",
        ExportFormat.CSV: "csv",
        ExportFormat.MARKDOWN: "md",
        ExportFormat.JSON: "json",
        ExportFormat.PDF: "pdf",
    }

    def __init__(self, basename: str = "generated_posts"):
        self.basename = basename

    def export(self, posts: list[Post], fmt: ExportFormat) -> ExportPayload:
        """
        Encode posts as ``fmt``.

        Raises:
            UnsupportedFormatError: For GOOGLE_SHEETS (use GoogleSheetsPublisher)
            ExportError: If encoding fails
        """
        encoders = {
            ExportFormat.EXCEL: self.to_excel,
            ExportFormat.CSV: self.to_csv,
            ExportFormat.MARKDOWN: self.to_markdown,
            ExportFormat.JSON: self.to_json,
            ExportFormat.PDF: self.to_pdf,
        }
        if fmt not in encoders:
            raise UnsupportedFormatError(f"{fmt.value} is not a file export format")

        try:
            content = encoders[fmt](posts)
        except Exception as e:
            logger.error(f"{fmt.value} export failed: {e}", exc_info=True)
            raise ExportError(f"Failed to export posts as {fmt.value}: {e}") from e

        filename = f"{self.basename}_{_timestamp()}.{self.EXTENSIONS[fmt]}"
        logger.info(f"Exported {len(posts)} posts to {filename} ({len(content)} bytes)")
        return ExportPayload(content=content, filename=filename, mime_type=self.MIME_TYPES[fmt])

    @staticmethod
    def to_excel(posts: list[Post]) -> bytes:
        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            posts_to_dataframe(posts).to_excel(writer, sheet_name="Generated Posts", index=False)
        return buffer.getvalue()

    @staticmethod
    def to_csv(posts: list[Post]) -> bytes:
        return posts_to_dataframe(posts).to_csv(index=False).encode("utf-8-sig")

    @staticmethod
    def to_json(posts: list[Post]) -> bytes:
        data = [post.model_dump(exclude={"topic_id"}) for post in posts]
        return json.dumps(data, indent=2, ensure_ascii=False).encode("utf-8")

    @staticmethod
    def to_markdown(posts: list[Post]) -> bytes:
        parts = []
        for post in posts:
            block = [
                f"# {post.title}",
                "",
                f"*Date: {post.date} | Slug: {post.slug} | Cost: ${post.cost}*",
                "",
                post.content,
            ]
            if post.sources:
                block += ["", "## Sources", ""]
                block += [f"- [{s.name}]({s.link})" for s in post.sources]
            parts.append("\n".join(block))
        return ("\n\n---\n\n".join(parts) + "\n").encode("utf-8")

    @staticmethod
    def to_pdf(posts: list[Post]) -> bytes:
        doc = fitz.open()
        try:
            for post in posts:
                lines = [(post.title, 16), (f"{post.date} | {post.slug} | ${post.cost}", 9), ("", 11)]
                for paragraph in post.content.splitlines():
                    size = 13 if paragraph.startswith("#") else 11
                    text = paragraph.lstrip("# ").strip() if paragraph.startswith("#") else paragraph
                    wrapped = textwrap.wrap(text, WRAP_WIDTH) or [""]
                    lines += [(w, size) for w in wrapped]
                if post.sources:
                    lines += [("", 11), ("Sources", 13)]
                    lines += [(f"- {s.name}: {s.link}", 9) for s in post.sources]

                page = doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
                y = MARGIN
                for text, size in lines:
                    if y > PAGE_HEIGHT - MARGIN:
                        page = doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
                        y = MARGIN
                    if text:
                        page.insert_text((MARGIN, y), text, fontsize=size)
                    y += LINE_HEIGHT + (size - 11)
            return doc.tobytes()
        finally:
            doc.close()


EXAMPLE_FILENAME = "blog_ideas_example.xlsx"
EXAMPLE_TOPICS = [
    ("The Future of Artificial Intelligence in Healthcare",
     "https://www.who.int/health-topics/artificial-intelligence"),
    ("10 Essential Tips for Sustainable Living",
     "https://www.un.org/sustainabledevelopment/sustainable-consumption-production/"),
    ("How to Start a Successful Online Business in 2024",
     "https://www.sba.gov/business-guide/10-steps-start-your-business"),
    ("The Impact of Social Media on Mental Health",
     "https://www.nimh.nih.gov/health/topics/technology-and-the-brain"),
    ("Beginners Guide to Cryptocurrency and Blockchain",
     "https://www.investopedia.com/terms/b/blockchain.asp"),
]


def build_example_workbook() -> ExportPayload:
    """A sample input workbook with the "Blog Idea" and "Reference Link" columns."""
    frame = pd.DataFrame(EXAMPLE_TOPICS, columns=["Blog Idea", "Reference Link"])
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        frame.to_excel(writer, sheet_name="Blog Ideas", index=False)
    return ExportPayload(
        content=buffer.getvalue(),
        filename=EXAMPLE_FILENAME,
        mime_type=PostExporter.MIME_TYPES[ExportFormat.EXCEL],
    )
