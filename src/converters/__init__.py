"""Export formats for generated posts."""

from .exporters import (
    ExportError,
    ExportFormat,
    ExportPayload,
    PostExporter,
    UnsupportedFormatError,
    build_example_workbook,
    parse_format,
)
from .sheets import GoogleSheetsPublisher

__all__ = [
    "ExportError",
    "ExportFormat",
    "ExportPayload",
    "GoogleSheetsPublisher",
    "PostExporter",
    "UnsupportedFormatError",
    "build_example_workbook",
    "parse_format",
]
