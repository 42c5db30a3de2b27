"""
File handler for I/O operations.

Reads topic inputs and writes exported files into the output directory.
"""

from pathlib import Path

from src.utils.logger import get_logger


logger = get_logger(__name__)


class FileHandler:
    """Handler for file I/O operations."""

    @staticmethod
    def read_bytes(file_path: Path) -> bytes:
        """
        Read a file as raw bytes.

        Raises:
            FileNotFoundError: If file doesn't exist
        """
        logger.debug(f"Reading file: {file_path}")

        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        data = file_path.read_bytes()
        logger.debug(f"Read {len(data)} bytes from {file_path}")
        return data

    @staticmethod
    def write_bytes(file_path: Path, content: bytes) -> Path:
        """
        Write bytes to file, creating parent directories.

        Returns:
            The path written
        """
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(content)
        logger.debug(f"Wrote {len(content)} bytes to {file_path}")
        return file_path

    @staticmethod
    def unique_path(directory: Path, filename: str) -> Path:
        """
        A path in ``directory`` that does not exist yet.

        ``report.xlsx`` becomes ``report_1.xlsx``, ``report_2.xlsx``, ... on clashes.
        """
        candidate = directory / filename
        stem, suffix = candidate.stem, candidate.suffix
        counter = 1
        while candidate.exists():
            candidate = directory / f"{stem}_{counter}{suffix}"
            counter += 1
        return candidate
