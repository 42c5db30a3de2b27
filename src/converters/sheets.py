"""
Google Sheets publisher.

Creates a new spreadsheet holding the generated posts and returns its URL.
Credentials come from, in order: GOOGLE_SERVICE_ACCOUNT_JSON (inline JSON),
GOOGLE_SERVICE_ACCOUNT_FILE, GOOGLE_APPLICATION_CREDENTIALS.
"""

import asyncio
import json
import os
from datetime import datetime
from typing import Any, Callable, Optional

from google.oauth2 import service_account
from googleapiclient.discovery import build

from src.config.settings import Settings, get_settings
from src.converters.exporters import ExportError, posts_to_rows
from src.pipeline.state import Post
from src.utils.logger import get_logger

logger = get_logger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.file",
]
SHEET_TAB = "Posts"


def load_credentials(settings: Settings):
    """Service account credentials for the Sheets and Drive APIs."""
    if settings.google_service_account_json:
        info = json.loads(settings.google_service_account_json)
        return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)
    sa_path = settings.google_service_account_file
    if sa_path and os.path.exists(sa_path):
        return service_account.Credentials.from_service_account_file(sa_path, scopes=SCOPES)
    if os.getenv("GOOGLE_APPLICATION_CREDENTIALS"):
        return service_account.Credentials.from_service_account_file(
            os.getenv("GOOGLE_APPLICATION_CREDENTIALS"), scopes=SCOPES
        )
    raise ExportError(
        "Google credentials not found. Set GOOGLE_SERVICE_ACCOUNT_JSON or GOOGLE_SERVICE_ACCOUNT_FILE."
    )


def _build_service(api: str, version: str, settings: Settings):
    creds = load_credentials(settings)
    return build(api, version, credentials=creds, cache_discovery=False)


class GoogleSheetsPublisher:
    """Publishes posts to a freshly created spreadsheet."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        service_factory: Optional[Callable[[str, str], Any]] = None,
    ):
        self.settings = settings or get_settings()
        self._service_factory = service_factory or (
            lambda api, version: _build_service(api, version, self.settings)
        )

    async def publish(self, posts: list[Post], title: Optional[str] = None) -> str:
        """
        Write posts to a new spreadsheet.

        Returns:
            The spreadsheet URL

        Raises:
            ExportError: On missing credentials or any API failure
        """
        title = title or f"Generated Posts {datetime.now().strftime('%Y-%m-%d %H:%M')}"
        try:
            return await asyncio.to_thread(self._publish_sync, posts, title)
        except ExportError:
            raise
        except Exception as e:
            logger.error(f"Google Sheets export failed: {e}", exc_info=True)
            raise ExportError(f"Failed to publish to Google Sheets: {e}") from e

    def _publish_sync(self, posts: list[Post], title: str) -> str:
        sheets = self._service_factory("sheets", "v4").spreadsheets()
        created = sheets.create(
            body={
                "properties": {"title": title},
                "sheets": [{"properties": {"title": SHEET_TAB}}],
            },
            fields="spreadsheetId,spreadsheetUrl",
        ).execute()
        spreadsheet_id = created["spreadsheetId"]

        sheets.values().update(
            spreadsheetId=spreadsheet_id,
            range=f"'{SHEET_TAB}'!A1",
            valueInputOption="RAW",
            body={"values": posts_to_rows(posts)},
        ).execute()

        if self.settings.google_sheets_share_anyone:
            drive = self._service_factory("drive", "v3")
            drive.permissions().create(
                fileId=spreadsheet_id,
                body={"type": "anyone", "role": "reader"},
            ).execute()

        url = created.get("spreadsheetUrl") or f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}"
        logger.info(f"Published {len(posts)} posts to {url}")
        return url
