"""
Batch Job - one end-to-end request.

Parses the topic source, runs the scheduler with the job's channel and
token, exports the posts and emits exactly one terminal event (Error,
Cancelled, ResultReady or SheetPublished) before closing the channel.
"""

import base64
import uuid
from typing import Optional

from src.config.settings import Settings, get_settings
from src.converters.exporters import (
    ExportError,
    ExportFormat,
    ExportPayload,
    PostExporter,
    UnsupportedFormatError,
    parse_format,
)
from src.converters.sheets import GoogleSheetsPublisher
from src.generation.post_assembler import PostAssembler
from src.parsers.topic_parser import InputError, TopicParser, TopicSource
from src.pipeline.cancellation import CancellationToken
from src.pipeline.progress import ProgressChannel
from src.pipeline.scheduler import BatchScheduler
from src.pipeline.state import Error, Info, Post, ResultReady, RunResult, SheetPublished
from src.utils.llm_helpers import GenerativeBackend, get_backend
from src.utils.logger import get_logger

logger = get_logger(__name__)


class BatchJob:
    """
    A single batch request and its results.

    ``posts`` and ``payload`` stay available after ``run`` so the same
    posts can be exported again in another format without regenerating.
    """

    def __init__(
        self,
        backend: Optional[GenerativeBackend] = None,
        settings: Optional[Settings] = None,
        job_id: Optional[str] = None,
        cancellation: Optional[CancellationToken] = None,
        publisher: Optional[GoogleSheetsPublisher] = None,
        scheduler: Optional[BatchScheduler] = None,
    ):
        self.settings = settings or get_settings()
        self.job_id = job_id or uuid.uuid4().hex
        self.cancellation = cancellation or CancellationToken()
        self.backend = backend
        self._publisher = publisher
        self._scheduler = scheduler
        self.exporter = PostExporter()

        self.posts: list[Post] = []
        self.result: Optional[RunResult] = None
        self.payload: Optional[ExportPayload] = None
        self.sheet_url: Optional[str] = None
        # why the job ended without a run result
        self.error: Optional[str] = None

    @property
    def scheduler(self) -> BatchScheduler:
        if self._scheduler is None:
            backend = self.backend or get_backend(self.settings)
            self._scheduler = BatchScheduler(PostAssembler(backend, settings=self.settings), settings=self.settings)
        return self._scheduler

    @property
    def publisher(self) -> GoogleSheetsPublisher:
        if self._publisher is None:
            self._publisher = GoogleSheetsPublisher(self.settings)
        return self._publisher

    async def run(
        self,
        source: TopicSource,
        export_format: str | ExportFormat,
        channel: ProgressChannel,
        batch_size: Optional[int] = None,
    ) -> RunResult:
        """
        Run the whole request, streaming progress into ``channel``.

        Never raises for input, generation or export failures; those end
        the stream with an Error event. The channel is always closed.
        """
        try:
            return await self._run(source, export_format, channel, batch_size)
        except Exception as e:
            logger.exception(f"Job {self.job_id} failed")
            if self.result is None:
                self.error = f"Processing failed: {e}"
            channel.emit(Error(message=f"Processing failed: {e}"))
            return self.result or RunResult()
        finally:
            channel.close()

    async def _run(
        self,
        source: TopicSource,
        export_format: str | ExportFormat,
        channel: ProgressChannel,
        batch_size: Optional[int],
    ) -> RunResult:
        try:
            fmt = export_format if isinstance(export_format, ExportFormat) else parse_format(export_format)
            topics = TopicParser.parse(source)
        except (UnsupportedFormatError, InputError) as e:
            logger.warning(f"Job {self.job_id} rejected: {e}")
            self.error = str(e)
            channel.emit(Error(message=str(e)))
            return RunResult()

        channel.emit(Info(message=f"Loaded {len(topics)} topics"))
        self.result = await self.scheduler.run(
            topics,
            on_progress=channel.emit,
            cancellation=self.cancellation,
            batch_size=batch_size,
        )
        self.posts = list(self.result.posts)

        if self.result.cancelled:
            return self.result

        try:
            await self.deliver(fmt, channel)
        except ExportError as e:
            channel.emit(Error(message=str(e)))
        return self.result

    async def deliver(self, fmt: ExportFormat, channel: ProgressChannel) -> None:
        """Export ``self.posts`` and emit the delivery event."""
        if fmt is ExportFormat.GOOGLE_SHEETS:
            self.sheet_url = await self.publisher.publish(self.posts)
            channel.emit(SheetPublished(url=self.sheet_url))
            return

        self.payload = self.export(fmt)
        channel.emit(ResultReady(
            data=base64.b64encode(self.payload.content).decode("ascii"),
            filename=self.payload.filename,
            mime_type=self.payload.mime_type,
        ))

    def export(self, fmt: str | ExportFormat) -> ExportPayload:
        """
        Re-encode the posts of a finished run as a file.

        Raises:
            UnsupportedFormatError: For an unknown tag or google_sheets
            ExportError: If encoding fails
        """
        if not isinstance(fmt, ExportFormat):
            fmt = parse_format(fmt)
        return self.exporter.export(self.posts, fmt)
