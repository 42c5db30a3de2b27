"""
Batch Scheduler - runs Post assembly over a topic list.

Topics are split into contiguous batches. Each batch emits BatchStarted,
then every topic emits Processing and, once its post is ready, Completed.
The job's CancellationToken is reset on entry and polled before and after
each topic. Once it is seen set, Cancelled is emitted and no further topic
starts; a topic still in flight at that point is dropped.

Within a batch topics run one at a time unless ``parallel`` is on, in
which case at most ``batch_size`` topics are in flight. Output order is
input order in both modes.
"""

import asyncio
from typing import Callable, Optional

from src.config.settings import Settings, get_settings
from src.generation.post_assembler import PostAssembler
from src.pipeline.cancellation import CancellationToken, GenerationCancelled
from src.pipeline.state import (
    BatchStarted,
    Cancelled,
    Completed,
    Post,
    Processing,
    ProgressEvent,
    RunResult,
    Topic,
)
from src.utils.logger import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


def chunk_topics(topics: list[Topic], batch_size: int) -> list[list[Topic]]:
    """Split topics into contiguous chunks of at most ``batch_size``."""
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")
    return [topics[i:i + batch_size] for i in range(0, len(topics), batch_size)]


class _RunState:
    """Per-run bookkeeping shared by the sequential and parallel paths."""

    def __init__(self, on_progress: ProgressCallback, cancellation: CancellationToken):
        self.on_progress = on_progress
        self.cancellation = cancellation
        self.cancelled = False

    def mark_cancelled(self) -> None:
        if not self.cancelled:
            self.cancelled = True
            logger.info("Cancellation observed, stopping batch run")
            self.on_progress(Cancelled())

    def should_stop(self) -> bool:
        if self.cancelled:
            return True
        if self.cancellation.read():
            self.mark_cancelled()
            return True
        return False


class BatchScheduler:
    """
    Drives PostAssembler over an ordered topic list.

    One CancellationToken drives one run at a time: ``run`` resets it on
    entry, so sharing a token between two concurrent runs would let the
    second one silently clear a cancel aimed at the first.
    """

    def __init__(
        self,
        assembler: PostAssembler,
        settings: Optional[Settings] = None,
        topic_delay: Optional[float] = None,
        parallel: Optional[bool] = None,
    ):
        self.assembler = assembler
        self.settings = settings or get_settings()
        self.topic_delay = self.settings.topic_delay if topic_delay is None else topic_delay
        self.parallel = self.settings.parallel_topics if parallel is None else parallel

    async def run(
        self,
        topics: list[Topic],
        on_progress: Optional[ProgressCallback] = None,
        cancellation: Optional[CancellationToken] = None,
        batch_size: Optional[int] = None,
    ) -> RunResult:
        """
        Generate one post per topic.

        Args:
            topics: Ordered topics
            on_progress: Receives every ProgressEvent in emission order
            cancellation: Job token; reset here before the first batch
            batch_size: Topics per batch (defaults to settings.batch_size)

        Returns:
            RunResult with the posts completed before any cancellation
        """
        on_progress = on_progress or (lambda event: None)
        cancellation = cancellation or CancellationToken()
        batch_size = batch_size or self.settings.batch_size

        cancellation.reset()
        state = _RunState(on_progress, cancellation)
        posts: list[Post] = []
        total = len(topics)

        logger.info(f"Starting batch run: {total} topics, batch size {batch_size}")
        start = 0
        for batch in chunk_topics(topics, batch_size):
            if state.should_stop():
                break

            on_progress(BatchStarted(start_index=start + 1, end_index=start + len(batch), total=total))
            if self.parallel:
                batch_posts = await self._run_parallel(batch, state)
            else:
                batch_posts = await self._run_sequential(batch, state, is_last_batch=start + len(batch) >= total)
            posts.extend(batch_posts)
            start += len(batch)

            if state.cancelled:
                break

        result = RunResult(posts=posts, total_topics=total, cancelled=state.cancelled)
        logger.info(
            f"Batch run finished: {len(posts)}/{total} posts"
            + (" (cancelled)" if state.cancelled else "")
        )
        return result

    async def _run_topic(self, topic: Topic, state: _RunState) -> Optional[Post]:
        if state.should_stop():
            return None
        state.on_progress(Processing(topic_id=topic.idea))
        try:
            post = await self.assembler.assemble(topic, state.cancellation)
        except GenerationCancelled:
            logger.info(f"Topic '{topic.idea}' abandoned by cancellation")
            state.mark_cancelled()
            return None
        # a cancel seen while this topic was in flight drops its post
        if state.should_stop():
            logger.info(f"Topic '{topic.idea}' finished after cancellation, dropping it")
            return None
        state.on_progress(Completed(topic_id=topic.idea, result_title=post.title, degraded=post.degraded))
        return post

    async def _run_sequential(self, batch: list[Topic], state: _RunState, is_last_batch: bool) -> list[Post]:
        posts = []
        for index, topic in enumerate(batch):
            post = await self._run_topic(topic, state)
            if post is None:
                break
            posts.append(post)

            is_last = is_last_batch and index == len(batch) - 1
            if self.topic_delay > 0 and not is_last:
                await asyncio.sleep(self.topic_delay)
        return posts

    async def _run_parallel(self, batch: list[Topic], state: _RunState) -> list[Post]:
        async def staggered(position: int, topic: Topic) -> Optional[Post]:
            if position and self.topic_delay > 0:
                # topic i starts no earlier than i * topic_delay
                await asyncio.sleep(self.topic_delay * position)
            return await self._run_topic(topic, state)

        # the batch itself bounds how many topics are in flight
        results = await asyncio.gather(*[staggered(i, t) for i, t in enumerate(batch)])
        # None marks a topic skipped or abandoned by cancellation
        return [post for post in results if post is not None]
