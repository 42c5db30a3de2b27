"""Batch pipeline: topic state, progress events and cancellation."""

from .cancellation import CancellationRegistry, CancellationToken, GenerationCancelled
from .progress import ProgressChannel, decode_frame, encode_event
from .state import Post, ProgressEvent, RunResult, Topic

__all__ = [
    "CancellationRegistry",
    "CancellationToken",
    "GenerationCancelled",
    "Post",
    "ProgressChannel",
    "ProgressEvent",
    "RunResult",
    "Topic",
    "decode_frame",
    "encode_event",
]
