"""
State module - Domain models and progress events for the batch pipeline.

This module defines:
- Topic, Outline, SectionResult, Source and Post models
- The ProgressEvent discriminated union streamed to observers
- RunResult returned by the batch scheduler
"""

import re
from datetime import date
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


PLACEHOLDER_PREFIX = "[PLACEHOLDER]"

DEFAULT_BODY_SECTIONS = 3


# =============================================================================
# Input
# =============================================================================


class Topic(BaseModel):
    """One requested post. ``idea`` doubles as the correlation key in events."""

    model_config = ConfigDict(frozen=True)

    idea: str = Field(min_length=1, description="Blog idea / working title")
    reference_link: str | None = Field(default=None, description="Optional reference URL")

    @field_validator("idea")
    @classmethod
    def validate_idea(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Topic idea must not be empty")
        return v

    @field_validator("reference_link")
    @classmethod
    def validate_reference_link(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None


# =============================================================================
# Generation artifacts
# =============================================================================


class OutlineSection(BaseModel):
    """A single section in the post outline."""

    heading: str = Field(min_length=1, description="Section heading")
    subheadings: list[str] = Field(default_factory=list, description="Ordered subheadings")


class Outline(BaseModel):
    """Structured skeleton guiding section generation."""

    title: str = Field(min_length=1, description="Post title")
    sections: list[OutlineSection] = Field(min_length=1, description="Ordered sections")

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Outline title must not be empty")
        return v

    @classmethod
    def default(cls, topic: Topic) -> "Outline":
        """Fallback skeleton: Introduction, three body sections, Conclusion."""
        sections = [OutlineSection(heading="Introduction")]
        sections += [
            OutlineSection(heading=f"Key Point {i}")
            for i in range(1, DEFAULT_BODY_SECTIONS + 1)
        ]
        sections.append(OutlineSection(heading="Conclusion"))
        return cls(title=topic.idea, sections=sections)


class SectionResult(BaseModel):
    """Generated body text for one heading plus its token cost."""

    content: str
    tokens_consumed: int = Field(ge=0)
    placeholder: bool = False

    @property
    def is_placeholder(self) -> bool:
        return self.placeholder or self.content.startswith(PLACEHOLDER_PREFIX)


class Source(BaseModel):
    """A cited source."""

    name: str = Field(min_length=1)
    link: str = Field(min_length=1)


class Post(BaseModel):
    """One finished (or degraded) blog post."""

    title: str
    date: str = Field(default_factory=lambda: date.today().isoformat())
    slug: str
    content: str
    sources: list[Source] = Field(default_factory=list)
    cost: str = "0.01"
    degraded: bool = False
    topic_id: str = ""


def slugify(title: str) -> str:
    """
    Convert a title to a URL slug.

    Lowercases, strips non-word characters, turns whitespace runs into
    single hyphens and collapses repeated hyphens.

    Example:
        >>> slugify("Semantic Caching for LLM Apps!")
        'semantic-caching-for-llm-apps'
    """
    # ASCII word characters only; underscores count as separators
    text = title.lower().replace("_", " ")
    text = re.sub(r"[^a-z0-9\s-]", "", text)
    text = re.sub(r"\s+", "-", text.strip())
    text = re.sub(r"-{2,}", "-", text)
    return text.strip("-")


# =============================================================================
# Progress events
# =============================================================================


class BatchStarted(BaseModel):
    type: Literal["batch_started"] = "batch_started"
    start_index: int
    end_index: int
    total: int = 0

    @property
    def message(self) -> str:
        return f"Processing topics {self.start_index}-{self.end_index} of {self.total}"


class Processing(BaseModel):
    type: Literal["processing"] = "processing"
    topic_id: str

    @property
    def message(self) -> str:
        return f"Processing: {self.topic_id}"


class Completed(BaseModel):
    type: Literal["completed"] = "completed"
    topic_id: str
    result_title: str
    degraded: bool = False

    @property
    def message(self) -> str:
        suffix = " (degraded)" if self.degraded else ""
        return f"Completed: {self.result_title}{suffix}"


class Cancelled(BaseModel):
    type: Literal["cancelled"] = "cancelled"

    @property
    def message(self) -> str:
        return "Process cancelled"


class Error(BaseModel):
    type: Literal["error"] = "error"
    message: str


class Info(BaseModel):
    type: Literal["info"] = "info"
    message: str


class ResultReady(BaseModel):
    """Terminal delivery of an exported file, base64 encoded."""

    type: Literal["result"] = "result"
    data: str
    filename: str
    mime_type: str

    @property
    def message(self) -> str:
        return f"Export ready: {self.filename}"


class SheetPublished(BaseModel):
    """Terminal delivery of a published Google Sheet."""

    type: Literal["sheet"] = "sheet"
    url: str

    @property
    def message(self) -> str:
        return f"Published to Google Sheets: {self.url}"


ProgressEvent = Annotated[
    Union[
        BatchStarted,
        Processing,
        Completed,
        Cancelled,
        Error,
        Info,
        ResultReady,
        SheetPublished,
    ],
    Field(discriminator="type"),
]

progress_event_adapter: TypeAdapter = TypeAdapter(ProgressEvent)


# =============================================================================
# Run result
# =============================================================================


class RunResult(BaseModel):
    """Outcome of one scheduler run."""

    posts: list[Post] = Field(default_factory=list)
    total_topics: int = 0
    cancelled: bool = False

    @property
    def completed(self) -> bool:
        """True when every topic produced a post."""
        return not self.cancelled and len(self.posts) == self.total_topics
