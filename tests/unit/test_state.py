"""Unit tests for state module."""

import re

import pytest
from pydantic import ValidationError

from src.pipeline.state import (
    BatchStarted,
    Completed,
    Outline,
    Post,
    RunResult,
    SectionResult,
    Topic,
    progress_event_adapter,
    slugify,
)


class TestTopic:
    """Tests for Topic validation."""

    def test_strips_fields(self):
        topic = Topic(idea="  Cats  ", reference_link="  https://c.org ")
        assert topic.idea == "Cats"
        assert topic.reference_link == "https://c.org"

    def test_blank_link_becomes_none(self):
        assert Topic(idea="x", reference_link="   ").reference_link is None

    @pytest.mark.parametrize("idea", ["", "   "])
    def test_rejects_empty_idea(self, idea):
        with pytest.raises(ValidationError):
            Topic(idea=idea)

    def test_is_frozen(self):
        topic = Topic(idea="x")
        with pytest.raises(ValidationError):
            topic.idea = "y"


class TestSlugify:
    """Tests for slugify()."""

    @pytest.mark.parametrize("title,expected", [
        ("Semantic Caching for LLM Apps!", "semantic-caching-for-llm-apps"),
        ("  Hello -- World  ", "hello-world"),
        ("snake_case_title", "snake-case-title"),
        ("C++ & Rust: 2024 edition", "c-rust-2024-edition"),
        ("Café Society", "caf-society"),
        ("!!!", ""),
    ])
    def test_examples(self, title, expected):
        assert slugify(title) == expected

    @pytest.mark.parametrize("title", [
        "The Future of AI -- in Healthcare?",
        "10 Essential Tips: Sustainable Living",
        "-leading and trailing-",
    ])
    def test_charset_and_no_double_hyphens(self, title):
        slug = slugify(title)
        assert re.fullmatch(r"[a-z0-9-]*", slug)
        assert "--" not in slug
        assert not slug.startswith("-") and not slug.endswith("-")


class TestOutline:
    def test_default_skeleton(self):
        outline = Outline.default(Topic(idea="Cats"))
        assert outline.title == "Cats"
        assert [s.heading for s in outline.sections] == [
            "Introduction", "Key Point 1", "Key Point 2", "Key Point 3", "Conclusion",
        ]

    def test_requires_a_section(self):
        with pytest.raises(ValidationError):
            Outline(title="T", sections=[])


class TestModels:
    def test_placeholder_detection(self):
        assert SectionResult(content="[PLACEHOLDER] x", tokens_consumed=1).is_placeholder
        assert not SectionResult(content="real", tokens_consumed=1).is_placeholder

    def test_negative_tokens_rejected(self):
        with pytest.raises(ValidationError):
            SectionResult(content="x", tokens_consumed=-1)

    def test_post_defaults(self):
        post = Post(title="T", slug="t", content="c")
        assert post.cost == "0.01"
        assert re.fullmatch(r"\d{4}-\d{2}-\d{2}", post.date)

    def test_run_result_completed(self):
        post = Post(title="T", slug="t", content="c")
        assert RunResult(posts=[post], total_topics=1).completed
        assert not RunResult(posts=[post], total_topics=2).completed
        assert not RunResult(posts=[post], total_topics=1, cancelled=True).completed


class TestEvents:
    def test_messages(self):
        assert BatchStarted(start_index=1, end_index=5, total=7).message == "Processing topics 1-5 of 7"
        assert Completed(topic_id="a", result_title="A", degraded=True).message == "Completed: A (degraded)"

    def test_discriminated_union(self):
        event = progress_event_adapter.validate_python({"type": "processing", "topic_id": "x"})
        assert event.topic_id == "x"
        with pytest.raises(ValidationError):
            progress_event_adapter.validate_python({"type": "unknown"})
