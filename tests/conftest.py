"""Shared fixtures: zero-delay settings and a scripted generative backend."""

import json
import re
from typing import Awaitable, Callable, Optional

import pytest

from src.config.settings import Settings
from src.utils.llm_helpers import Completion, count_words

IDEA_PATTERN = re.compile(r'about:\n"(.*)"')
HEADING_PATTERN = re.compile(r'Write the "(.*?)" section')


def prompt_kind(prompt: str) -> str:
    if "Create an outline" in prompt:
        return "outline"
    if "authoritative, real sources" in prompt:
        return "sources"
    return "section"


def idea_of(prompt: str) -> str:
    match = IDEA_PATTERN.search(prompt)
    return match.group(1) if match else ""


def heading_of(prompt: str) -> str:
    match = HEADING_PATTERN.search(prompt)
    return match.group(1) if match else ""


class FakeBackend:
    """
    Deterministic backend keyed on the prompt kind.

    The outline title equals the topic idea, so Completed events carry the
    idea as their result title. Every section is ``section_words`` words.
    """

    def __init__(
        self,
        section_words: int = 400,
        outline: Optional[Callable[[str], str]] = None,
        sources: str = '[{"name": "Example", "link": "https://example.com"}]',
        on_call: Optional[Callable[[str, str], Awaitable[None]]] = None,
    ):
        self.section_words = section_words
        self.outline = outline
        self.sources = sources
        self.on_call = on_call
        self.prompts: list[str] = []

    def calls(self, kind: str) -> list[str]:
        return [p for p in self.prompts if prompt_kind(p) == kind]

    async def generate(self, prompt: str) -> Completion:
        self.prompts.append(prompt)
        kind = prompt_kind(prompt)
        if self.on_call is not None:
            await self.on_call(kind, prompt)

        if kind == "outline":
            idea = idea_of(prompt)
            text = self.outline(idea) if self.outline else json.dumps({
                "title": idea,
                "sections": [
                    {"heading": "Introduction", "subheadings": []},
                    {"heading": "Main Ideas", "subheadings": ["First", "Second"]},
                    {"heading": "Conclusion", "subheadings": []},
                ],
            })
        elif kind == "sources":
            text = self.sources
        else:
            text = f"## {heading_of(prompt)}\n\n" + " ".join(["word"] * self.section_words)
        return Completion(text=text, tokens=count_words(text))

    async def stream(self, prompt: str):
        completion = await self.generate(prompt)
        for word in completion.text.split(" "):
            yield word + " "


@pytest.fixture
def settings(tmp_path):
    """Settings with no pacing delays and outputs under tmp_path."""
    return Settings(
        _env_file=None,
        output_dir=tmp_path / "outputs",
        retry_delay=0.0,
        topic_delay=0.0,
        max_retries=3,
        llm_timeout=5.0,
        batch_size=5,
        parallel_topics=False,
        google_api_key="",
    )


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def make_backend():
    """The FakeBackend class, for tests that need custom behaviour."""
    return FakeBackend
