"""
Section Generator module.

Produces the three building blocks of a post for one topic:
an outline, one body section per outline heading, and a source list.
None of these raise to the caller; each degrades to a declared default.
"""

from typing import Optional
from urllib.parse import urlparse

from pydantic import ValidationError

from src.config.settings import Settings, get_settings
from src.generation.retrier import ResponseValidator
from src.parsers.response_parser import extract_urls, parse_lenient
from src.pipeline.state import Outline, SectionResult, Source, Topic
from src.utils.llm_helpers import GenerativeBackend
from src.utils.logger import get_logger

logger = get_logger(__name__)

MIN_SOURCES = 3
MAX_SOURCES = 5


def _reference_note(topic: Topic) -> str:
    if topic.reference_link:
        return f"Use this reference as a starting point: {topic.reference_link}\n"
    return ""


class SectionGenerator:
    """Outline, section and source generation for a single topic."""

    OUTLINE_PROMPT = """
You are an expert content strategist. Create an outline for a blog post about:
"{idea}"
{reference}
Return ONLY a JSON object with this shape:
{{
  "title": "Engaging, specific post title",
  "sections": [
    {{"heading": "Introduction", "subheadings": []}},
    {{"heading": "...", "subheadings": ["...", "..."]}},
    {{"heading": "Conclusion", "subheadings": []}}
  ]
}}

Rules:
- Start with an Introduction and end with a Conclusion.
- Use 3-5 body sections between them, each with 2-4 subheadings.
- Headings are plain text. Do not number them.
"""

    SECTION_PROMPT = """
You are an expert blog writer. Write the "{heading}" section of a blog post titled "{title}".
{reference}
Cover these subheadings in order:
{subheadings}

Requirements:
- At least {min_words} words.
- Start with the line "## {heading}".
- Use "###" for subheadings.
- Output ONLY the section content. No preamble, no closing remarks.
- Only link to real URLs. Never write a link with an empty or null target.
"""

    SOURCES_PROMPT = """
List 3 to 5 authoritative, real sources a reader could consult about:
"{idea}"
{reference}
Return ONLY a JSON array:
[{{"name": "Source name", "link": "https://..."}}]
"""

    def __init__(
        self,
        backend: GenerativeBackend,
        validator: Optional[ResponseValidator] = None,
        settings: Optional[Settings] = None,
    ):
        self.backend = backend
        self.settings = settings or get_settings()
        self.validator = validator or ResponseValidator(backend, settings=self.settings)

    def min_words_for(self, heading: str) -> int:
        """150 words for Introduction/Conclusion, 300 for body sections."""
        lowered = heading.lower()
        if "introduction" in lowered or "conclusion" in lowered:
            return self.settings.min_words_intro_conclusion
        return self.settings.min_words_body

    async def generate_outline(self, topic: Topic) -> Outline:
        """
        Generate an outline, falling back to the default skeleton.

        Args:
            topic: The topic to outline

        Returns:
            Parsed Outline, or ``Outline.default(topic)`` on any failure
        """
        prompt = self.OUTLINE_PROMPT.format(idea=topic.idea, reference=_reference_note(topic))
        try:
            completion = await self.backend.generate(prompt)
        except Exception as e:
            logger.warning(f"Outline generation failed for '{topic.idea}': {e}")
            return Outline.default(topic)

        data = parse_lenient(completion.text, default=None)
        if not isinstance(data, dict):
            logger.warning(f"Unparsable outline for '{topic.idea}', using default skeleton")
            return Outline.default(topic)

        try:
            outline = Outline.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Invalid outline shape for '{topic.idea}': {e.error_count()} errors")
            return Outline.default(topic)

        logger.info(f"Generated outline with {len(outline.sections)} sections: {outline.title}")
        return outline

    async def generate_section(
        self,
        heading: str,
        subheadings: list[str],
        topic: Topic,
        title: Optional[str] = None,
    ) -> SectionResult:
        """
        Generate one section through the Validator/Retrier.

        Args:
            heading: Section heading
            subheadings: Ordered subheadings to cover
            topic: Parent topic
            title: Post title (defaults to the topic idea)

        Returns:
            SectionResult, possibly a placeholder
        """
        min_words = self.min_words_for(heading)
        bullet_list = "\n".join(f"- {s}" for s in subheadings) or "- (choose suitable subheadings)"

        def build_prompt() -> str:
            return self.SECTION_PROMPT.format(
                heading=heading,
                title=title or topic.idea,
                reference=_reference_note(topic),
                subheadings=bullet_list,
                min_words=min_words,
            )

        return await self.validator.attempt(
            build_prompt,
            lambda words: words >= min_words,
            label=heading,
        )

    async def generate_sources(self, topic: Topic) -> list[Source]:
        """
        Generate a source list.

        Falls back to URLs scraped from the raw text when the response is
        not a JSON array, and to ``[]`` when nothing usable remains.
        """
        prompt = self.SOURCES_PROMPT.format(idea=topic.idea, reference=_reference_note(topic))
        try:
            completion = await self.backend.generate(prompt)
        except Exception as e:
            logger.warning(f"Source generation failed for '{topic.idea}': {e}")
            return []

        data = parse_lenient(completion.text, default=None)
        if isinstance(data, list):
            sources = []
            for item in data:
                if not isinstance(item, dict):
                    continue
                try:
                    sources.append(Source(name=str(item.get("name", "")).strip(),
                                          link=str(item.get("link", "")).strip()))
                except ValidationError:
                    continue
            if sources:
                if len(sources) < MIN_SOURCES:
                    logger.warning(
                        f"Only {len(sources)} source(s) for '{topic.idea}', expected at least {MIN_SOURCES}"
                    )
                return sources[:MAX_SOURCES]

        urls = extract_urls(completion.text, limit=MAX_SOURCES)
        if urls:
            logger.info(f"Recovered {len(urls)} source URLs from unstructured response")
        return [Source(name=urlparse(url).netloc or url, link=url) for url in urls]
