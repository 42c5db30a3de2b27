"""
Post Assembler module.

Drives one topic through outline -> concurrent sections (with sources
alongside) -> cleanup -> assembly. Internal failures degrade to a
placeholder Post; the only exception that escapes is GenerationCancelled.
"""

import asyncio
import re
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from src.config.settings import Settings, get_settings
from src.generation.section_generator import SectionGenerator
from src.pipeline.cancellation import CancellationToken, GenerationCancelled
from src.pipeline.state import (
    PLACEHOLDER_PREFIX,
    Outline,
    Post,
    SectionResult,
    Source,
    Topic,
    slugify,
)
from src.utils.llm_helpers import GenerativeBackend
from src.utils.logger import get_logger

logger = get_logger(__name__)

SECTION_PREFIX_PATTERN = re.compile(
    r"^[ \t]*(?:#{1,6}[ \t]*(?:\*\*)?|\*\*)Section[ \t]+\d+[ \t]*[:.\-][ \t]*(.*?)(?:\*\*)?[ \t]*$",
    re.IGNORECASE | re.MULTILINE,
)
NULL_LINK_PATTERN = re.compile(r"\[([^\]]+)\]\(\s*(?:null|undefined|None)?\s*\)")


def calculate_cost(
    tokens_in: int,
    tokens_out: int,
    input_rate: float = 0.03,
    output_rate: float = 0.06,
    floor: float = 0.01,
) -> str:
    """
    Price a generation in USD.

    ``max(floor, tokens_in/1000*input_rate + tokens_out/1000*output_rate)``
    rounded to 4 decimals, rendered without trailing zeros.

    Example:
        >>> calculate_cost(1000, 1000)
        '0.09'
        >>> calculate_cost(0, 0)
        '0.01'
    """
    raw = (
        Decimal(tokens_in) / 1000 * Decimal(str(input_rate))
        + Decimal(tokens_out) / 1000 * Decimal(str(output_rate))
    )
    cost = max(Decimal(str(floor)), raw).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
    return format(cost.normalize(), "f")


def clean_section(text: str, heading: str) -> str:
    """
    Normalise one generated section.

    Strips ``Section N:`` prefixes from heading lines, guarantees the body
    opens with a single ``## <heading>`` marker and unwraps links whose
    target is a null placeholder.
    """
    text = SECTION_PREFIX_PATTERN.sub(lambda m: f"## {m.group(1).strip()}", text.strip())
    text = NULL_LINK_PATTERN.sub(r"\1", text)

    lines = text.splitlines()
    if lines and lines[0].lstrip().startswith("#"):
        first = lines[0].lstrip("# \t").strip() or heading
        lines[0] = f"## {first}"
        return "\n".join(lines).strip()
    return f"## {heading}\n\n{text}".strip()


class PostAssembler:
    """Builds one Post per Topic."""

    def __init__(
        self,
        backend: GenerativeBackend,
        generator: Optional[SectionGenerator] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.generator = generator or SectionGenerator(backend, settings=self.settings)

    def cost_for(self, tokens: int) -> str:
        # Input and output are both billed on the summed section tokens
        return calculate_cost(
            tokens,
            tokens,
            input_rate=self.settings.input_cost_per_1k,
            output_rate=self.settings.output_cost_per_1k,
            floor=self.settings.min_cost,
        )

    def placeholder_post(self, topic: Topic, error: str) -> Post:
        return Post(
            title=topic.idea,
            date=date.today().isoformat(),
            slug=slugify(topic.idea),
            content=f"{PLACEHOLDER_PREFIX} Generation failed: {error}",
            sources=[],
            cost=format(Decimal(str(self.settings.min_cost)).normalize(), "f"),
            degraded=True,
            topic_id=topic.idea,
        )

    async def assemble(
        self,
        topic: Topic,
        cancellation: Optional[CancellationToken] = None,
    ) -> Post:
        """
        Generate a complete post for ``topic``.

        Args:
            topic: Topic to write about
            cancellation: Job token, checked before the section fan-out

        Returns:
            The finished Post, or a placeholder Post on internal failure

        Raises:
            GenerationCancelled: If the token was set mid-topic
        """
        try:
            return await self._assemble(topic, cancellation)
        except GenerationCancelled:
            raise
        except Exception as e:
            logger.error(f"Post assembly failed for '{topic.idea}': {e}", exc_info=True)
            return self.placeholder_post(topic, str(e))

    async def _assemble(self, topic: Topic, cancellation: Optional[CancellationToken]) -> Post:
        outline: Outline = await self.generator.generate_outline(topic)
        if cancellation is not None:
            cancellation.raise_if_set()

        sources_task = asyncio.create_task(self.generator.generate_sources(topic))
        try:
            sections: list[SectionResult] = await asyncio.gather(*[
                self.generator.generate_section(
                    section.heading, section.subheadings, topic, title=outline.title
                )
                for section in outline.sections
            ])
            sources: list[Source] = await sources_task
        finally:
            if not sources_task.done():
                sources_task.cancel()

        bodies = [
            clean_section(result.content, section.heading)
            for section, result in zip(outline.sections, sections)
        ]
        tokens = sum(result.tokens_consumed for result in sections)
        degraded = sum(1 for result in sections if result.is_placeholder)
        if degraded:
            logger.warning(f"'{topic.idea}': {degraded}/{len(sections)} sections are placeholders")

        return Post(
            title=outline.title,
            date=date.today().isoformat(),
            slug=slugify(outline.title),
            content="\n\n".join(bodies),
            sources=sources,
            cost=self.cost_for(tokens),
            degraded=degraded > 0,
            topic_id=topic.idea,
        )
