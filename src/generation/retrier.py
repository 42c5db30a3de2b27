"""
Validator/Retrier for single generative calls.

Wraps one backend call with a word-count acceptance check and a bounded
retry budget. Backend failures and timeouts spend the same budget as
short answers; an exhausted budget yields a placeholder instead of an
exception.
"""

import asyncio
from typing import Callable, Optional

from src.config.settings import Settings, get_settings
from src.pipeline.state import PLACEHOLDER_PREFIX, SectionResult
from src.utils.llm_helpers import GenerativeBackend, count_words
from src.utils.logger import get_logger

logger = get_logger(__name__)


def placeholder_result(label: str, attempts: int) -> SectionResult:
    """Build the marked filler used when every attempt failed."""
    content = (
        f"{PLACEHOLDER_PREFIX} Content for \"{label}\" could not be generated "
        f"after {attempts} attempts."
    )
    return SectionResult(content=content, tokens_consumed=count_words(content), placeholder=True)


class ResponseValidator:
    def __init__(
        self,
        backend: GenerativeBackend,
        settings: Optional[Settings] = None,
        retry_delay: Optional[float] = None,
        timeout: Optional[float] = None,
    ):
        self.backend = backend
        self.settings = settings or get_settings()
        self.retry_delay = self.settings.retry_delay if retry_delay is None else retry_delay
        self.timeout = self.settings.llm_timeout if timeout is None else timeout

    async def attempt(
        self,
        prompt_builder: Callable[[], str],
        acceptance: Callable[[int], bool],
        max_retries: Optional[int] = None,
        label: str = "section",
    ) -> SectionResult:
        """
        Generate until ``acceptance(word_count)`` holds or the budget runs out.

        Args:
            prompt_builder: Returns the prompt; called once and reused
            acceptance: Predicate over the response word count
            max_retries: Total attempts allowed (defaults to settings.max_retries)
            label: Name used in logs and in the placeholder text

        Returns:
            SectionResult with genuine content, or a placeholder
        """
        budget = self.settings.max_retries if max_retries is None else max_retries
        attempts = max(budget, 1)
        prompt = prompt_builder()

        for attempt in range(1, attempts + 1):
            try:
                completion = await asyncio.wait_for(
                    self.backend.generate(prompt), timeout=self.timeout
                )
            except asyncio.TimeoutError:
                logger.warning(f"[{label}] attempt {attempt}/{attempts} timed out after {self.timeout}s")
            except Exception as e:
                logger.warning(f"[{label}] attempt {attempt}/{attempts} failed: {e}")
            else:
                word_count = count_words(completion.text)
                if acceptance(word_count):
                    logger.debug(f"[{label}] accepted on attempt {attempt} ({word_count} words)")
                    return SectionResult(
                        content=completion.text.strip(),
                        tokens_consumed=max(completion.tokens, 0),
                    )
                logger.info(
                    f"[{label}] attempt {attempt}/{attempts} rejected: {word_count} words"
                )

            if attempt < attempts and self.retry_delay > 0:
                await asyncio.sleep(self.retry_delay)

        logger.warning(f"[{label}] retries exhausted, using placeholder")
        return placeholder_result(label, attempts)
