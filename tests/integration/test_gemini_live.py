"""
Live end-to-end test against Gemini.

Requires GOOGLE_API_KEY. Run with: pytest -m integration
"""

import os

import pytest

from src.config.settings import Settings
from src.generation.post_assembler import PostAssembler
from src.pipeline.state import Topic
from src.utils.llm_helpers import GeminiBackend

pytestmark = [
    pytest.mark.integration,
    pytest.mark.slow,
    pytest.mark.skipif(not os.getenv("GOOGLE_API_KEY"), reason="GOOGLE_API_KEY not set"),
]


@pytest.mark.asyncio
async def test_single_post_with_gemini(tmp_path):
    settings = Settings(
        output_dir=tmp_path,
        google_api_key=os.environ["GOOGLE_API_KEY"],
        min_words_intro_conclusion=50,
        min_words_body=80,
        max_retries=2,
    )
    backend = GeminiBackend(settings)

    post = await PostAssembler(backend, settings=settings).assemble(
        Topic(idea="Why unit tests speed up refactoring")
    )

    assert post.title
    assert post.content.startswith("## ")
    assert post.slug and "--" not in post.slug
    assert float(post.cost) >= 0.01
