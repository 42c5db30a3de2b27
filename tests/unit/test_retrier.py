"""
Unit tests for ResponseValidator.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.generation.retrier import ResponseValidator, placeholder_result
from src.pipeline.state import PLACEHOLDER_PREFIX
from src.utils.llm_helpers import Completion


def _words(n: int) -> Completion:
    return Completion(text=" ".join(["w"] * n), tokens=n)


def _validator(backend, settings, **kwargs) -> ResponseValidator:
    return ResponseValidator(backend, settings=settings, retry_delay=0, **kwargs)


class TestAttempt:
    """Tests for ResponseValidator.attempt()."""

    @pytest.mark.asyncio
    async def test_accepts_first_good_response(self, settings):
        backend = AsyncMock()
        backend.generate.return_value = _words(200)

        result = await _validator(backend, settings).attempt(lambda: "p", lambda n: n >= 150)

        assert not result.is_placeholder
        assert result.tokens_consumed == 200
        assert backend.generate.await_count == 1

    @pytest.mark.asyncio
    async def test_retries_short_responses(self, settings):
        backend = AsyncMock()
        backend.generate.side_effect = [_words(10), _words(20), _words(160)]

        result = await _validator(backend, settings).attempt(lambda: "p", lambda n: n >= 150)

        assert not result.is_placeholder
        assert result.tokens_consumed == 160
        assert backend.generate.await_count == 3

    @pytest.mark.asyncio
    async def test_exhausted_budget_returns_placeholder(self, settings):
        backend = AsyncMock()
        backend.generate.return_value = _words(5)

        result = await _validator(backend, settings).attempt(
            lambda: "p", lambda n: n >= 150, max_retries=3, label="Introduction"
        )

        assert result.is_placeholder
        assert result.content.startswith(PLACEHOLDER_PREFIX)
        assert '"Introduction"' in result.content
        assert backend.generate.await_count == 3

    @pytest.mark.asyncio
    async def test_exceptions_spend_the_budget(self, settings):
        backend = AsyncMock()
        backend.generate.side_effect = [RuntimeError("boom"), RuntimeError("boom"), _words(300)]

        result = await _validator(backend, settings).attempt(lambda: "p", lambda n: n >= 150)

        assert not result.is_placeholder
        assert backend.generate.await_count == 3

    @pytest.mark.asyncio
    async def test_all_exceptions_yield_placeholder(self, settings):
        backend = AsyncMock()
        backend.generate.side_effect = RuntimeError("down")

        result = await _validator(backend, settings).attempt(lambda: "p", lambda n: True, max_retries=2)

        assert result.is_placeholder
        assert backend.generate.await_count == 2

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failed_attempt(self, settings):
        calls = 0

        async def slow_then_fast(prompt):
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(1)
            return _words(200)

        backend = AsyncMock()
        backend.generate.side_effect = slow_then_fast

        result = await _validator(backend, settings, timeout=0.05).attempt(lambda: "p", lambda n: n >= 150)

        assert not result.is_placeholder
        assert calls == 2

    @pytest.mark.asyncio
    async def test_prompt_built_once(self, settings):
        backend = AsyncMock()
        backend.generate.return_value = _words(1)
        builder_calls = []

        def builder():
            builder_calls.append(1)
            return "prompt"

        await _validator(backend, settings).attempt(builder, lambda n: False, max_retries=3)

        assert len(builder_calls) == 1
        backend.generate.assert_awaited_with("prompt")


class TestPlaceholderResult:
    def test_shape(self):
        result = placeholder_result("Conclusion", 3)
        assert result.placeholder
        assert "after 3 attempts" in result.content
        assert result.tokens_consumed > 0
