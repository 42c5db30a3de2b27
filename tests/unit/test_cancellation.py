"""
Unit tests for CancellationToken and CancellationRegistry.
"""

import pytest

from src.pipeline.cancellation import CancellationRegistry, CancellationToken, GenerationCancelled


class TestCancellationToken:
    def test_defaults_to_not_cancelled(self):
        assert CancellationToken().read() is False

    def test_set_and_reset(self):
        token = CancellationToken()
        token.set()
        assert token.read()
        token.reset()
        assert not token.read()

    def test_raise_if_set(self):
        token = CancellationToken()
        token.raise_if_set()
        token.set()
        with pytest.raises(GenerationCancelled):
            token.raise_if_set()


class TestCancellationRegistry:
    """Tests for the job token registry."""

    def test_cancel_single_job(self):
        registry = CancellationRegistry()
        first = registry.register("a")
        second = registry.register("b")

        assert registry.cancel("a") == ["a"]
        assert first.read()
        assert not second.read()
        assert registry.is_cancelled("a")
        assert not registry.is_cancelled("b")

    def test_cancel_all_jobs(self):
        registry = CancellationRegistry()
        tokens = [registry.register(job) for job in ("a", "b")]

        assert sorted(registry.cancel()) == ["a", "b"]
        assert all(t.read() for t in tokens)
        assert registry.is_cancelled()

    def test_reset(self):
        registry = CancellationRegistry()
        token = registry.register("a")
        registry.cancel()

        assert registry.reset() == ["a"]
        assert not token.read()
        assert not registry.is_cancelled()

    def test_unknown_job(self):
        registry = CancellationRegistry()
        assert registry.cancel("missing") == []
        assert not registry.is_cancelled("missing")

    def test_register_existing_token_and_unregister(self):
        registry = CancellationRegistry()
        token = CancellationToken()

        assert registry.register("a", token) is token
        assert registry.get("a") is token
        assert registry.active_jobs() == ["a"]

        registry.unregister("a")
        assert registry.get("a") is None
        assert registry.active_jobs() == []
