"""
Tests for the per-run findings cache and retry settings.
"""

from __future__ import annotations

import threading
import time

import pytest

from tightwad.engine.cache import FindingsCache, make_cache_key
from tightwad.engine.retry import RetryConfig


class TestMakeCacheKey:
    """Tests for make_cache_key."""

    def test_parameter_order_does_not_matter(self):
        """Test equal parameters give equal keys regardless of order."""
        assert make_cache_key("c", {"a": 1, "b": 2}) == make_cache_key("c", {"b": 2, "a": 1})

    def test_tuples_and_lists_match(self):
        """Test frozen and plain lists produce the same key."""
        assert make_cache_key("c", {"a": ("x", "y")}) == make_cache_key("c", {"a": ["x", "y"]})

    def test_different_values_differ(self):
        """Test different parameter values produce different keys."""
        assert make_cache_key("c", {"a": 1}) != make_cache_key("c", {"a": 2})
        assert make_cache_key("c", {"a": 1}) != make_cache_key("d", {"a": 1})


class TestFindingsCache:
    """Tests for FindingsCache."""

    def test_computes_once(self):
        """Test the second lookup reuses the first value."""
        cache: FindingsCache[str] = FindingsCache()
        calls = []

        def compute() -> str:
            calls.append(1)
            return "value"

        key = make_cache_key("c", {})
        assert cache.get_or_compute(key, compute) == "value"
        assert cache.get_or_compute(key, compute) == "value"
        assert len(calls) == 1
        assert cache.stats == {"hits": 1, "misses": 1, "entries": 1}
        assert cache.get(key) == "value"

    def test_concurrent_requests_coalesce(self):
        """Test callers arriving mid-computation wait for the same result."""
        cache: FindingsCache[int] = FindingsCache()
        started = threading.Event()
        release = threading.Event()
        calls = []
        results = []

        def compute() -> int:
            calls.append(1)
            started.set()
            release.wait(timeout=5)
            return 42

        key = make_cache_key("c", {"a": 1})
        threads = [
            threading.Thread(target=lambda: results.append(cache.get_or_compute(key, compute)))
            for _ in range(5)
        ]
        threads[0].start()
        started.wait(timeout=5)
        for thread in threads[1:]:
            thread.start()
        time.sleep(0.05)
        release.set()
        for thread in threads:
            thread.join(timeout=5)

        assert calls == [1]
        assert results == [42] * 5

    def test_failures_are_not_cached(self):
        """Test an exception propagates and the next caller recomputes."""
        cache: FindingsCache[str] = FindingsCache()
        key = make_cache_key("c", {})

        def fail() -> str:
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            cache.get_or_compute(key, fail)

        assert key not in cache
        assert cache.get(key) is None
        assert cache.get_or_compute(key, lambda: "recovered") == "recovered"

    def test_get_absent(self):
        """Test get returns None for unknown keys."""
        assert FindingsCache().get(make_cache_key("c", {})) is None


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_exponential_delays(self):
        """Test delays grow exponentially without jitter."""
        config = RetryConfig(base_delay=1.0, exponential_base=2.0, jitter=False)

        assert [config.get_delay(i) for i in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_delay_is_capped(self):
        """Test delays never exceed max_delay."""
        config = RetryConfig(base_delay=10.0, max_delay=15.0, jitter=False)

        assert config.get_delay(5) == 15.0

    def test_jitter_bounds(self):
        """Test jittered delays stay within [0, delay]."""
        config = RetryConfig(base_delay=2.0, jitter=True)

        for _ in range(20):
            assert 0 <= config.get_delay(1) <= 4.0

    def test_max_attempts(self):
        """Test attempts include the first call."""
        assert RetryConfig(max_retries=0).max_attempts == 1
        assert RetryConfig(max_retries=3).max_attempts == 4

    def test_negative_retries_rejected(self):
        """Test negative retry counts are invalid."""
        with pytest.raises(ValueError):
            RetryConfig(max_retries=-1)

    def test_dict_round_trip(self):
        """Test conversion to and from a dictionary."""
        config = RetryConfig(max_retries=5, base_delay=0.5, jitter=False)

        assert RetryConfig.from_dict(config.to_dict()) == config
