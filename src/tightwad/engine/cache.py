"""
Per-run findings cache.

When the same control appears under several benchmark nodes, its query
runs once and every node reuses the result. Concurrent requests for the
same key wait on the single in-flight computation.
"""

from __future__ import annotations

import json
import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Generic, Mapping, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

CacheKey = tuple[str, str]


def make_cache_key(control_id: str, params: Mapping[str, Any]) -> CacheKey:
    """
    Build a cache key from a control id and its resolved parameters.

    Parameters are serialized as canonical JSON so that equal values
    always produce equal keys.
    """
    canonical = json.dumps(
        {k: list(v) if isinstance(v, tuple) else v for k, v in params.items()},
        sort_keys=True,
        default=str,
    )
    return control_id, canonical


class FindingsCache(Generic[T]):
    """
    Thread-safe insert-if-absent cache with in-flight coalescing.

    The first caller for a key computes the value; callers arriving while
    it runs block on the same future. Exceptions propagate to every
    waiter and are not cached.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[CacheKey, Future[T]] = {}
        self._hits = 0
        self._misses = 0

    def get_or_compute(self, key: CacheKey, compute: Callable[[], T]) -> T:
        """
        Return the cached value for key, computing it at most once.

        Args:
            key: Cache key from make_cache_key()
            compute: Zero-argument callable producing the value

        Returns:
            The cached or freshly computed value
        """
        with self._lock:
            future = self._entries.get(key)
            owner = future is None
            if future is None:
                future = Future()
                self._entries[key] = future
                self._misses += 1
            else:
                self._hits += 1

        if not owner:
            logger.debug(f"Reusing findings for {key[0]}")
            return future.result()

        try:
            value = compute()
        except BaseException as e:
            with self._lock:
                self._entries.pop(key, None)
            future.set_exception(e)
            raise

        future.set_result(value)
        return value

    def get(self, key: CacheKey) -> T | None:
        """Return a completed value, or None if absent or still running."""
        with self._lock:
            future = self._entries.get(key)
        if future is None or not future.done() or future.exception() is not None:
            return None
        return future.result()

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def stats(self) -> dict[str, int]:
        """Hit and miss counts."""
        with self._lock:
            return {"hits": self._hits, "misses": self._misses, "entries": len(self._entries)}
