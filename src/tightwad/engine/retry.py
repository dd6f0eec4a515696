"""
Retry settings for provider calls.

Only ProviderTimeout is retried. Delays grow exponentially, are capped,
and optionally use full jitter.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any


@dataclass
class RetryConfig:
    """
    Retry settings.

    Attributes:
        max_retries: Maximum number of retries after the first attempt
            (0 disables retrying)
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound on any single delay, in seconds
        exponential_base: Backoff multiplier
        jitter: Use full jitter (uniform in [0, delay])
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Retry delays must be >= 0")

    @property
    def max_attempts(self) -> int:
        """Total attempts including the first one."""
        return self.max_retries + 1

    def get_delay(self, attempt: int) -> float:
        """
        Delay before retrying after a failed attempt.

        Args:
            attempt: Zero-based index of the failed attempt

        Returns:
            Delay in seconds
        """
        delay = self.base_delay * (self.exponential_base**attempt)
        delay = min(delay, self.max_delay)

        if self.jitter:
            delay = random.uniform(0, delay)

        return delay

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "max_retries": self.max_retries,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
            "exponential_base": self.exponential_base,
            "jitter": self.jitter,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RetryConfig:
        """Create from dictionary."""
        return cls(
            max_retries=data.get("max_retries", 3),
            base_delay=data.get("base_delay", 1.0),
            max_delay=data.get("max_delay", 30.0),
            exponential_base=data.get("exponential_base", 2.0),
            jitter=data.get("jitter", True),
        )


DEFAULT_RETRY_CONFIG = RetryConfig()
