"""Retry backoff policy for failed jobs."""

from __future__ import annotations

import random
from dataclasses import dataclass

from vno.config.models import QueueConfig


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with jitter.

    The delay before retry n (n = failed attempts so far, 1-based) is
    ``min(base_delay * multiplier ** (n - 1), max_delay)`` scaled by a
    random factor in ``[1 - jitter, 1 + jitter]``.
    """

    max_attempts: int = 3
    base_delay: float = 2.0
    max_delay: float = 300.0
    multiplier: float = 2.0
    jitter: float = 0.1

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(
                f"max_attempts must be at least 1, got {self.max_attempts}"
            )
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must not be negative")
        if not 0 <= self.jitter < 1:
            raise ValueError(f"jitter must be in [0, 1), got {self.jitter}")

    @classmethod
    def from_config(cls, config: QueueConfig) -> RetryPolicy:
        """Build the policy for one queue's settings."""
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.backoff_base,
            max_delay=config.backoff_max,
            multiplier=config.backoff_multiplier,
            jitter=config.backoff_jitter,
        )

    def delay_for(self, attempt: int, rng: random.Random | None = None) -> float:
        """Seconds to wait before retrying after failed attempt number ``attempt``."""
        if attempt < 1:
            return 0.0
        delay = self.base_delay * self.multiplier ** (attempt - 1)
        delay = min(delay, self.max_delay)
        if self.jitter:
            uniform = (rng or random).uniform  # nosec B311
            delay *= 1 + uniform(-self.jitter, self.jitter)
        return max(0.0, delay)

    def should_retry(self, attempts: int, max_attempts: int | None = None) -> bool:
        """True while failed attempts so far leave room for another try.

        A job keeps the limit it was enqueued with, passed as max_attempts,
        so a policy change does not strand jobs already in the queue.
        """
        limit = self.max_attempts if max_attempts is None else max_attempts
        return attempts < limit
