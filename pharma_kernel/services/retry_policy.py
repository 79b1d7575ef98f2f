"""
RetryPolicy -- bounded, jittered backoff for conflicting stock writes.

A write that loses a race on a stock scope (ConcurrencyConflict) is rolled
back and re-run from scratch: locks are re-acquired and the projection is
recomputed, so a retry never reuses a stale figure.
"""

import random
from dataclasses import dataclass


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    base_delay_seconds: float = 0.01
    max_delay_seconds: float = 0.5

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    def delay_for(self, attempt: int, rng: random.Random | None = None) -> float:
        """
        Full-jitter exponential backoff before re-running after ``attempt``
        (1-based) failed.
        """
        ceiling = min(self.max_delay_seconds, self.base_delay_seconds * (2 ** (attempt - 1)))
        return (rng or random).uniform(0, ceiling)
