"""
Retry policy shared by page navigation and the challenge-wait loop.

A policy bundles the attempt budget, the backoff between attempts, the poll
interval of a wait loop, and a hard wall-clock ceiling.
"""

import random
import time
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, Tuple


@dataclass
class RetryPolicy:
    """
    Attempt budget plus timing rules.

    Attributes:
        max_attempts: Number of attempts (>= 1)
        backoff_range: Random base delay in seconds, multiplied by the attempt
            number for every attempt after the first
        poll_interval: Seconds between polls of a wait loop
        ceiling: Hard wall-clock limit of a wait loop in seconds (None = no limit)
    """
    max_attempts: int = 3
    backoff_range: Tuple[float, float] = (5.0, 10.0)
    poll_interval: float = 1.0
    ceiling: Optional[float] = None
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        low, high = self.backoff_range
        if low < 0 or high < low:
            raise ValueError(f"Invalid backoff range: {self.backoff_range}")

    def attempts(self) -> Iterator[int]:
        """Yield 1-based attempt numbers."""
        return iter(range(1, self.max_attempts + 1))

    def backoff(self, attempt: int) -> float:
        """Delay before ``attempt``; zero for the first attempt."""
        if attempt <= 1:
            return 0.0
        return self.rng.uniform(*self.backoff_range) * attempt

    def with_attempts(self, max_attempts: int) -> 'RetryPolicy':
        """Copy of this policy with a different attempt budget."""
        return RetryPolicy(
            max_attempts=max_attempts,
            backoff_range=self.backoff_range,
            poll_interval=self.poll_interval,
            ceiling=self.ceiling,
            rng=self.rng,
        )

    def deadline(self, started: float) -> Optional[float]:
        if self.ceiling is None:
            return None
        return started + self.ceiling

    def expired(self, started: float, now: float) -> bool:
        deadline = self.deadline(started)
        return deadline is not None and now >= deadline


class Stopwatch:
    """Elapsed-time helper over an injectable monotonic clock."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.started = clock()

    def now(self) -> float:
        return self._clock()

    @property
    def elapsed(self) -> float:
        return self._clock() - self.started
