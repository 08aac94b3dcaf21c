"""Retry policy shared by the network flows.

The default policy retries forever with a fixed delay. Bounded and
backoff variants exist so tests and embedders can tune the loops.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """How long to wait between attempts, and how many to make.

    Attributes:
        delay_seconds: Fixed pause between attempts.
        max_attempts: ``None`` retries without limit.
        backoff: Optional ``attempt -> seconds`` override for the delay.
    """

    delay_seconds: float = 2.0
    max_attempts: int | None = None
    backoff: Callable[[int], float] | None = field(default=None, repr=False)

    def delay_for(self, attempt: int) -> float:
        if self.backoff is not None:
            return max(0.0, float(self.backoff(attempt)))
        return max(0.0, self.delay_seconds)

    def exhausted(self, attempt: int) -> bool:
        return self.max_attempts is not None and attempt >= self.max_attempts

    async def wait(self, attempt: int) -> None:
        delay = self.delay_for(attempt)
        logger.debug("Retry wait %.2fs before attempt %d", delay, attempt + 1)
        await asyncio.sleep(delay)

    @classmethod
    def immediate(cls, max_attempts: int | None = None) -> RetryPolicy:
        """Zero-delay policy, mostly for tests."""
        return cls(delay_seconds=0.0, max_attempts=max_attempts)
