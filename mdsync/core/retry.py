"""Retry with exponential backoff for rate-limited API calls."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from .client import TransientRemoteError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """Retries an operation on transient remote errors.

    The wait before attempt ``n + 1`` is ``delay * factor ** (n - 1)``
    seconds, or the server's Retry-After when that is longer. Any other
    error propagates immediately; the last transient error propagates once
    attempts run out.
    """

    attempts: int = 3
    delay: float = 1.0
    factor: float = 2.0
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def backoff(self, attempt: int, retry_after: float | None = None) -> float:
        """Get the wait in seconds after the given failed attempt (1-based)."""
        wait = self.delay * self.factor ** (attempt - 1)
        if retry_after is not None:
            wait = max(wait, retry_after)
        return wait

    def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call ``fn`` with retries.

        Raises:
            TransientRemoteError: If every attempt failed transiently
        """
        attempt = 1
        while True:
            try:
                return fn(*args, **kwargs)
            except TransientRemoteError as e:
                if attempt >= self.attempts:
                    logger.error("Giving up after %d attempts: %s", attempt, e)
                    raise
                wait = self.backoff(attempt, e.retry_after)
                logger.warning(
                    "Transient API error, retrying in %.1fs (%d/%d): %s",
                    wait, attempt, self.attempts, e,
                )
                self.sleep(wait)
                attempt += 1
