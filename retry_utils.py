"""
Retry policy shared by every network boundary (indexer HTTP, RPC reads)
"""
import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)


def linear_backoff(base_seconds: float) -> Callable[[int], float]:
    """Delay grows by `base_seconds` per failed attempt: 1x, 2x, 3x..."""
    return lambda attempt: base_seconds * attempt


def always_retry(exc: BaseException) -> bool:
    return True


class RetryPolicy:
    """Bounded retries with a backoff function and a retryable-error predicate.

    Non-retryable errors are re-raised on the first failure. When attempts are
    exhausted the last error is re-raised unchanged so callers can decide
    whether it is fatal.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        backoff: Optional[Callable[[int], float]] = None,
        retryable: Callable[[BaseException], bool] = always_retry,
        sleep: Callable[[float], None] = time.sleep,
        name: str = "retry",
    ):
        self.max_attempts = max(1, int(max_attempts))
        self.backoff = backoff or linear_backoff(1.0)
        self.retryable = retryable
        self.sleep = sleep
        self.name = name

    def call(self, fn, *args, **kwargs):
        attempt = 0
        while True:
            attempt += 1
            try:
                return fn(*args, **kwargs)
            except Exception as exc:
                if not self.retryable(exc):
                    raise
                if attempt >= self.max_attempts:
                    logger.warning("[%s] giving up after %d attempts: %s", self.name, attempt, str(exc)[:200])
                    raise
                delay = self.backoff(attempt)
                logger.warning(
                    "[%s] attempt %d/%d failed: %s - retrying in %.1fs",
                    self.name, attempt, self.max_attempts, str(exc)[:200], delay,
                )
                self.sleep(delay)
