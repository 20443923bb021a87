"""Retry policy shared by the report poller and the SP-API client."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from commerce_ingest.exceptions import RateLimitedError

logger = logging.getLogger(__name__)


def _is_rate_limited(error: BaseException) -> bool:
    return isinstance(error, RateLimitedError)


class RetryPolicy:
    """Bounded retry with a pluggable backoff function.

    Args:
        max_attempts: Total attempts including the first call.
        backoff: Maps a zero-based attempt number to seconds to wait before the next attempt.
        retryable: Predicate deciding whether an exception should be retried.
    """

    def __init__(
        self,
        max_attempts: int,
        backoff: Callable[[int], float],
        retryable: Callable[[BaseException], bool] = _is_rate_limited,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.retryable = retryable

    @classmethod
    def linear(
        cls,
        interval: float,
        max_attempts: int,
        retryable: Callable[[BaseException], bool] = _is_rate_limited,
    ) -> RetryPolicy:
        """Fixed wait between attempts."""
        return cls(max_attempts, lambda attempt: interval, retryable)

    @classmethod
    def capped_exponential(
        cls,
        base: float,
        cap: float,
        max_attempts: int = 6,
        retryable: Callable[[BaseException], bool] = _is_rate_limited,
    ) -> RetryPolicy:
        """Wait base * 2^attempt seconds, never more than cap."""
        return cls(max_attempts, lambda attempt: min(base * (2 ** attempt), cap), retryable)

    def delays(self) -> list[float]:
        """The waits this policy would apply between attempts."""
        return [self.backoff(attempt) for attempt in range(self.max_attempts - 1)]

    def call(
        self,
        fn: Callable[[], Any],
        sleep: Callable[[float], None] = time.sleep,
        description: str = "request",
    ) -> Any:
        """Run fn, retrying retryable failures until attempts run out."""
        for attempt in range(self.max_attempts):
            try:
                return fn()
            except Exception as e:
                if not self.retryable(e) or attempt == self.max_attempts - 1:
                    raise
                wait = self.backoff(attempt)
                logger.warning(
                    "%s failed (%s). Retry %d/%d in %.1fs",
                    description, e, attempt + 1, self.max_attempts - 1, wait,
                )
                sleep(wait)
        raise RuntimeError("unreachable")
