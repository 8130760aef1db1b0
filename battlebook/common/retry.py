"""
Fixed-backoff retry policy applied to every network-calling operation.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from .errors import RetryExhaustedError, TransientProviderError

T = TypeVar("T")

RetryCallback = Callable[[int, BaseException], None]
SleepFn = Callable[[float], None]

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_SECONDS = 5.0

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded retry with a fixed delay between attempts.

    Attributes
    ----------
    max_attempts:
        Total number of attempts, including the first one.
    delay_seconds:
        Pause between a failed attempt and the next one.
    retry_on:
        Exception types considered transient. Anything else propagates immediately.
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    delay_seconds: float = DEFAULT_RETRY_DELAY_SECONDS
    retry_on: tuple[type[BaseException], ...] = (TransientProviderError,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative.")

    def is_retryable(self, error: BaseException) -> bool:
        return isinstance(error, self.retry_on)

    def run(
        self,
        operation: Callable[[], T],
        *,
        description: str,
        on_retry: RetryCallback | None = None,
        sleep: SleepFn = time.sleep,
    ) -> T:
        """
        Invoke ``operation`` until it succeeds, fails with a non-retryable error,
        or runs out of attempts.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return operation()
            except self.retry_on as exc:
                if attempt >= self.max_attempts:
                    raise RetryExhaustedError(
                        f"{description} failed after {attempt} attempts: {exc}",
                        attempts=attempt,
                    ) from exc
                logger.warning(
                    "Attempt %d/%d failed for %s: %s", attempt, self.max_attempts, description, exc
                )
                if on_retry is not None:
                    on_retry(attempt, exc)
                sleep(self.delay_seconds)


__all__ = ["RetryPolicy", "DEFAULT_MAX_ATTEMPTS", "DEFAULT_RETRY_DELAY_SECONDS"]
