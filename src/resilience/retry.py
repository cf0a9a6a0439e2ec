"""Retry pattern with exponential backoff.

Used for calls to the external funds-transfer executor. A payout transfer is
attempted a bounded number of times; exhaustion is reported as RetryExhausted
so the caller can move the payout to a held state instead of retrying forever.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Optional,
    Tuple,
    Type,
    TypeVar,
    Union,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
ExceptionTypes = Union[Type[Exception], Tuple[Type[Exception], ...]]


class RetryExhausted(Exception):
    """Raised when all retry attempts have been exhausted."""

    def __init__(
        self,
        message: str,
        attempts: int,
        last_exception: Optional[Exception] = None
    ):
        super().__init__(message)
        self.attempts = attempts
        self.last_exception = last_exception


@dataclass
class RetryConfig:
    """Configuration for retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts (including the initial one).
        base_delay: Initial delay between retries in seconds.
        max_delay: Maximum delay between retries in seconds.
        backoff_multiplier: Multiplier for exponential backoff.
        jitter: Random jitter as a fraction of the delay (0-1).
        retryable_exceptions: Exception types that should trigger retry.
        non_retryable_exceptions: Exception types that should not retry.
        on_retry: Callback called after each failed attempt that will be retried.
        on_failure: Callback called after every failed attempt, including the last.
        retry_if: Extra predicate an exception must satisfy to be retried.
    """
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    backoff_multiplier: float = 2.0
    jitter: float = 0.1
    retryable_exceptions: ExceptionTypes = (Exception,)
    non_retryable_exceptions: ExceptionTypes = ()
    on_retry: Optional[Callable[[int, Exception, float], None]] = None
    on_failure: Optional[Callable[[int, Exception], None]] = None
    retry_if: Optional[Callable[[Exception], bool]] = None

    @classmethod
    def for_transfers(cls, payout_settings: Any, **overrides: Any) -> "RetryConfig":
        """Build the transfer retry policy from PayoutSettings."""
        values = dict(
            max_attempts=payout_settings.transfer_max_attempts,
            base_delay=payout_settings.transfer_base_delay,
            max_delay=payout_settings.transfer_max_delay,
            backoff_multiplier=payout_settings.transfer_backoff_multiplier,
        )
        values.update(overrides)
        return cls(**values)

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay for a given attempt number.

        Args:
            attempt: Current attempt number (1-indexed).

        Returns:
            Delay in seconds with exponential backoff and jitter.
        """
        delay = self.base_delay * (self.backoff_multiplier ** (attempt - 1))
        delay = min(delay, self.max_delay)

        if self.jitter > 0 and delay > 0:
            jitter_range = delay * self.jitter
            delay = max(0.0, delay + random.uniform(-jitter_range, jitter_range))

        return delay

    def should_retry(self, exception: Exception) -> bool:
        """Determine if an exception should trigger a retry."""
        if self.non_retryable_exceptions:
            if isinstance(exception, self.non_retryable_exceptions):
                return False
        if not isinstance(exception, self.retryable_exceptions):
            return False
        return self.retry_if is None or self.retry_if(exception)



def call_with_retry(func: Callable[..., T], config: RetryConfig, *args: Any, **kwargs: Any) -> T:
    """Invoke func under the given retry policy.

    Exceptions the policy does not retry propagate unchanged and are not
    reported to on_failure.

    Raises:
        RetryExhausted: Every attempt failed with a retryable exception.
    """
    name = getattr(func, "__name__", repr(func))
    attempt = 0

    while True:
        attempt += 1
        try:
            return func(*args, **kwargs)
        except Exception as e:
            if not config.should_retry(e):
                logger.debug(f"{name} raised non-retryable {type(e).__name__}")
                raise

            if config.on_failure:
                config.on_failure(attempt, e)

            if attempt >= config.max_attempts:
                logger.warning(f"{name} failed {attempt} times, giving up: {e}")
                raise RetryExhausted(
                    f"Retry exhausted after {attempt} attempts",
                    attempts=attempt,
                    last_exception=e,
                ) from e

            delay = config.calculate_delay(attempt)
            logger.info(f"{name} attempt {attempt}/{config.max_attempts} failed, retrying in {delay:.2f}s: {e}")
            if config.on_retry:
                config.on_retry(attempt, e, delay)
            if delay > 0:
                time.sleep(delay)
