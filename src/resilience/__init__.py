"""Resilience patterns for calls to external services.

Provides retry logic with exponential backoff for the funds-transfer executor.
"""

from .retry import (
    call_with_retry,
    RetryConfig,
    RetryExhausted,
)

__all__ = [
    "call_with_retry",
    "RetryConfig",
    "RetryExhausted",
]
