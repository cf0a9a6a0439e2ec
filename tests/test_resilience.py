"""Tests for the transfer retry policy."""

from decimal import Decimal

import pytest

from resilience.retry import (
    RetryConfig,
    RetryExhausted,
    call_with_retry,
)


class TestRetryConfig:
    """Tests for RetryConfig class."""

    def test_default_values(self):
        """Should have sensible defaults."""
        config = RetryConfig()
        assert config.max_attempts == 3
        assert config.base_delay == 1.0
        assert config.max_delay == 60.0
        assert config.backoff_multiplier == 2.0
        assert config.retryable_exceptions == (Exception,)
        assert config.non_retryable_exceptions == ()
        assert config.retry_if is None

    def test_calculate_delay_exponential_backoff(self):
        """Delay should increase exponentially."""
        config = RetryConfig(base_delay=1.0, backoff_multiplier=2.0, jitter=0)
        assert config.calculate_delay(1) == 1.0
        assert config.calculate_delay(2) == 2.0
        assert config.calculate_delay(3) == 4.0

    def test_calculate_delay_respects_max(self):
        config = RetryConfig(base_delay=10.0, backoff_multiplier=2.0, max_delay=15.0, jitter=0)
        assert config.calculate_delay(1) == 10.0
        assert config.calculate_delay(2) == 15.0  # Capped
        assert config.calculate_delay(5) == 15.0

    def test_calculate_delay_with_jitter(self):
        config = RetryConfig(base_delay=1.0, jitter=0.5)
        delays = [config.calculate_delay(1) for _ in range(100)]
        assert all(0.5 <= d <= 1.5 for d in delays)
        assert len(set(delays)) > 1

    def test_should_retry(self):
        config = RetryConfig(
            retryable_exceptions=(ValueError,),
            non_retryable_exceptions=(KeyError,),
        )
        assert config.should_retry(ValueError("test")) is True
        assert config.should_retry(TypeError("test")) is False

    def test_retry_if_predicate(self):
        from core.exceptions import TransferFailure

        config = RetryConfig(
            retryable_exceptions=(TransferFailure,),
            retry_if=lambda exc: exc.retryable,
        )
        assert config.should_retry(TransferFailure("timeout")) is True
        assert config.should_retry(TransferFailure("closed", retryable=False)) is False

    def test_for_transfers_reads_payout_settings(self):
        from config.settings import PayoutSettings

        payout = PayoutSettings(
            fee_rate=Decimal("0.05"),
            reserve_rate=Decimal("0.10"),
            transfer_max_attempts=5,
            transfer_base_delay=0.5,
            transfer_max_delay=4.0,
        )
        config = RetryConfig.for_transfers(payout, jitter=0)

        assert config.max_attempts == 5
        assert config.base_delay == 0.5
        assert config.max_delay == 4.0
        assert config.jitter == 0


class TestCallWithRetry:
    """Tests for call_with_retry."""

    def test_successful_call_no_retry(self):
        calls = []

        def transfer():
            calls.append(1)
            return "tr_1"

        assert call_with_retry(transfer, RetryConfig(max_attempts=3)) == "tr_1"
        assert len(calls) == 1

    def test_retry_on_failure(self):
        """Should retry on failure."""
        calls = []

        def transfer():
            calls.append(1)
            if len(calls) < 3:
                raise ValueError("temporary error")
            return "tr_1"

        assert call_with_retry(transfer, RetryConfig(max_attempts=3, base_delay=0)) == "tr_1"
        assert len(calls) == 3

    def test_exhaust_retries(self):
        """Should raise RetryExhausted when all retries fail."""
        calls = []

        def transfer():
            calls.append(1)
            raise ValueError("permanent error")

        with pytest.raises(RetryExhausted) as exc_info:
            call_with_retry(transfer, RetryConfig(max_attempts=3, base_delay=0))

        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_exception, ValueError)
        assert len(calls) == 3

    def test_non_retryable_exception(self):
        calls = []
        failures = []
        config = RetryConfig(
            max_attempts=3,
            base_delay=0,
            retryable_exceptions=(ValueError,),
            on_failure=lambda attempt, exc: failures.append(attempt),
        )

        def transfer():
            calls.append(1)
            raise TypeError("non-retryable")

        with pytest.raises(TypeError):
            call_with_retry(transfer, config)

        assert len(calls) == 1
        assert failures == []

    def test_on_retry_callback(self):
        retry_calls = []
        config = RetryConfig(
            max_attempts=3,
            base_delay=0,
            on_retry=lambda attempt, exc, delay: retry_calls.append((attempt, type(exc).__name__)),
        )

        def transfer():
            if len(retry_calls) < 2:
                raise ValueError("error")
            return "tr_1"

        assert call_with_retry(transfer, config) == "tr_1"
        assert retry_calls == [(1, "ValueError"), (2, "ValueError")]

    def test_on_failure_sees_every_failed_attempt(self):
        failures = []
        config = RetryConfig(
            max_attempts=3,
            base_delay=0,
            on_failure=lambda attempt, exc: failures.append(attempt),
        )

        def always_fails(amount):
            raise ValueError(f"rail down for {amount}")

        with pytest.raises(RetryExhausted):
            call_with_retry(always_fails, config, "10.00")

        # The last attempt is reported too, unlike on_retry
        assert failures == [1, 2, 3]

    def test_passes_arguments(self):
        config = RetryConfig(max_attempts=1)
        assert call_with_retry(lambda a, b=0: a + b, config, 2, b=3) == 5
