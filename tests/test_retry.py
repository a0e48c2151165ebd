"""
Tests for the retry utilities with exponential backoff.

Provider calls retry timeouts and 5xx answers; everything else is surfaced
to the caller after the first failure.
"""

import asyncio
from unittest.mock import Mock, patch

import pytest

from tcg_scanner.utils.error_handler import (
    IdentificationError,
    ProviderExhaustedError,
    ProviderRateLimitedError,
    TransientProviderError,
)
from tcg_scanner.utils.retry import _backoff_delay, is_retryable_error, retry


class TestRetryDecorator:
    """Test the synchronous retry decorator."""

    def test_retry_success_on_first_attempt(self):
        @retry(max_attempts=3, base_delay=0.01)
        def test_func():
            return "success"

        assert test_func() == "success"

    def test_retry_success_after_failures(self):
        """Test that function succeeds after some transient failures."""
        attempt_count = 0

        @retry(max_attempts=3, base_delay=0.01, jitter=False)
        def test_func():
            nonlocal attempt_count
            attempt_count += 1
            if attempt_count < 3:
                raise TransientProviderError("Temporary failure")
            return "success"

        with patch("tcg_scanner.utils.retry.time.sleep") as sleep:
            assert test_func() == "success"
        assert attempt_count == 3
        assert sleep.call_count == 2

    def test_retry_max_attempts_exceeded(self):
        attempt_count = 0

        @retry(max_attempts=3, base_delay=0.01)
        def test_func():
            nonlocal attempt_count
            attempt_count += 1
            raise TransientProviderError("Persistent failure")

        with patch("tcg_scanner.utils.retry.time.sleep"):
            with pytest.raises(TransientProviderError) as exc_info:
                test_func()

        assert exc_info.value.message == "Persistent failure"
        assert attempt_count == 3

    def test_other_exceptions_are_not_retried(self):
        """Only the configured exception types are retried."""
        attempt_count = 0

        @retry(max_attempts=3, base_delay=0.01)
        def test_func():
            nonlocal attempt_count
            attempt_count += 1
            raise ProviderRateLimitedError("429", provider="vision", status=429)

        with pytest.raises(ProviderRateLimitedError):
            test_func()
        assert attempt_count == 1

    def test_should_retry_predicate_stops_early(self):
        attempt_count = 0

        @retry(max_attempts=3, base_delay=0.01, should_retry=lambda e: e.status != 400)
        def test_func():
            nonlocal attempt_count
            attempt_count += 1
            raise IdentificationError("bad request", provider="vision", status=400)

        with pytest.raises(IdentificationError):
            test_func()
        assert attempt_count == 1

    def test_retry_logging(self):
        """Warnings per retry and one error once attempts run out."""
        mock_logger = Mock()

        @retry(max_attempts=2, base_delay=0.01, logger=mock_logger)
        def test_func():
            raise TransientProviderError("Test error")

        with patch("tcg_scanner.utils.retry.time.sleep"):
            with pytest.raises(TransientProviderError):
                test_func()

        assert mock_logger.warning.call_count == 1
        assert mock_logger.error.call_count == 1
        assert mock_logger.error.call_args.kwargs["attempts"] == 2

    def test_retry_preserves_function_metadata(self):
        @retry(max_attempts=3)
        def documented():
            """Test function docstring."""
            return "success"

        assert documented.__name__ == "documented"
        assert documented.__doc__ == "Test function docstring."


class TestAsyncRetryDecorator:
    """Test the async branch of the decorator."""

    @pytest.mark.asyncio
    async def test_async_retry_success_after_failures(self):
        attempt_count = 0

        @retry(max_attempts=3, base_delay=0.01)
        async def test_func():
            nonlocal attempt_count
            attempt_count += 1
            if attempt_count < 2:
                raise IdentificationError("timeout", provider="vision")
            return "success"

        with patch("tcg_scanner.utils.retry._backoff_delay", return_value=0):
            assert await test_func() == "success"
        assert attempt_count == 2

    @pytest.mark.asyncio
    async def test_async_retry_max_attempts_exceeded(self):
        attempt_count = 0

        @retry(max_attempts=3, base_delay=0.01)
        async def test_func():
            nonlocal attempt_count
            attempt_count += 1
            raise IdentificationError("503", provider="vision", status=503)

        with patch("tcg_scanner.utils.retry._backoff_delay", return_value=0):
            with pytest.raises(IdentificationError):
                await test_func()
        assert attempt_count == 3

    @pytest.mark.asyncio
    async def test_async_should_retry_predicate(self):
        attempt_count = 0

        @retry(max_attempts=3, base_delay=0.01, should_retry=lambda e: False)
        async def test_func():
            nonlocal attempt_count
            attempt_count += 1
            raise IdentificationError("nope", provider="vision", status=404)

        with pytest.raises(IdentificationError):
            await test_func()
        assert attempt_count == 1

    def test_async_function_stays_a_coroutine_function(self):
        @retry()
        async def test_func():
            return 1

        assert asyncio.iscoroutinefunction(test_func)


class TestBackoffDelay:
    """Test the backoff schedule."""

    @pytest.mark.parametrize("attempt,expected", [(1, 0.2), (2, 0.4), (3, 0.8), (6, 3.0)])
    def test_exponential_without_jitter(self, attempt, expected):
        assert _backoff_delay(attempt, 0.2, 3.0, 2.0, False) == pytest.approx(expected)

    def test_jitter_stays_within_half_to_full_delay(self):
        for _ in range(50):
            delay = _backoff_delay(2, 1.0, 3.0, 2.0, True)
            assert 1.0 <= delay <= 2.0


class TestIsRetryableError:
    """Test error classification."""

    def test_provider_flags_win(self):
        assert is_retryable_error(IdentificationError("boom", provider="vision")) is True
        assert is_retryable_error(ProviderRateLimitedError("429", provider="vision")) is True
        assert is_retryable_error(ProviderExhaustedError("402", provider="vision")) is False

    def test_network_errors(self):
        assert is_retryable_error(ConnectionError("reset")) is True
        assert is_retryable_error(TimeoutError()) is True
        assert is_retryable_error(asyncio.TimeoutError()) is True

    @pytest.mark.parametrize("message,expected", [
        ("Gateway Timeout from upstream", True),
        ("503 Service Unavailable", True),
        ("Too Many Requests", True),
        ("Invalid card name", False),
    ])
    def test_message_keywords(self, message, expected):
        assert is_retryable_error(ValueError(message)) is expected
