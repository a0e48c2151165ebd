"""Unit tests for the error taxonomy and handling helpers."""

from unittest.mock import MagicMock

import pytest

from tcg_scanner.utils.error_handler import (
    CardScannerError,
    ConfigurationError,
    ErrorCode,
    ErrorContext,
    IdentificationError,
    MalformedResponseError,
    PricingError,
    ProviderError,
    ProviderExhaustedError,
    ProviderRateLimitedError,
    QuotaExceededError,
    StorageError,
    TransientProviderError,
    ValidationError,
    handle_error,
    safe_execute,
    user_message,
)


class TestExceptionHierarchy:
    """Test custom exception classes."""

    def test_base_error_with_details(self):
        error = CardScannerError("Something broke", details={"card_key": "pokemon:pid:1"})
        assert error.message == "Something broke"
        assert error.details == {"card_key": "pokemon:pid:1"}
        assert str(error) == "Something broke | Details: {'card_key': 'pokemon:pid:1'}"

    def test_base_error_without_details(self):
        error = CardScannerError("Something broke")
        assert error.details == {}
        assert str(error) == "Something broke"

    @pytest.mark.parametrize("cls", [
        ConfigurationError, ValidationError, ProviderError, StorageError,
    ])
    def test_all_errors_share_base(self, cls):
        assert issubclass(cls, CardScannerError)

    def test_transient_provider_errors(self):
        assert issubclass(IdentificationError, TransientProviderError)
        assert issubclass(PricingError, TransientProviderError)
        assert not issubclass(ProviderRateLimitedError, TransientProviderError)
        assert not issubclass(ProviderExhaustedError, TransientProviderError)
        assert not issubclass(MalformedResponseError, TransientProviderError)

    @pytest.mark.parametrize("error,code,retryable", [
        (ValidationError("bad"), ErrorCode.INVALID_REQUEST, False),
        (ProviderRateLimitedError("429", provider="vision"), ErrorCode.PROVIDER_RATE_LIMITED, True),
        (ProviderExhaustedError("402", provider="vision"), ErrorCode.PROVIDER_EXHAUSTED, False),
        (IdentificationError("500", provider="vision"), ErrorCode.IDENTIFICATION_FAILED, True),
        (StorageError("disk"), ErrorCode.STORAGE_FAILURE, True),
        (MalformedResponseError("html", provider="vision", status=200), ErrorCode.PARSE_FAILURE, True),
    ])
    def test_codes_and_retryability(self, error, code, retryable):
        assert error.code == code
        assert error.retryable is retryable

    def test_provider_error_fields(self):
        error = PricingError("scryfall request failed: 503", provider="scryfall", status=503)
        assert error.provider == "scryfall"
        assert error.status == 503


class TestQuotaExceededError:
    @pytest.mark.parametrize("retry_after_ms,seconds", [(55_000, 55), (54_001, 55), (1, 1), (0, 1)])
    def test_retry_after_rounds_up(self, retry_after_ms, seconds):
        assert QuotaExceededError(retry_after_ms).retry_after_s == seconds

    def test_quota_error_is_retryable(self):
        error = QuotaExceededError(1000, details={"user_id": "u"})
        assert error.retryable is True
        assert error.code == ErrorCode.QUOTA
        assert error.details["user_id"] == "u"


class TestUserMessages:
    def test_every_code_has_a_message(self):
        for code in ErrorCode:
            assert user_message(code)

    def test_no_match_message(self):
        assert "No trading card detected" in user_message(ErrorCode.NO_MATCH)


class TestHandleError:
    """Test the centralized error handler."""

    @pytest.fixture
    def context(self):
        return ErrorContext(operation="pricing", module="tests", function="resolve")

    def test_reraises_by_default(self, context):
        logger = MagicMock()
        with pytest.raises(StorageError):
            handle_error(StorageError("disk full"), context, logger)
        logger.error.assert_called_once()

    def test_returns_default_when_not_reraising(self, context):
        logger = MagicMock()
        result = handle_error(ValueError("boom"), context, logger, reraise=False, default_return="fallback")
        assert result == "fallback"

        message = logger.error.call_args.args[0]
        kwargs = logger.error.call_args.kwargs
        assert message == "Error in tests.resolve during pricing: boom"
        assert kwargs["error_type"] == "ValueError"
        assert kwargs["exc_info"] is True

    def test_known_errors_log_without_traceback(self, context):
        logger = MagicMock()
        handle_error(PricingError("timeout", provider="x"), context, logger, reraise=False)
        assert logger.error.call_args.kwargs["exc_info"] is False


class TestSafeExecute:
    @pytest.mark.asyncio
    async def test_returns_result(self):
        async def ok(value):
            return value * 2

        context = ErrorContext(operation="test", module="tests", function="ok")
        assert await safe_execute(ok, 21, context=context, logger=MagicMock()) == 42

    @pytest.mark.asyncio
    async def test_swallows_and_logs_failure(self):
        async def broken():
            raise RuntimeError("down")

        logger = MagicMock()
        context = ErrorContext(operation="test", module="tests", function="broken")
        result = await safe_execute(broken, context=context, logger=logger, default_return=[])

        assert result == []
        logger.error.assert_called_once()
