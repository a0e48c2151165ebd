"""
Centralized error handling for the card scanner service.

This module provides the exception taxonomy shared by every component and the
helpers used to log failures consistently at component boundaries.
"""

from enum import Enum
from typing import Any, Dict, Optional
from dataclasses import dataclass


class ErrorCode(str, Enum):
    """Machine-readable error codes surfaced in scan and commit payloads."""

    QUOTA = "quota_exceeded"
    PROVIDER_RATE_LIMITED = "provider_rate_limited"
    PROVIDER_EXHAUSTED = "provider_exhausted"
    IDENTIFICATION_FAILED = "identification_failed"
    PARSE_FAILURE = "parse_failure"
    NO_MATCH = "no_match"
    STORAGE_FAILURE = "storage_failure"
    INVALID_REQUEST = "invalid_request"


class CardScannerError(Exception):
    """Base exception class for all card scanner errors."""

    code: ErrorCode = ErrorCode.IDENTIFICATION_FAILED
    retryable: bool = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(CardScannerError):
    """Raised when there are configuration or environment variable issues."""
    pass


class ValidationError(CardScannerError):
    """Raised when a request payload is missing fields or malformed."""

    code = ErrorCode.INVALID_REQUEST


class QuotaExceededError(CardScannerError):
    """Raised when a user exhausts their own scan quota."""

    code = ErrorCode.QUOTA
    retryable = True

    def __init__(self, retry_after_ms: int, details: Optional[Dict[str, Any]] = None):
        super().__init__("Scan limit reached. Please wait.", details)
        self.retry_after_ms = retry_after_ms

    @property
    def retry_after_s(self) -> int:
        """Whole seconds until the window resets, never below one."""
        return max(1, -(-self.retry_after_ms // 1000))


class ProviderError(CardScannerError):
    """Raised when an upstream vision, recognition or pricing provider fails."""

    retryable = True

    def __init__(self, message: str, provider: str = "", status: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.provider = provider
        self.status = status


class TransientProviderError(ProviderError):
    """A provider failure worth retrying with backoff (timeouts, 5xx)."""
    pass


class IdentificationError(TransientProviderError):
    """Raised when the identification provider returns a generic failure."""

    code = ErrorCode.IDENTIFICATION_FAILED


class ProviderRateLimitedError(ProviderError):
    """Raised when an upstream provider throttles us (HTTP 429)."""

    code = ErrorCode.PROVIDER_RATE_LIMITED


class ProviderExhaustedError(ProviderError):
    """Raised when upstream billing or capacity is exhausted (HTTP 402)."""

    code = ErrorCode.PROVIDER_EXHAUSTED
    retryable = False


class MalformedResponseError(ProviderError):
    """Raised when a provider answers 2xx with a body that is not JSON."""

    code = ErrorCode.PARSE_FAILURE


class PricingError(TransientProviderError):
    """Raised when a pricing source request fails."""
    pass


class StorageError(CardScannerError):
    """Raised when the object store or the image index cannot be written."""

    code = ErrorCode.STORAGE_FAILURE
    retryable = True


class RecordStoreError(CardScannerError):
    """Raised when the shared record store is unavailable."""
    pass


class InvalidTransitionError(CardScannerError):
    """Raised when a scan session is driven through an illegal state change."""
    pass


USER_MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.QUOTA: "Scan limit reached. Please try again shortly.",
    ErrorCode.PROVIDER_RATE_LIMITED: "The identification service is busy. Please try again in a moment.",
    ErrorCode.PROVIDER_EXHAUSTED: "Card identification is temporarily unavailable.",
    ErrorCode.IDENTIFICATION_FAILED: "Card identification failed. Please try again.",
    ErrorCode.PARSE_FAILURE: "Could not read the card. Please try again with a clearer photo.",
    ErrorCode.NO_MATCH: "No trading card detected in image. Please search for the card manually.",
    ErrorCode.STORAGE_FAILURE: "Could not save the card image. Please try again.",
    ErrorCode.INVALID_REQUEST: "Invalid request.",
}


def user_message(code: ErrorCode) -> str:
    """Actionable message shown to the user for an error code."""
    return USER_MESSAGES.get(code, "Something went wrong. Please try again.")


@dataclass
class ErrorContext:
    """Context information for error reporting."""
    operation: str
    module: str
    function: str
    input_data: Optional[Dict[str, Any]] = None
    timestamp: Optional[str] = None


def handle_error(
    error: Exception,
    context: ErrorContext,
    logger: Any,
    reraise: bool = True,
    default_return: Any = None
) -> Any:
    """
    Centralized error handling with logging and optional recovery.

    Args:
        error: The exception that occurred
        context: Context information about where the error occurred
        logger: structlog logger used for error reporting
        reraise: Whether to re-raise the exception after logging
        default_return: Value to return if not re-raising

    Returns:
        The default_return value if not re-raising

    Raises:
        The original exception if reraise is True
    """
    error_msg = f"Error in {context.module}.{context.function} during {context.operation}"

    if isinstance(error, CardScannerError):
        error_msg += f": {error.message}"
    else:
        error_msg += f": {str(error)}"

    logger.error(
        error_msg,
        error_type=type(error).__name__,
        operation=context.operation,
        error_module=context.module,
        error_function=context.function,
        input_data=context.input_data,
        details=getattr(error, "details", None),
        exc_info=not isinstance(error, CardScannerError),
    )

    if reraise:
        raise error

    return default_return


async def safe_execute(
    func,
    *args,
    context: ErrorContext,
    logger: Any,
    default_return: Any = None,
    **kwargs
) -> Any:
    """
    Await a coroutine function with error handling and logging.

    Args:
        func: Coroutine function to execute
        context: Error context information
        logger: Logger instance
        default_return: Value to return on error
        *args, **kwargs: Arguments to pass to the function

    Returns:
        Function result or default_return on error
    """
    try:
        return await func(*args, **kwargs)
    except Exception as e:
        return handle_error(e, context, logger, reraise=False, default_return=default_return)
