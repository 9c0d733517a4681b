"""Retry utilities with exponential backoff using tenacity.

These helpers bound the retries of a *single* call to an external system (one
Kubernetes request, one queue statement). They never replay a whole message:
message-level retry happens only through queue redelivery after the visibility
timeout expires.

## Components

### HTTPErrorClassifier
Base class with common HTTP status code classification:
- 5xx errors: Retriable (server-side issues)
- 429: Retriable (throttling)
- Other 4xx errors: Non-retriable (client-side issues)

### create_retry_logger
Factory function to create retry logging callbacks with custom error
detail extraction.

### RetryWithBackoff
Class-based retry utility with exponential backoff and structured logging,
filtering retried errors by exception type.

## Usage

```python
from reconciler.foundation.retry import HTTPErrorClassifier, create_retry_logger

class MyClientClassifier(HTTPErrorClassifier):
    def is_retriable(self, exc: BaseException) -> bool:
        if isinstance(exc, MyConnectionError):
            return True
        if isinstance(exc, MyClientError):
            return self.is_retriable_http_status(exc.status_code)
        return False

    def get_error_details(self, exc: BaseException) -> dict[str, Any]:
        if isinstance(exc, MyClientError):
            return {"http_status": exc.status_code}
        return {}

classifier = MyClientClassifier()
log_retry = create_retry_logger(logger, classifier.get_error_details)
```
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from functools import partial
from typing import Any, TypeVar

from tenacity import (
    Retrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

T = TypeVar("T")

_PROGRAMMING_ERRORS = (TypeError, AttributeError, KeyError)

# HTTP status codes that indicate transient/retriable errors
RETRIABLE_HTTP_STATUS_CODES: frozenset[str] = frozenset(
    {
        "429",  # Too Many Requests
        "500",  # Internal Server Error
        "502",  # Bad Gateway
        "503",  # Service Unavailable
        "504",  # Gateway Timeout
    }
)


class HTTPErrorClassifier(ABC):
    """Base error classifier with HTTP status code classification.

    Subclasses must implement `is_retriable()` and `get_error_details()`
    with their client-specific exception handling.

    Attributes:
        retriable_http_codes: Set of HTTP status codes considered retriable.
            Defaults to 429, 500, 502, 503, 504.
    """

    retriable_http_codes: frozenset[str] = RETRIABLE_HTTP_STATUS_CODES

    def is_retriable_http_status(self, status: str | int | None) -> bool:
        """Check if an HTTP status code indicates a retriable error.

        Args:
            status: HTTP status code as string or int.

        Returns:
            True for throttling and 5xx server errors, False for other 4xx
            client errors, False for unknown status codes (fail fast).
        """
        status_str = str(status)

        if status_str in self.retriable_http_codes:
            return True

        # 4xx errors are NOT retriable (client errors)
        if status_str.startswith("4"):
            return False

        # Unknown - default to not retriable (fail fast)
        return False

    @abstractmethod
    def is_retriable(self, exc: BaseException) -> bool:
        """Determine if an exception should trigger a retry.

        Args:
            exc: The exception to classify.

        Returns:
            True if retriable, False otherwise.
        """

    @abstractmethod
    def get_error_details(self, exc: BaseException) -> dict[str, Any]:
        """Extract structured error details for logging.

        Args:
            exc: The exception to extract details from.

        Returns:
            Dictionary with error details for structured logging.
        """


def create_retry_logger(
    logger: logging.Logger,
    get_error_details: Callable[[BaseException], dict[str, Any]] | None = None,
    message: str = "Operation failed, retrying",
) -> Callable[[Any], None]:
    """Create a retry logging callback for tenacity.

    The callback is suitable for tenacity's `before_sleep` parameter. It logs
    retry attempts with attempt number, wait time, and error details.

    Args:
        logger: Logger instance to use for logging.
        get_error_details: Optional function to extract additional error
            details from exceptions.
        message: Log message template.

    Returns:
        Callback function for tenacity's before_sleep parameter.
    """

    def log_retry(retry_state: Any) -> None:
        if retry_state.outcome is None or not retry_state.outcome.failed:
            return

        exc = retry_state.outcome.exception()
        wait_time = retry_state.next_action.sleep if retry_state.next_action else 0

        extra: dict[str, Any] = {
            "attempt": retry_state.attempt_number,
            "wait_seconds": round(wait_time, 2),
            "error_type": type(exc).__name__,
        }

        if get_error_details is not None:
            extra.update(get_error_details(exc))

        logger.warning(message, extra=extra)

    return log_retry


class RetryWithBackoff:
    """Retry utility with exponential backoff and structured logging.

    Attributes:
        max_attempts: Maximum number of attempts (default: 3).
        wait_min: Minimum wait time between retries in seconds (default: 0.5).
        wait_max: Maximum wait time between retries in seconds (default: 5.0).
        retry_exceptions: Tuple of exception types to retry on.
        logger: Logger instance for structured logging.

    Example:
        ```python
        retry = RetryWithBackoff(max_attempts=3, retry_exceptions=(OperationalError,))
        row = retry.call(conn.execute, statement)
        ```

    Note:
        Unexpected exceptions (TypeError, AttributeError, KeyError) are never
        retried.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        wait_min: float = 0.5,
        wait_max: float = 5.0,
        retry_exceptions: tuple[type[Exception], ...] = (Exception,),
        logger: logging.Logger | None = None,
    ) -> None:
        self.max_attempts = max_attempts
        self.wait_min = wait_min
        self.wait_max = wait_max
        self.retry_exceptions = retry_exceptions
        self.logger = logger or logging.getLogger("reconciler.retry")

    @staticmethod
    def _log_retry(
        retry_state: Any,
        logger: logging.Logger,
        max_attempts: int,
    ) -> None:
        """Log callback for retry attempts."""
        if retry_state.outcome is None or not retry_state.outcome.failed:
            return

        exception = retry_state.outcome.exception()
        wait_time = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            "Retry attempt failed, retrying",
            extra={
                "attempt": retry_state.attempt_number,
                "max_attempts": max_attempts,
                "wait_seconds": wait_time,
                "error": str(exception),
                "error_type": type(exception).__name__,
            },
        )

    def call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call a function with retry logic.

        Args:
            func: Function to call with retry logic.
            *args: Positional arguments to pass to func.
            **kwargs: Keyword arguments to pass to func.

        Returns:
            Result of func(*args, **kwargs).

        Raises:
            Exception: The last exception once all attempts fail, or any
                exception outside `retry_exceptions` immediately.
        """
        retry = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(min=self.wait_min, max=self.wait_max),
            retry=retry_if_exception_type(self.retry_exceptions)
            & retry_if_not_exception_type(_PROGRAMMING_ERRORS),
            before_sleep=partial(self._log_retry, logger=self.logger, max_attempts=self.max_attempts),
            reraise=True,
        )

        try:
            result: T = retry(func, *args, **kwargs)
            return result
        except _PROGRAMMING_ERRORS as e:
            # Programming errors are never retried
            self.logger.exception(
                "Unexpected error, not retrying",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            raise
