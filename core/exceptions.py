"""
Custom exceptions for the ingestion pipeline with structured error context.

Every exception carries a context dict for debugging and monitoring and a
short ``error_class`` label that the run aggregator uses to classify unit
failures.

Exception Hierarchy:
    IngestionError (base)
    ├── FetchError
    │   ├── NetworkError          (retryable)
    │   ├── FetchTimeoutError     (retryable)
    │   ├── HttpTransientError    (retryable, 429 / 5xx)
    │   ├── HttpPermanentError    (other 4xx)
    │   └── CircuitOpenError
    ├── ParseError
    │   ├── PayloadParseError     (whole payload, fails the unit)
    │   └── RecordParseError      (single record, skipped)
    ├── ConstraintViolationError
    ├── SchedulerFatalError
    └── RetryableError (mixin)
"""

from typing import Optional, Dict, Any
from datetime import datetime


class IngestionError(Exception):
    """
    Base exception for all ingestion errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (source, unit, url, ...)
        original_exception: The original exception that was caught (if any)
    """

    error_class = "Unknown"

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.utcnow()

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "error_class": self.error_class,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


class RetryableError(IngestionError):
    """
    Mixin for errors that the fetch client retries with backoff and that
    count towards opening the circuit breaker.
    """
    pass


# ============================================================================
# Fetch Errors
# ============================================================================

class FetchError(IngestionError):
    """Base exception for provider fetch failures."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        status_code: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.status_code = status_code
        if status_code is not None:
            self.context["status_code"] = status_code


class NetworkError(RetryableError, FetchError):
    """Connection-level failure (DNS, refused, reset)."""
    error_class = "NetworkError"


class FetchTimeoutError(RetryableError, FetchError):
    """Request exceeded the per-source timeout."""
    error_class = "Timeout"


class HttpTransientError(RetryableError, FetchError):
    """
    HTTP 429 or 5xx response.

    Context should include:
        - url: The endpoint that failed
        - status_code: HTTP status code
        - retry_after: Seconds requested by the provider (429 only)
    """
    error_class = "HttpTransient"

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, context, original_exception, status_code=status_code)
        self.retry_after = retry_after
        if retry_after is not None:
            self.context["retry_after"] = retry_after


class HttpPermanentError(FetchError):
    """4xx response other than 429. Never retried."""
    error_class = "HttpPermanent"


class CircuitOpenError(FetchError):
    """Call rejected without a network attempt because the breaker is open."""
    error_class = "CircuitOpen"


# ============================================================================
# Parse Errors
# ============================================================================

class ParseError(IngestionError):
    """Base exception for malformed or unexpected provider data."""
    error_class = "ParseError"


class PayloadParseError(ParseError):
    """
    The payload as a whole cannot be parsed (invalid JSON, wrong top-level
    shape, missing item collection). Fails the unit.
    """
    pass


class RecordParseError(ParseError):
    """A single item cannot yield a candidate record. The item is skipped."""
    pass


# ============================================================================
# Load / Scheduling Errors
# ============================================================================

class ConstraintViolationError(IngestionError):
    """
    Write failed on a uniqueness or referential constraint even after the
    idempotency race fallback.

    Context should include:
        - table_name: Name of the table
        - batch_size: Number of rows in the failed batch
    """
    error_class = "ConstraintViolation"


class SchedulerFatalError(IngestionError):
    """No starting unit can be computed for a source. Fails the source."""
    error_class = "SchedulerFatal"


TRANSIENT_ERROR_CLASSES = frozenset({
    NetworkError.error_class,
    FetchTimeoutError.error_class,
    HttpTransientError.error_class,
    CircuitOpenError.error_class,
})
