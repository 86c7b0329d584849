"""
Error taxonomy for the enrichment engines.

Transport and API errors are transient and retried by the retry policy;
everything else is a permanent failure for the unit of work it came from.
"""


class EnrichmentError(Exception):
    """Base class for every error raised by collabsheet."""
    pass


class TransportError(EnrichmentError):
    """Network failure reaching an LLM provider (connection, DNS, timeout)."""
    pass


class ApiError(EnrichmentError):
    """Provider answered with a non-success status or a malformed envelope."""

    def __init__(self, message: str, status_code: int = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ExtractionError(EnrichmentError):
    """Model text did not contain the expected structure."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ValidationError(EnrichmentError):
    """Input row or pair is missing data the analysis needs."""
    pass


class ConfigurationError(EnrichmentError):
    """Missing credentials, sheets or required headers."""
    pass


class RetryExhaustedError(EnrichmentError):
    """All retry attempts for a transient failure were used up."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error
