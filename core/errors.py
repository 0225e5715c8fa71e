"""
Error Taxonomy

Every failure the price backend can meet falls into one of these kinds:

    ValidationError      Malformed caller input (bad address). Fails immediately, never retried.
    NetworkError         Connection failure, 5xx or 429 after all retries.
    RequestTimeoutError  An attempt exceeded the per-attempt timeout after all retries.
    UpstreamDataError    A vendor payload is missing required fields. The source yields
                         no usable price and the next source is tried.
    ConfigurationError   An optional API key is missing. The source is skipped silently.
    SourcesUnavailableError
                         A batch priced nothing and every identifier met a source
                         failure (total upstream outage). Raised by batch pricing so
                         streams can report it.

Adapters and the orchestrator return None for the ordinary "no price available"
outcome. Only caller-supplied malformed input, and a batch that meets a total
outage, is raised to the caller.
"""

from typing import Optional


class PriceServiceError(Exception):
    """
    Base class for all price backend errors.

    Attributes:
        kind: Normalized error kind (matches the class name)
        message: Human readable description
        status: HTTP status code when the error came from a response
    """

    kind = "PriceServiceError"

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class ValidationError(PriceServiceError):
    kind = "ValidationError"


class NetworkError(PriceServiceError):
    kind = "NetworkError"


class RequestTimeoutError(NetworkError):
    kind = "TimeoutError"


class HTTPError(PriceServiceError):
    """Non-retryable HTTP error response (4xx other than validation and 429)."""

    kind = "HTTPError"


class UpstreamDataError(PriceServiceError):
    kind = "UpstreamDataError"


class ConfigurationError(PriceServiceError):
    kind = "ConfigurationError"


class SourcesUnavailableError(NetworkError):
    kind = "SourcesUnavailableError"


ERROR_KINDS = {
    cls.kind: cls
    for cls in (
        PriceServiceError,
        ValidationError,
        NetworkError,
        RequestTimeoutError,
        HTTPError,
        UpstreamDataError,
        ConfigurationError,
        SourcesUnavailableError,
    )
}


def error_from_kind(kind: str, message: str, status: Optional[int] = None) -> PriceServiceError:
    """
    Rebuild a typed exception from a normalized error kind.

    Unknown kinds map to the PriceServiceError base class.

    Example:
        >>> err = error_from_kind("TimeoutError", "Request timeout after 15s")
        >>> isinstance(err, NetworkError)
        True
    """
    return ERROR_KINDS.get(kind, PriceServiceError)(message, status=status)
