"""
Service layer exceptions.

Fetch failures carry the name of the source that produced them so the
fallback path and the feed health surface can attribute them.
"""


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, source_name: str | None = None):
        self.source_name = source_name
        super().__init__(message)


class ExternalApiError(ServiceError):
    """Network or connectivity failure talking to an external source."""

    pass


class RequestTimeoutError(ExternalApiError):
    """Request timed out."""

    def __init__(self, source_name: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Request to '{source_name}' timed out after {timeout}s",
            source_name=source_name,
        )


class HttpStatusError(ServiceError):
    """External source answered with a non-2xx status."""

    def __init__(self, source_name: str, status_code: int, detail: str = ""):
        self.status_code = status_code
        msg = f"HTTP {status_code} from '{source_name}'"
        if detail:
            msg += f": {detail}"
        super().__init__(msg, source_name=source_name)


class InvalidResponseError(ServiceError):
    """Response could not be parsed or failed validation."""

    pass


class ResponseTooLargeError(InvalidResponseError):
    """Response body exceeded the configured size cap."""

    def __init__(self, source_name: str, limit: int):
        self.limit = limit
        super().__init__(
            f"Response from '{source_name}' exceeded {limit} bytes",
            source_name=source_name,
        )


class CircuitOpenError(ServiceError):
    """Circuit breaker is open, request blocked."""

    def __init__(self, source_name: str, reset_after_seconds: float):
        self.reset_after_seconds = reset_after_seconds
        super().__init__(
            f"Circuit breaker open for '{source_name}', "
            f"retry after {reset_after_seconds:.1f}s",
            source_name=source_name,
        )


class CacheError(ServiceError):
    """Cache load failed and there was no previous value to serve."""

    pass


class DataRefreshError(Exception):
    """A refresh cycle failed on a database read or write."""

    def __init__(self, service_name: str, message: str):
        self.service_name = service_name
        super().__init__(f"{service_name} refresh failed: {message}")
