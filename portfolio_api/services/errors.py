"""
Service layer exceptions.
"""


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, service_id: str | None = None):
        self.service_id = service_id
        super().__init__(message)


class ConfigurationError(ServiceError):
    """Settings are missing or invalid."""

    pass


class RequestTimeoutError(ServiceError):
    """Request timed out."""

    def __init__(self, service_id: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Request to service '{service_id}' timed out after {timeout}s",
            service_id=service_id,
        )


class RateLimitError(ServiceError):
    """Rate limit exceeded."""

    def __init__(self, service_id: str, retry_after: float | None = None):
        self.retry_after = retry_after
        msg = f"Rate limit exceeded for service '{service_id}'"
        if retry_after:
            msg += f", retry after {retry_after:.1f}s"
        super().__init__(msg, service_id=service_id)


class UpstreamStatusError(ServiceError):
    """Upstream answered with a status or payload that will not improve on retry."""

    def __init__(self, service_id: str, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(
            f"HTTP {status_code} from service '{service_id}': {body[:200]}",
            service_id=service_id,
        )


class ServiceUnavailableError(ServiceError):
    """Service is temporarily unavailable."""

    pass
