"""
Error taxonomy for Zoom API calls.

The sync engine decides what to do purely from the exception type:
transient errors were already retried, expired auth gets one refresh,
invalid auth is fatal for the job, unsupported endpoints trigger the
basic-endpoint fallback.
"""


class ZoomApiError(Exception):
    """Base exception for Zoom API errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: str | None = None,
        operation: str | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.operation = operation
        self.response_data = response_data or {}


class TransientProviderError(ZoomApiError):
    """Timeout, 5xx or 429 that survived every retry."""


class AuthExpiredError(ZoomApiError):
    """401 from the API; the bearer token should be refreshed once."""


class AuthInvalidError(ZoomApiError):
    """Credentials cannot be refreshed; the user must reconnect."""

    requires_reconnection = True


class EndpointUnsupportedError(ZoomApiError):
    """Endpoint rejected this request (400/403/404/422), e.g. no report access."""


class ProviderRequestError(ZoomApiError):
    """Any other non-retryable client error."""
