from typing import Optional

RETRYABLE_STATUS_CODES = frozenset({0, 429})


class CirconusAPIError(Exception):
    """Base class for client errors."""


class ConfigurationError(CirconusAPIError, ValueError):
    """Raised when the client configuration cannot be used."""


class MissingTokenError(ConfigurationError):
    """Raised when no API token was supplied."""


class InvalidPathError(CirconusAPIError, ValueError):
    """Raised for request paths that cannot be dispatched."""


def is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES or status_code >= 500


class ApiError(CirconusAPIError):
    def __init__(self, message: str, status_code: int, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @property
    def retryable(self) -> bool:
        return is_retryable_status(self.status_code)


class BadRequestError(ApiError):
    """Raised for 400 responses."""


class AuthenticationError(ApiError):
    """Raised when the token or app name is rejected."""


class NotFoundError(ApiError):
    """Raised when a resource cannot be found."""


class RateLimitError(ApiError):
    """Raised when the API rate limit is exceeded."""


class ServerError(ApiError):
    """Raised for 5xx responses, or when no status was received."""


class NetworkError(CirconusAPIError):
    """Raised when a network error occurs."""


class RequestCancelledError(CirconusAPIError):
    def __init__(self, message: str, last_error: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.last_error = last_error


def error_for_status(status_code: int, body: str) -> ApiError:
    message = f"API response code {status_code}: {body}"
    if status_code == 400:
        return BadRequestError(message, status_code=status_code, body=body)
    if status_code in (401, 403):
        return AuthenticationError(message, status_code=status_code, body=body)
    if status_code == 404:
        return NotFoundError(message, status_code=status_code, body=body)
    if status_code == 429:
        return RateLimitError(message, status_code=status_code, body=body)
    if is_retryable_status(status_code):
        return ServerError(message, status_code=status_code, body=body)
    return ApiError(message, status_code=status_code, body=body)
