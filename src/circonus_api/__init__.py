import logging

from circonus_api.async_client import AsyncCirconusClient
from circonus_api.backoff import BACKOFF_INTERVALS, BackoffMode, jittered_wait
from circonus_api.client import CirconusClient
from circonus_api.config import APIConfig, normalize_api_url, parse_duration
from circonus_api.errors import (
    ApiError,
    AuthenticationError,
    BadRequestError,
    CirconusAPIError,
    ConfigurationError,
    InvalidPathError,
    MissingTokenError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RequestCancelledError,
    ServerError,
)
from circonus_api.paths import build_search_params
from circonus_api.version import __version__

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "APIConfig",
    "ApiError",
    "AsyncCirconusClient",
    "AuthenticationError",
    "BACKOFF_INTERVALS",
    "BackoffMode",
    "BadRequestError",
    "CirconusAPIError",
    "CirconusClient",
    "ConfigurationError",
    "InvalidPathError",
    "MissingTokenError",
    "NetworkError",
    "NotFoundError",
    "RateLimitError",
    "RequestCancelledError",
    "ServerError",
    "__version__",
    "build_search_params",
    "jittered_wait",
    "normalize_api_url",
    "parse_duration",
]
