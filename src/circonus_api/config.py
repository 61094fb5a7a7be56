import itertools
import logging
import random
import re
import ssl
import sys
import warnings
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union
from urllib.parse import urlsplit

import httpx

from circonus_api.errors import ConfigurationError
from circonus_api.version import __version__

DEFAULT_API_URL = "https://api.circonus.com/v2"
DEFAULT_API_APP = "circonus-apiclient-python"
DEFAULT_API_VERSION_PREFIX = "/v2"
DEFAULT_TIMEOUT = 30.0
DEFAULT_MIN_RETRY_DELAY = 1.0
DEFAULT_MAX_RETRY_DELAY = 15.0
# 1 + DEFAULT_MAX_RETRIES transport attempts per call
DEFAULT_MAX_RETRIES = 4

PACKAGE_LOGGER_NAME = "circonus_api"

_HOST_PATTERN = re.compile(r"^[A-Za-z0-9._~%:\-]+$")

HookCallback = Callable[[Dict[str, Any]], None]
Duration = Union[str, float, int]


@dataclass(frozen=True)
class APIConfig:
    token_key: str
    url: str = DEFAULT_API_URL
    token_app: str = DEFAULT_API_APP
    token_account_id: Optional[str] = None
    # A full custom TLS context takes precedence over ca_cert.
    tls_context: Optional[ssl.SSLContext] = None
    # Deprecated: CA bundle path or PEM text, use tls_context instead.
    ca_cert: Optional[str] = None
    min_retry_delay: Optional[Duration] = None
    max_retry_delay: Optional[Duration] = None
    max_retries: Optional[int] = None
    disable_retries: bool = False
    debug: bool = False
    logger: Optional[logging.Logger] = None
    timeout: float = DEFAULT_TIMEOUT
    # Bounds the outer retry loop; None retries until success or a fatal error.
    max_retry_duration: Optional[float] = None
    rng: Optional[random.Random] = None
    user_agent: Optional[str] = None
    on_request: Optional[HookCallback] = None
    on_response: Optional[HookCallback] = None
    on_retry: Optional[HookCallback] = None

    def user_agent_value(self) -> str:
        if self.user_agent:
            return self.user_agent
        return f"circonus-apiclient-python/{__version__}"


def normalize_api_url(url: str) -> str:
    normalized = url
    if "/" not in normalized:
        # a bare hostname, assume https and the versioned path prefix
        normalized = f"https://{normalized}{DEFAULT_API_VERSION_PREFIX}"
    elif "://" not in normalized:
        normalized = f"https://{normalized}"
    if normalized.endswith("/"):
        normalized = normalized[:-1]

    try:
        parts = urlsplit(normalized)
        parts.port  # raises ValueError for an out of range port
        httpx.URL(normalized)
    except (ValueError, httpx.InvalidURL) as exc:
        raise ConfigurationError(f"parsing Circonus API URL {url!r}: {exc}") from exc

    if parts.scheme not in ("http", "https"):
        raise ConfigurationError(
            f"parsing Circonus API URL {url!r}: unsupported scheme {parts.scheme!r}"
        )
    if not parts.hostname or not _HOST_PATTERN.match(parts.hostname):
        raise ConfigurationError(f"parsing Circonus API URL {url!r}: invalid host")
    return normalized


_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(value: Duration) -> float:
    """Parse a duration into seconds.

    Strings follow the Go duration grammar (``"1s"``, ``"250ms"``,
    ``"1m30s"``); bare numbers are taken as seconds. Negative durations are
    rejected.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"invalid duration {value!r}: must not be negative")
        return float(value)

    text = value.strip()
    if text.startswith("+"):
        text = text[1:]
    if text == "0":
        return 0.0
    if not text:
        raise ValueError(f"invalid duration {value!r}")

    total = 0.0
    position = 0
    while position < len(text):
        match = _DURATION_PART.match(text, position)
        if match is None:
            raise ValueError(f"invalid duration {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    return total


_debug_logger_ids = itertools.count(1)


def resolve_logger(logger: Optional[logging.Logger], debug: bool) -> logging.Logger:
    """Pick the logger a client writes to.

    A supplied logger always wins. ``debug`` without one gives the client its
    own stdout logger, so the shared ``circonus_api`` logger keeps whatever
    level and handlers the application configured.
    """
    if logger is not None:
        return logger
    if not debug:
        return logging.getLogger(PACKAGE_LOGGER_NAME)

    debug_logger = logging.getLogger(f"{PACKAGE_LOGGER_NAME}.debug.{next(_debug_logger_ids)}")
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(asctime)s %(message)s"))
    debug_logger.addHandler(handler)
    debug_logger.setLevel(logging.DEBUG)
    debug_logger.propagate = False
    return debug_logger


def resolve_tls_verify(
    url: str,
    tls_context: Optional[ssl.SSLContext],
    ca_cert: Optional[str],
) -> Union[ssl.SSLContext, bool]:
    if urlsplit(url).scheme.lower() != "https":
        return True
    if tls_context is not None:
        return tls_context
    if ca_cert:
        warnings.warn(
            "ca_cert is deprecated, use tls_context instead",
            DeprecationWarning,
            stacklevel=3,
        )
        if "-----BEGIN" in ca_cert:
            context = ssl.create_default_context(cadata=ca_cert)
        else:
            context = ssl.create_default_context(cafile=ca_cert)
        context.minimum_version = ssl.TLSVersion.TLSv1_2
        return context
    return True
