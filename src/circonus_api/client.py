import json
import logging
import os
import ssl
import threading
from typing import Any, Mapping, Optional, Union

import httpx

from circonus_api.backoff import BackoffMode
from circonus_api.config import (
    DEFAULT_API_APP,
    DEFAULT_API_URL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_RETRY_DELAY,
    DEFAULT_MIN_RETRY_DELAY,
    DEFAULT_TIMEOUT,
    APIConfig,
    Duration,
    normalize_api_url,
    parse_duration,
    resolve_logger,
)
from circonus_api.errors import MissingTokenError
from circonus_api.http import HttpClient
from circonus_api.paths import FilterValues, build_search_params, with_query

Body = Union[bytes, str, Mapping[str, Any], list, None]


class CirconusClient:
    def __init__(
        self,
        token_key: Optional[str] = None,
        config: Optional[APIConfig] = None,
        url: Optional[str] = None,
        token_app: Optional[str] = None,
        token_account_id: Optional[str] = None,
        tls_context: Optional[ssl.SSLContext] = None,
        max_retries: Optional[int] = None,
        disable_retries: Optional[bool] = None,
        timeout: Optional[float] = None,
        debug: Optional[bool] = None,
        logger: Optional[logging.Logger] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        resolved_config = _resolve_api_config(
            token_key=token_key,
            config=config,
            url=url,
            token_app=token_app,
            token_account_id=token_account_id,
            tls_context=tls_context,
            max_retries=max_retries,
            disable_retries=disable_retries,
            timeout=timeout,
            debug=debug,
            logger=logger,
        )
        self._config = resolved_config
        self._http = HttpClient(resolved_config, transport=transport)

    @property
    def url(self) -> str:
        return self._config.url

    def close(self) -> None:
        self._http.close()

    def enable_exponential_backoff(self) -> None:
        self._http.set_backoff_mode(BackoffMode.EXPONENTIAL_BACKOFF)

    def disable_exponential_backoff(self) -> None:
        self._http.set_backoff_mode(BackoffMode.STANDARD)

    @property
    def use_exponential_backoff(self) -> bool:
        return self._http.backoff_mode is BackoffMode.EXPONENTIAL_BACKOFF

    def request(
        self,
        method: str,
        path: str,
        data: Body = None,
        *,
        deadline: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> bytes:
        return self._http.request(
            method,
            path,
            _encode_body(data),
            deadline=deadline,
            cancel=cancel,
        )

    def request_json(self, method: str, path: str, data: Body = None, **kwargs: Any) -> Any:
        return _decode_body(self.request(method, path, data, **kwargs))

    def get(self, path: str, **kwargs: Any) -> bytes:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, data: Body = None, **kwargs: Any) -> bytes:
        return self.request("POST", path, data, **kwargs)

    def put(self, path: str, data: Body = None, **kwargs: Any) -> bytes:
        return self.request("PUT", path, data, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> bytes:
        return self.request("DELETE", path, **kwargs)

    def search(
        self,
        resource: str,
        query: Optional[str] = None,
        filters: Optional[Mapping[str, FilterValues]] = None,
        **kwargs: Any,
    ) -> Any:
        path = with_query(resource, build_search_params(query, filters))
        return self.request_json("GET", path, **kwargs)

    def __enter__(self) -> "CirconusClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _encode_body(data: Body) -> Optional[bytes]:
    if data is None:
        return None
    if isinstance(data, bytes):
        return data
    if isinstance(data, str):
        return data.encode("utf-8")
    return json.dumps(data).encode("utf-8")


def _decode_body(body: bytes) -> Any:
    if not body:
        return None
    return json.loads(body)


def _coalesce(*values: Optional[Any]) -> Optional[Any]:
    for value in values:
        if value is not None:
            return value
    return None


def _env_optional_str(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


def _parse_env_timeout(name: str) -> Optional[float]:
    raw = _env_optional_str(name)
    if raw is None:
        return None
    try:
        timeout = float(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {name}: expected a positive number, got {raw!r}.") from exc
    if timeout <= 0:
        raise ValueError(f"Invalid {name}: expected a positive number, got {raw!r}.")
    return timeout


def _parse_env_retries(name: str) -> Optional[int]:
    raw = _env_optional_str(name)
    if raw is None:
        return None
    try:
        retries = int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {name}: expected a non-negative integer, got {raw!r}.") from exc
    if retries < 0:
        raise ValueError(f"Invalid {name}: expected a non-negative integer, got {raw!r}.")
    return retries


def _resolve_delay(
    label: str,
    value: Optional[Duration],
    default: float,
    logger: logging.Logger,
) -> float:
    if value is None or value == "":
        return default
    try:
        return parse_duration(value)
    except ValueError as exc:
        logger.error("[ERR] %s (%s): %s", label, value, exc)
        return default


def _resolve_max_retries(value: Optional[int], logger: logging.Logger) -> int:
    if value is None:
        return DEFAULT_MAX_RETRIES
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        logger.error("[ERR] max retries (%s): expected a non-negative integer", value)
        return DEFAULT_MAX_RETRIES
    return value


def _resolve_api_config(
    *,
    token_key: Optional[str],
    config: Optional[APIConfig],
    url: Optional[str],
    token_app: Optional[str],
    token_account_id: Optional[str],
    tls_context: Optional[ssl.SSLContext],
    max_retries: Optional[int],
    disable_retries: Optional[bool],
    timeout: Optional[float],
    debug: Optional[bool],
    logger: Optional[logging.Logger],
) -> APIConfig:
    env_token_key = _env_optional_str("CIRCONUS_API_TOKEN")
    env_token_app = _env_optional_str("CIRCONUS_API_APP")
    env_url = _env_optional_str("CIRCONUS_API_URL")
    env_account_id = _env_optional_str("CIRCONUS_API_ACCOUNT_ID")
    env_timeout = _parse_env_timeout("CIRCONUS_API_TIMEOUT")
    env_max_retries = _parse_env_retries("CIRCONUS_API_MAX_RETRIES")

    base_config = config
    resolved_token_key = _coalesce(
        token_key,
        base_config.token_key if base_config else None,
        env_token_key,
    )
    if not resolved_token_key:
        raise MissingTokenError(
            "Circonus API Token is required. Provide token_key/config or set CIRCONUS_API_TOKEN."
        )

    resolved_debug = bool(_coalesce(debug, base_config.debug if base_config else None, False))
    resolved_logger = resolve_logger(
        _coalesce(logger, base_config.logger if base_config else None),
        resolved_debug,
    )

    resolved_url = normalize_api_url(
        _coalesce(
            url,
            base_config.url if base_config else None,
            env_url,
        )
        or DEFAULT_API_URL
    )
    resolved_token_app = (
        _coalesce(
            token_app,
            base_config.token_app if base_config else None,
            env_token_app,
        )
        or DEFAULT_API_APP
    )
    resolved_account_id = _coalesce(
        token_account_id,
        base_config.token_account_id if base_config else None,
        env_account_id,
    )
    resolved_timeout = _coalesce(
        timeout,
        base_config.timeout if base_config else None,
        env_timeout,
        DEFAULT_TIMEOUT,
    )
    resolved_disable_retries = bool(
        _coalesce(disable_retries, base_config.disable_retries if base_config else None, False)
    )
    resolved_max_retries = _resolve_max_retries(
        _coalesce(
            max_retries,
            base_config.max_retries if base_config else None,
            env_max_retries,
        ),
        resolved_logger,
    )
    if resolved_disable_retries:
        resolved_max_retries = 0
    resolved_min_retry_delay = _resolve_delay(
        "min retry delay",
        base_config.min_retry_delay if base_config else None,
        DEFAULT_MIN_RETRY_DELAY,
        resolved_logger,
    )
    resolved_max_retry_delay = _resolve_delay(
        "max retry delay",
        base_config.max_retry_delay if base_config else None,
        DEFAULT_MAX_RETRY_DELAY,
        resolved_logger,
    )

    return APIConfig(
        token_key=resolved_token_key,
        url=resolved_url,
        token_app=resolved_token_app,
        token_account_id=resolved_account_id,
        tls_context=_coalesce(tls_context, base_config.tls_context if base_config else None),
        ca_cert=base_config.ca_cert if base_config else None,
        min_retry_delay=resolved_min_retry_delay,
        max_retry_delay=resolved_max_retry_delay,
        max_retries=resolved_max_retries,
        disable_retries=resolved_disable_retries,
        debug=resolved_debug,
        logger=resolved_logger,
        timeout=resolved_timeout,
        max_retry_duration=base_config.max_retry_duration if base_config else None,
        rng=base_config.rng if base_config else None,
        user_agent=base_config.user_agent if base_config else None,
        on_request=base_config.on_request if base_config else None,
        on_response=base_config.on_response if base_config else None,
        on_retry=base_config.on_retry if base_config else None,
    )
