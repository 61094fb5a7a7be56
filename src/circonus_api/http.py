import asyncio
import threading
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx

from circonus_api.auth import apply_auth_headers
from circonus_api.backoff import (
    EXPONENTIAL_BACKOFF_MAX_WAIT,
    EXPONENTIAL_BACKOFF_MIN_WAIT,
    BackoffMode,
    default_random,
    interval_for_attempt,
    jittered_wait,
    transport_wait,
)
from circonus_api.config import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_RETRY_DELAY,
    DEFAULT_MIN_RETRY_DELAY,
    APIConfig,
    Duration,
    HookCallback,
    parse_duration,
    resolve_logger,
    resolve_tls_verify,
)
from circonus_api.errors import (
    ApiError,
    NetworkError,
    RequestCancelledError,
    error_for_status,
    is_retryable_status,
)
from circonus_api.paths import build_request_url

# Each request gets a fresh connection; the API is a low volume control plane.
_NO_KEEPALIVE_LIMITS = httpx.Limits(max_keepalive_connections=0, keepalive_expiry=0)


@dataclass(frozen=True)
class TransportPolicy:
    max_retries: int
    min_wait: float
    max_wait: float

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


EXPONENTIAL_BACKOFF_POLICY = TransportPolicy(
    max_retries=0,
    min_wait=EXPONENTIAL_BACKOFF_MIN_WAIT,
    max_wait=EXPONENTIAL_BACKOFF_MAX_WAIT,
)


def standard_policy(config: APIConfig) -> TransportPolicy:
    if config.disable_retries:
        max_retries = 0
    elif config.max_retries is None:
        max_retries = DEFAULT_MAX_RETRIES
    else:
        max_retries = config.max_retries
    return TransportPolicy(
        max_retries=max_retries,
        min_wait=_policy_delay(config.min_retry_delay, DEFAULT_MIN_RETRY_DELAY),
        max_wait=_policy_delay(config.max_retry_delay, DEFAULT_MAX_RETRY_DELAY),
    )


def _policy_delay(value: Optional[Duration], default: float) -> float:
    return default if value is None else parse_duration(value)
    return TransportPolicy(max_retries=max_retries, min_wait=min_wait, max_wait=max_wait)


class HttpClient:
    def __init__(self, config: APIConfig, transport: Optional[httpx.BaseTransport] = None) -> None:
        self._init_state(config)
        self._client = httpx.Client(
            timeout=config.timeout,
            headers=self._default_headers(),
            verify=resolve_tls_verify(config.url, config.tls_context, config.ca_cert),
            limits=_NO_KEEPALIVE_LIMITS,
            transport=transport,
        )

    def _init_state(self, config: APIConfig) -> None:
        self._config = config
        self._logger = resolve_logger(config.logger, config.debug)
        self._rng = config.rng if config.rng is not None else default_random()
        self._standard_policy = standard_policy(config)
        self._mode = BackoffMode.STANDARD
        self._mode_lock = threading.Lock()

    def _default_headers(self) -> dict:
        return {
            "Accept": "application/json",
            "Accept-Encoding": "identity",
            "Cache-Control": "no-store",
            "User-Agent": self._config.user_agent_value(),
        }

    def close(self) -> None:
        self._client.close()

    @property
    def backoff_mode(self) -> BackoffMode:
        with self._mode_lock:
            return self._mode

    def set_backoff_mode(self, mode: BackoffMode) -> None:
        with self._mode_lock:
            self._mode = mode

    def transport_policy(self) -> TransportPolicy:
        if self.backoff_mode is BackoffMode.EXPONENTIAL_BACKOFF:
            return EXPONENTIAL_BACKOFF_POLICY
        return self._standard_policy

    def request(
        self,
        method: str,
        path: str,
        content: Optional[bytes] = None,
        *,
        deadline: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> bytes:
        url = build_request_url(self._config.url, path)
        normalized_method = method.upper()
        # The mode is read once; toggling it affects the next call only.
        policy = self.transport_policy()
        deadline_at = self._deadline_at(deadline)

        attempt = 0
        while True:
            if cancel is not None and cancel.is_set():
                raise RequestCancelledError(f"{normalized_method} {url} cancelled")
            try:
                return self._call(normalized_method, url, content, policy, deadline_at, cancel)
            except (ApiError, NetworkError) as exc:
                wait = self._outer_retry_wait(exc, attempt, deadline_at)
                if wait is None:
                    raise
                self._announce_outer_retry(normalized_method, url, attempt, wait, exc)
                self._sleep(wait, cancel, exc)
                attempt += 1

    def _call(
        self,
        method: str,
        url: str,
        content: Optional[bytes],
        policy: TransportPolicy,
        deadline_at: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> bytes:
        headers = self._request_headers(content)

        for attempt in range(policy.max_attempts):
            self._emit_request(method, url, attempt, policy, headers)
            try:
                response = self._client.request(method, url, content=content, headers=headers)
            except httpx.RequestError as exc:
                error = NetworkError(f"Circonus API call - {method} {url}: {exc}")
                delay = self._transport_retry_wait(attempt, policy, deadline_at)
                if delay is None:
                    raise error from exc
                self._announce_transport_retry(method, url, attempt, policy, delay, str(exc), None)
                self._sleep(delay, cancel, error)
                continue

            self._emit_response(method, url, attempt, policy, response)
            if is_retryable_status(response.status_code):
                delay = self._transport_retry_wait(attempt, policy, deadline_at, response)
                if delay is not None:
                    detail = response.text.strip()
                    self._announce_transport_retry(
                        method,
                        url,
                        attempt,
                        policy,
                        delay,
                        f"- response: {response.status_code} {detail}",
                        response.status_code,
                    )
                    self._sleep(delay, cancel, error_for_status(response.status_code, detail))
                    continue

            return self._read_body(response)

        raise NetworkError(f"Circonus API call - {method} {url}: request failed after retries")

    def _request_headers(self, content: Optional[bytes]) -> dict:
        headers = apply_auth_headers(
            None,
            self._config.token_key,
            self._config.token_app,
            self._config.token_account_id,
        )
        if content:
            headers["Content-Type"] = "application/json"
            self._logger.debug("[DEBUG] sending json (%s)", content.decode("utf-8", errors="replace"))
        return headers

    def _read_body(self, response: httpx.Response) -> bytes:
        if 200 <= response.status_code < 300:
            return response.content

        error = error_for_status(response.status_code, response.text.strip())
        self._logger.debug("%s", error)
        raise error

    def _deadline_at(self, deadline: Optional[float]) -> Optional[float]:
        budget = deadline if deadline is not None else self._config.max_retry_duration
        if budget is None:
            return None
        return time.monotonic() + budget

    @staticmethod
    def _fits_deadline(wait: float, deadline_at: Optional[float]) -> bool:
        return deadline_at is None or time.monotonic() + wait <= deadline_at

    def _transport_retry_wait(
        self,
        attempt: int,
        policy: TransportPolicy,
        deadline_at: Optional[float],
        response: Optional[httpx.Response] = None,
    ) -> Optional[float]:
        if attempt >= policy.max_retries:
            return None
        delay = transport_wait(attempt, policy.min_wait, policy.max_wait, response)
        if not self._fits_deadline(delay, deadline_at):
            return None
        return delay

    def _outer_retry_wait(
        self,
        exc: Exception,
        attempt: int,
        deadline_at: Optional[float],
    ) -> Optional[int]:
        if self._config.disable_retries:
            return None
        if isinstance(exc, ApiError) and not exc.retryable:
            return None
        wait = jittered_wait(interval_for_attempt(attempt), self._rng)
        if not self._fits_deadline(wait, deadline_at):
            return None
        return wait

    def _sleep(self, seconds: float, cancel: Optional[threading.Event], last_error: Exception) -> None:
        if cancel is None:
            time.sleep(seconds)
            return
        if cancel.wait(seconds):
            raise RequestCancelledError(
                f"Circonus API call cancelled while retrying: {last_error}",
                last_error=last_error,
            ) from last_error

    def _announce_outer_retry(
        self,
        method: str,
        url: str,
        attempt: int,
        wait: int,
        exc: Exception,
    ) -> None:
        status_code = exc.status_code if isinstance(exc, ApiError) else None
        self._emit(
            self._config.on_retry,
            method=method,
            url=url,
            scope="call",
            attempt=attempt + 1,
            next_attempt=attempt + 2,
            max_attempts=None,
            delay_seconds=wait,
            reason=_retry_reason(status_code),
            status_code=status_code,
        )
        self._logger.warning("Circonus API call failed %s, retrying in %d seconds.", exc, wait)

    def _announce_transport_retry(
        self,
        method: str,
        url: str,
        attempt: int,
        policy: TransportPolicy,
        delay: float,
        detail: str,
        status_code: Optional[int],
    ) -> None:
        self._emit(
            self._config.on_retry,
            method=method,
            url=url,
            scope="transport",
            attempt=attempt + 1,
            next_attempt=attempt + 2,
            max_attempts=policy.max_attempts,
            delay_seconds=delay,
            reason=_retry_reason(status_code),
            status_code=status_code,
        )
        self._logger.debug(
            "[DEBUG] %s %s attempt %d/%d failed %s, retrying in %.2fs",
            method,
            url,
            attempt + 1,
            policy.max_attempts,
            detail,
            delay,
        )

    def _emit_request(
        self,
        method: str,
        url: str,
        attempt: int,
        policy: TransportPolicy,
        headers: Mapping[str, str],
    ) -> None:
        self._emit(
            self._config.on_request,
            method=method,
            url=url,
            attempt=attempt + 1,
            max_attempts=policy.max_attempts,
            headers=_redact_headers(headers),
        )

    def _emit_response(
        self,
        method: str,
        url: str,
        attempt: int,
        policy: TransportPolicy,
        response: httpx.Response,
    ) -> None:
        self._emit(
            self._config.on_response,
            method=method,
            url=url,
            attempt=attempt + 1,
            max_attempts=policy.max_attempts,
            status_code=response.status_code,
            headers=_redact_headers(response.headers),
        )

    @staticmethod
    def _emit(callback: Optional[HookCallback], **event: Any) -> None:
        # Hook exceptions propagate to the caller.
        if callback is not None:
            callback(event)


class AsyncHttpClient(HttpClient):
    def __init__(
        self,
        config: APIConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._init_state(config)
        self._client = httpx.AsyncClient(
            timeout=config.timeout,
            headers=self._default_headers(),
            verify=resolve_tls_verify(config.url, config.tls_context, config.ca_cert),
            limits=_NO_KEEPALIVE_LIMITS,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        content: Optional[bytes] = None,
        *,
        deadline: Optional[float] = None,
    ) -> bytes:
        url = build_request_url(self._config.url, path)
        normalized_method = method.upper()
        policy = self.transport_policy()
        deadline_at = self._deadline_at(deadline)

        attempt = 0
        while True:
            try:
                return await self._call(normalized_method, url, content, policy, deadline_at)
            except (ApiError, NetworkError) as exc:
                wait = self._outer_retry_wait(exc, attempt, deadline_at)
                if wait is None:
                    raise
                self._announce_outer_retry(normalized_method, url, attempt, wait, exc)
                await asyncio.sleep(wait)
                attempt += 1

    async def _call(
        self,
        method: str,
        url: str,
        content: Optional[bytes],
        policy: TransportPolicy,
        deadline_at: Optional[float] = None,
    ) -> bytes:
        headers = self._request_headers(content)

        for attempt in range(policy.max_attempts):
            self._emit_request(method, url, attempt, policy, headers)
            try:
                response = await self._client.request(method, url, content=content, headers=headers)
            except httpx.RequestError as exc:
                delay = self._transport_retry_wait(attempt, policy, deadline_at)
                if delay is None:
                    raise NetworkError(f"Circonus API call - {method} {url}: {exc}") from exc
                self._announce_transport_retry(method, url, attempt, policy, delay, str(exc), None)
                await asyncio.sleep(delay)
                continue

            self._emit_response(method, url, attempt, policy, response)
            if is_retryable_status(response.status_code):
                delay = self._transport_retry_wait(attempt, policy, deadline_at, response)
                if delay is not None:
                    self._announce_transport_retry(
                        method,
                        url,
                        attempt,
                        policy,
                        delay,
                        f"- response: {response.status_code} {response.text.strip()}",
                        response.status_code,
                    )
                    await asyncio.sleep(delay)
                    continue

            return self._read_body(response)

        raise NetworkError(f"Circonus API call - {method} {url}: request failed after retries")


_SENSITIVE_HEADER_NAMES = frozenset({"x-circonus-auth-token", "authorization", "proxy-authorization"})


def _redact_headers(headers: Mapping[str, str]) -> dict:
    return {
        name: "[REDACTED]" if name.lower() in _SENSITIVE_HEADER_NAMES else value
        for name, value in headers.items()
    }


def _retry_reason(status_code: Optional[int]) -> str:
    if status_code is None:
        return "network_error"
    if status_code == 429:
        return "rate_limit"
    return "http_5xx"
