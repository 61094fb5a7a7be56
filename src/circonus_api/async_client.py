import logging
import ssl
from typing import Any, Mapping, Optional

import httpx

from circonus_api.backoff import BackoffMode
from circonus_api.client import Body, _decode_body, _encode_body, _resolve_api_config
from circonus_api.config import APIConfig
from circonus_api.http import AsyncHttpClient
from circonus_api.paths import FilterValues, build_search_params, with_query


class AsyncCirconusClient:
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
        transport: Optional[httpx.AsyncBaseTransport] = None,
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
        self._http = AsyncHttpClient(resolved_config, transport=transport)

    @property
    def url(self) -> str:
        return self._config.url

    async def close(self) -> None:
        await self._http.close()

    def enable_exponential_backoff(self) -> None:
        self._http.set_backoff_mode(BackoffMode.EXPONENTIAL_BACKOFF)

    def disable_exponential_backoff(self) -> None:
        self._http.set_backoff_mode(BackoffMode.STANDARD)

    @property
    def use_exponential_backoff(self) -> bool:
        return self._http.backoff_mode is BackoffMode.EXPONENTIAL_BACKOFF

    async def request(
        self,
        method: str,
        path: str,
        data: Body = None,
        *,
        deadline: Optional[float] = None,
    ) -> bytes:
        return await self._http.request(method, path, _encode_body(data), deadline=deadline)

    async def request_json(self, method: str, path: str, data: Body = None, **kwargs: Any) -> Any:
        return _decode_body(await self.request(method, path, data, **kwargs))

    async def get(self, path: str, **kwargs: Any) -> bytes:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, data: Body = None, **kwargs: Any) -> bytes:
        return await self.request("POST", path, data, **kwargs)

    async def put(self, path: str, data: Body = None, **kwargs: Any) -> bytes:
        return await self.request("PUT", path, data, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> bytes:
        return await self.request("DELETE", path, **kwargs)

    async def search(
        self,
        resource: str,
        query: Optional[str] = None,
        filters: Optional[Mapping[str, FilterValues]] = None,
        **kwargs: Any,
    ) -> Any:
        path = with_query(resource, build_search_params(query, filters))
        return await self.request_json("GET", path, **kwargs)

    async def __aenter__(self) -> "AsyncCirconusClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
