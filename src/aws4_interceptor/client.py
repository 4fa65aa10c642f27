# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import json
import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field, replace
from types import TracebackType
from typing import Any, Final, Self

import aiohttp
from yarl import URL

from .exceptions import AWS4InterceptorError, MissingURLError
from .interceptor import RequestInterceptor
from .normalizer import build_url, combine_urls, get_transformers, is_absolute_url
from .request import (
    DEFAULT_HEADER_GROUPS,
    Headers,
    ParamsSerializer,
    RequestConfig,
    TransformRequest,
    default_headers,
    transform_json,
)

logger: Final = logging.getLogger(__name__)


@dataclass(kw_only=True)
class HTTPResponse:
    status: int
    headers: dict[str, str]
    data: Any
    """Decoded JSON body when the response is JSON, otherwise the text body."""

    reason: str | None = None


class HTTPResponseError(AWS4InterceptorError):
    """The server answered with an error status."""

    def __init__(self, response: HTTPResponse, config: RequestConfig) -> None:
        super().__init__(
            f"Request failed with status {response.status}: {response.reason or ''}"
        )
        self.response = response
        self.config = config


class UpstreamAuthError(HTTPResponseError):
    """The server rejected the request's authentication (HTTP 401 or 403)."""


@dataclass(kw_only=True)
class ClientDefaults:
    """Values applied to every request that doesn't set them itself."""

    base_url: str | None = None
    headers: Headers = field(default_factory=default_headers)
    transform_request: TransformRequest | Sequence[TransformRequest] | None = field(
        default_factory=lambda: [transform_json]
    )
    params_serializer: ParamsSerializer | None = None


class RequestInterceptors:
    """Ordered request interceptors of a client."""

    def __init__(self) -> None:
        self._handlers: dict[int, RequestInterceptor] = {}
        self._next_id = 0

    def use(self, interceptor: RequestInterceptor) -> int:
        """Register an interceptor and return an id usable with :py:meth:`eject`."""
        handler_id = self._next_id
        self._handlers[handler_id] = interceptor
        self._next_id += 1
        return handler_id

    def eject(self, handler_id: int) -> None:
        self._handlers.pop(handler_id, None)

    def __iter__(self) -> Iterator[RequestInterceptor]:
        return iter(list(self._handlers.values()))

    def __len__(self) -> int:
        return len(self._handlers)


def _merge_headers(defaults: Headers, headers: Headers) -> dict[str, Any]:
    merged: dict[str, Any] = {}
    for name, value in defaults.items():
        merged[name] = dict(value) if name in DEFAULT_HEADER_GROUPS else value
    for name, value in headers.items():
        if name in DEFAULT_HEADER_GROUPS and isinstance(merged.get(name), dict):
            merged[name] = {**merged[name], **value}
        else:
            merged[name] = value
    return merged


def flatten_headers(headers: Headers, method: str) -> dict[str, str]:
    """Collapse header containers into the headers sent for ``method``.

    Precedence, lowest first: ``common``, the method container, request headers.
    """
    flat: dict[str, str] = {}

    def _update(values: Headers) -> None:
        for name, value in values.items():
            if value is None:
                continue
            for existing in [k for k in flat if k.lower() == name.lower()]:
                del flat[existing]
            flat[name] = str(value)

    _update(headers.get("common") or {})
    _update(headers.get(method.lower()) or {})
    _update({k: v for k, v in headers.items() if k not in DEFAULT_HEADER_GROUPS})
    return flat


class AIOHTTPClient:
    """HTTP client running request interceptors before sending with aiohttp."""

    def __init__(
        self,
        *,
        defaults: ClientDefaults | None = None,
        _session: aiohttp.ClientSession | None = None,
    ) -> None:
        """
        :param defaults: Values applied to every request sent with this client.
        """
        self.defaults = defaults or ClientDefaults()
        self.interceptors = RequestInterceptors()
        self._session = _session

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    def merge_defaults(self, config: RequestConfig) -> RequestConfig:
        """Copy of ``config`` with the client defaults filled in."""
        return replace(
            config,
            base_url=config.base_url or self.defaults.base_url,
            headers=_merge_headers(self.defaults.headers, config.headers),
            transform_request=(
                config.transform_request or self.defaults.transform_request
            ),
            params_serializer=(
                config.params_serializer or self.defaults.params_serializer
            ),
        )

    async def request(self, config: RequestConfig) -> HTTPResponse:
        """Run the request interceptors over ``config`` and send it.

        :raises HTTPResponseError: The response has an error status.
        """
        config = self.merge_defaults(config)
        for interceptor in self.interceptors:
            config = await interceptor(config)
        return await self.send(config)

    async def send(self, config: RequestConfig) -> HTTPResponse:
        """Send ``config`` as-is, without running interceptors."""
        url = build_url(config.url or "", config.params, config.params_serializer)
        if config.base_url and not is_absolute_url(url):
            url = combine_urls(config.base_url, url)
        if not is_absolute_url(url):
            raise MissingURLError(f"Request URL {url!r} is not absolute")
        if url.startswith("//"):
            # Same scheme the request was signed with.
            url = f"https:{url}"

        data = config.data
        for transform in get_transformers(config, self):
            data = transform(data, config.headers)
        headers = flatten_headers(config.headers, config.method)

        if self._session is None:
            self._session = aiohttp.ClientSession()

        logger.debug("Sending request %s %s", config.method.upper(), url)
        # The URL is already encoded, re-encoding could change the signed query.
        async with self._session.request(
            method=config.method.upper(),
            url=URL(url, encoded=True),
            headers=headers,
            data=data,
        ) as resp:
            response = await self._marshal_response(resp)

        if response.status >= 400:
            if response.status in (401, 403):
                raise UpstreamAuthError(response, config)
            raise HTTPResponseError(response, config)
        return response

    async def _marshal_response(
        self, aiohttp_resp: aiohttp.ClientResponse
    ) -> HTTPResponse:
        body = await aiohttp_resp.read()
        text = body.decode(aiohttp_resp.get_encoding() if body else "utf-8")
        data: Any = text
        if "json" in aiohttp_resp.content_type and text:
            try:
                data = json.loads(text)
            except ValueError:
                logger.debug("Response declared JSON but could not be decoded.")
        return HTTPResponse(
            status=aiohttp_resp.status,
            headers=dict(aiohttp_resp.headers),
            data=data,
            reason=aiohttp_resp.reason,
        )
