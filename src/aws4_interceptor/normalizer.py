# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Final
from urllib.parse import SplitResult, quote, urlsplit

from .exceptions import ConfigurationError, MissingURLError
from .request import (
    DEFAULT_HEADER_GROUPS,
    ClientInstance,
    Headers,
    Params,
    ParamsSerializer,
    RequestConfig,
    TransformRequest,
)

logger: Final = logging.getLogger(__name__)

DEFAULT_PORTS: dict[str, int] = {"http": 80, "https": 443}

_ABSOLUTE_URL_RE = re.compile(r"^([a-z][a-z\d+\-.]*:)?//", re.IGNORECASE)


@dataclass(kw_only=True, frozen=True)
class RequestDescriptor:
    """Signable description of a single outgoing request."""

    method: str
    scheme: str
    host: str
    """Value of the ``Host`` header: hostname, plus the port if it isn't the default."""

    hostname: str
    port: int | None
    path: str
    query: str
    """Query string without the leading ``?``."""

    headers: dict[str, str]
    """Exactly the headers that take part in signing."""

    body: bytes | None

    @property
    def signable_path(self) -> str:
        if self.query:
            return f"{self.path}?{self.query}"
        return self.path

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.host}{self.signable_path}"


def is_absolute_url(url: str) -> bool:
    """Whether ``url`` has a scheme or is protocol relative (``//host/...``)."""
    return _ABSOLUTE_URL_RE.match(url) is not None


def combine_urls(base_url: str, relative_url: str) -> str:
    """Join ``base_url`` and ``relative_url`` with exactly one slash between them."""
    if not relative_url:
        return base_url
    return f"{base_url.rstrip('/')}/{relative_url.lstrip('/')}"


def _serialize_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, Mapping):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def serialize_params(params: Params) -> str:
    """Serialize query parameters, keeping their order.

    ``None`` values are skipped and sequence values repeat the key.
    """
    parts: list[str] = []
    for key, value in params.items():
        if value is None:
            continue
        values = value if isinstance(value, list | tuple) else [value]
        for item in values:
            if item is None:
                continue
            parts.append(
                f"{quote(str(key), safe='')}={quote(_serialize_value(item), safe='')}"
            )
    return "&".join(parts)


def build_url(
    url: str, params: Params | None, params_serializer: ParamsSerializer | None = None
) -> str:
    """Append serialized ``params`` to ``url``, dropping any fragment."""
    if not params:
        return url

    serialized = (params_serializer or serialize_params)(params)
    if not serialized:
        return url

    url = url.split("#", 1)[0]
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{serialized}"


def resolve_url(config: RequestConfig) -> str:
    """Resolve the absolute URL of a request.

    Query parameters are folded into ``config.url`` and ``config.params`` is
    cleared, so the URL is the only source of the query from then on.
    """
    if not config.url and not config.base_url:
        raise MissingURLError(
            "No URL present in request config, unable to sign request"
        )

    url = config.url or ""
    if config.params is not None:
        url = build_url(url, config.params, config.params_serializer)
        config.url = url
        config.params = None

    if config.base_url and not is_absolute_url(url):
        url = combine_urls(config.base_url, url)

    if not is_absolute_url(url):
        raise MissingURLError(
            f"Request URL {url!r} is not absolute, unable to sign request"
        )
    return url


def headers_to_sign(headers: Headers) -> dict[str, str]:
    """Select the request specific headers, leaving out the default containers."""
    return {
        name: str(value)
        for name, value in headers.items()
        if name not in DEFAULT_HEADER_GROUPS and value is not None
    }


def get_transformers(
    config: RequestConfig, instance: ClientInstance | None = None
) -> list[TransformRequest]:
    transform = config.transform_request
    if not transform and instance is not None:
        transform = instance.defaults.transform_request

    if callable(transform):
        return [transform]
    if transform:
        return list(transform)

    raise ConfigurationError(
        "Could not get a transform_request function from the request config "
        "or the client defaults"
    )


def _host_header(url_parts: SplitResult) -> str:
    hostname = url_parts.hostname or ""
    host = f"[{hostname}]" if ":" in hostname else hostname
    port = url_parts.port
    if port is not None and DEFAULT_PORTS.get(url_parts.scheme) != port:
        host = f"{host}:{port}"
    return host


def _body_bytes(body: Any) -> bytes | None:
    if body is None:
        return None
    if isinstance(body, str):
        return body.encode("utf-8")
    if isinstance(body, bytes | bytearray | memoryview):
        return bytes(body)
    raise ConfigurationError(
        f"Request body must be str or bytes once transformed, got {type(body).__name__}"
    )


def normalize_request(
    config: RequestConfig, instance: ClientInstance | None = None
) -> RequestDescriptor:
    """Build the signable description of ``config``.

    The body transforms run against ``config.headers`` so headers they add, such
    as ``Content-Type``, are signed as well.
    """
    url = resolve_url(config)
    try:
        url_parts = urlsplit(url)
        port = url_parts.port
    except ValueError as e:
        raise MissingURLError(f"Request URL {url!r} is invalid") from e
    if not url_parts.hostname:
        raise MissingURLError(
            f"Request URL {url!r} has no host, unable to sign request"
        )

    data = config.data
    for transform in get_transformers(config, instance):
        data = transform(data, config.headers)

    host = _host_header(url_parts)
    headers = headers_to_sign(config.headers)
    if not any(name.lower() == "host" for name in headers):
        headers["Host"] = host

    descriptor = RequestDescriptor(
        method=config.method.upper(),
        scheme=url_parts.scheme or "https",
        host=host,
        hostname=url_parts.hostname,
        port=port,
        path=url_parts.path or "/",
        query=url_parts.query,
        headers=headers,
        body=_body_bytes(data),
    )
    logger.debug("Normalized request: %s %s", descriptor.method, descriptor.url)
    return descriptor
