# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""The mutable request configuration request interceptors receive and return.

Headers follow the layout common to JavaScript-style HTTP clients: request
specific headers live at the top level next to per-method default containers
(``get``, ``post``, ...) and a ``common`` container shared by all methods.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping, MutableMapping, Sequence
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Protocol

type Headers = MutableMapping[str, Any]
type Params = Mapping[str, Any]
type ParamsSerializer = Callable[[Params], str]
type TransformRequest = Callable[[Any, Headers], Any]

DEFAULT_HEADER_GROUPS: frozenset[str] = frozenset(
    ("common", "delete", "get", "head", "post", "put", "patch")
)

JSON_CONTENT_TYPE = "application/json;charset=utf-8"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def default_headers() -> dict[str, Any]:
    """Build a fresh set of default header containers."""
    return {
        "common": {"Accept": "application/json, text/plain, */*"},
        "delete": {},
        "get": {},
        "head": {},
        "post": {"Content-Type": FORM_CONTENT_TYPE},
        "put": {"Content-Type": FORM_CONTENT_TYPE},
        "patch": {"Content-Type": FORM_CONTENT_TYPE},
    }


def has_header(headers: Mapping[str, Any], name: str) -> bool:
    """Case-insensitive lookup of a request specific header."""
    name = name.lower()
    return any(
        key.lower() == name
        for key, value in headers.items()
        if key not in DEFAULT_HEADER_GROUPS and value is not None
    )


def transform_json(data: Any, headers: Headers) -> Any:
    """Serialize mappings and sequences to JSON, pass everything else through.

    Sets ``Content-Type`` when serializing and no content type was given.
    """
    if isinstance(data, Mapping | list | tuple):
        if not has_header(headers, "Content-Type"):
            headers["Content-Type"] = JSON_CONTENT_TYPE
        return json.dumps(data, separators=(",", ":"))
    return data


class RequestDefaults(Protocol):
    transform_request: TransformRequest | Sequence[TransformRequest] | None


class ClientInstance(Protocol):
    """An HTTP client whose defaults apply to requests that leave them unset."""

    @property
    def defaults(self) -> RequestDefaults: ...


@dataclass(kw_only=True)
class RequestSnapshot:
    """The parts of a request that signing rewrites, as they were before signing."""

    url: str | None
    params: Params | None
    headers: Headers

    @classmethod
    def capture(cls, config: RequestConfig) -> RequestSnapshot:
        return cls(
            url=config.url,
            params=deepcopy(config.params),
            headers=deepcopy(config.headers),
        )

    def restore(self, config: RequestConfig) -> None:
        config.url = self.url
        config.params = deepcopy(self.params)
        config.headers = deepcopy(self.headers)


@dataclass(kw_only=True)
class RequestConfig:
    """Configuration of a single outgoing request."""

    url: str | None = None
    """Absolute URL, or a URL relative to ``base_url``."""

    base_url: str | None = None

    method: str = "get"

    headers: Headers = field(default_factory=dict)
    """Request headers, optionally with per-method and ``common`` containers."""

    params: Params | None = None
    """Query parameters appended to ``url`` when the request is sent."""

    params_serializer: ParamsSerializer | None = None

    data: Any = None
    """The request body before ``transform_request`` is applied."""

    transform_request: TransformRequest | Sequence[TransformRequest] | None = None

    snapshot: RequestSnapshot | None = field(default=None, repr=False, compare=False)
    """State captured by the first signing pass over this request."""
