# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import re
from collections.abc import AsyncIterator
from hashlib import sha256
from typing import Any
from unittest.mock import MagicMock
from urllib.parse import parse_qsl

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer
from aws_sdk_signers import AWSCredentialIdentity
from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest as BotocoreRequest
from botocore.credentials import Credentials as BotocoreCredentials

from aws4_interceptor import (
    AIOHTTPClient,
    ClientDefaults,
    HTTPResponseError,
    InterceptorOptions,
    RequestConfig,
    UpstreamAuthError,
    aws4_interceptor,
)
from aws4_interceptor.client import flatten_headers
from aws4_interceptor.request import default_headers

CREDENTIALS = AWSCredentialIdentity(
    access_key_id="AKID123456",
    secret_access_key="EXAMPLE1234SECRET",
)

AUTHORIZATION_RE = re.compile(
    r"AWS4-HMAC-SHA256 Credential=(?P<credential>[^,]+), "
    r"SignedHeaders=(?P<signed_headers>[^,]+), "
    r"Signature=(?P<signature>[a-f0-9]{64})"
)


def assert_valid_signature(sent: dict[str, Any]) -> None:
    """Recompute the SigV4 signature of a received request with botocore."""
    headers = {name.lower(): value for name, value in sent["headers"].items()}
    path, _, query = sent["path_qs"].partition("?")
    pairs = [pair for pair in query.split("&") if pair]

    if "authorization" in headers:
        match = AUTHORIZATION_RE.fullmatch(headers["authorization"])
        assert match is not None
        credential, signed_headers, signature = match.group(
            "credential", "signed_headers", "signature"
        )
        timestamp = headers["x-amz-date"]
    else:
        params = dict(parse_qsl(query, keep_blank_values=True))
        credential = params["X-Amz-Credential"]
        signed_headers = params["X-Amz-SignedHeaders"]
        signature = params["X-Amz-Signature"]
        timestamp = params["X-Amz-Date"]
        pairs = [pair for pair in pairs if not pair.startswith("X-Amz-Signature=")]

    if "x-amz-content-sha256" in headers:
        assert headers["x-amz-content-sha256"] == sha256(sent["body"]).hexdigest()

    access_key, _, region, service, _ = credential.split("/")
    assert access_key == CREDENTIALS.access_key_id
    url = f"http://{headers['host']}{path}"
    if pairs:
        url = f"{url}?{'&'.join(pairs)}"
    request = BotocoreRequest(
        method=sent["method"],
        url=url,
        headers={name: headers[name] for name in signed_headers.split(";")},
        data=sent["body"],
    )
    request.context["timestamp"] = timestamp
    auth = SigV4Auth(
        BotocoreCredentials(CREDENTIALS.access_key_id, CREDENTIALS.secret_access_key),
        service,
        region,
    )
    string_to_sign = auth.string_to_sign(request, auth.canonical_request(request))

    assert auth.signature(string_to_sign, request) == signature


class RecordingServer:
    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []

    async def echo(self, request: web.Request) -> web.Response:
        self.requests.append(
            {
                "method": request.method,
                "path_qs": request.raw_path,
                "headers": dict(request.headers),
                "body": await request.read(),
            }
        )
        return web.json_response({"ok": True})

    async def forbidden(self, request: web.Request) -> web.Response:
        return web.json_response({"message": "Signature expired"}, status=403)

    async def broken(self, request: web.Request) -> web.Response:
        return web.Response(text="boom", status=500)


@pytest_asyncio.fixture
async def server() -> AsyncIterator[tuple[TestServer, RecordingServer]]:
    recorder = RecordingServer()
    app = web.Application()
    app.router.add_route("*", "/forbidden", recorder.forbidden)
    app.router.add_route("*", "/broken", recorder.broken)
    app.router.add_route("*", "/{tail:.*}", recorder.echo)
    test_server = TestServer(app)
    await test_server.start_server()
    yield test_server, recorder
    await test_server.close()


def test_flatten_headers_precedence():
    headers = {
        **default_headers(),
        "post": {"Content-Type": "application/x-www-form-urlencoded", "X-Method": "1"},
        "content-type": "application/json",
        "X-None": None,
    }

    assert flatten_headers(headers, "post") == {
        "Accept": "application/json, text/plain, */*",
        "X-Method": "1",
        "content-type": "application/json",
    }
    assert flatten_headers(headers, "GET") == {
        "Accept": "application/json, text/plain, */*",
        "content-type": "application/json",
    }


def test_interceptors_use_and_eject():
    client = AIOHTTPClient()

    async def first(config: RequestConfig) -> RequestConfig:
        return config

    async def second(config: RequestConfig) -> RequestConfig:
        return config

    first_id = client.interceptors.use(first)
    second_id = client.interceptors.use(second)
    assert first_id != second_id
    assert list(client.interceptors) == [first, second]

    client.interceptors.eject(first_id)
    assert list(client.interceptors) == [second]
    assert len(client.interceptors) == 1


async def test_sends_signed_request(server: tuple[TestServer, RecordingServer]):
    test_server, recorder = server
    async with AIOHTTPClient(
        defaults=ClientDefaults(base_url=str(test_server.make_url("/")))
    ) as client:
        client.interceptors.use(
            aws4_interceptor(
                instance=client,
                options=InterceptorOptions(service="execute-api", region="eu-west-2"),
                credentials=CREDENTIALS,
            )
        )
        response = await client.request(
            RequestConfig(
                url="/foo/bar",
                method="post",
                params={"a": "b c"},
                data={"foo": "bar"},
                headers={"X-Custom": "value"},
            )
        )

    assert response.status == 200
    assert response.data == {"ok": True}

    sent = recorder.requests[0]
    assert sent["method"] == "POST"
    assert sent["path_qs"] == "/foo/bar?a=b%20c"
    assert sent["body"] == b'{"foo":"bar"}'
    assert sent["headers"]["Content-Type"] == "application/json;charset=utf-8"
    assert sent["headers"]["X-Custom"] == "value"
    assert sent["headers"]["Accept"] == "application/json, text/plain, */*"
    assert sent["headers"]["Authorization"].startswith(
        "AWS4-HMAC-SHA256 Credential=AKID123456/"
    )
    assert "SignedHeaders=content-type;host;x-amz-date;x-custom," in (
        sent["headers"]["Authorization"]
    )
    assert_valid_signature(sent)


async def test_sends_query_signed_request(server: tuple[TestServer, RecordingServer]):
    test_server, recorder = server
    async with AIOHTTPClient() as client:
        client.interceptors.use(
            aws4_interceptor(
                instance=client,
                options=InterceptorOptions(
                    service="execute-api", region="eu-west-2", sign_query=True
                ),
                credentials=CREDENTIALS,
            )
        )
        await client.request(
            RequestConfig(url=str(test_server.make_url("/foo")), params={"a": "1"})
        )

    sent = recorder.requests[0]
    assert sent["path_qs"].startswith("/foo?a=1&")
    assert "X-Amz-Signature=" in sent["path_qs"]
    assert "X-Amz-Credential=AKID123456%2F" in sent["path_qs"]
    assert "Authorization" not in sent["headers"]
    assert_valid_signature(sent)


@pytest.mark.parametrize(
    "sign_query, add_content_sha",
    [(False, False), (False, True), (True, False), (True, True)],
)
async def test_signature_covers_body(
    server: tuple[TestServer, RecordingServer], sign_query: bool, add_content_sha: bool
):
    test_server, recorder = server
    async with AIOHTTPClient() as client:
        client.interceptors.use(
            aws4_interceptor(
                instance=client,
                options=InterceptorOptions(
                    service="execute-api",
                    region="eu-west-2",
                    sign_query=sign_query,
                    add_content_sha=add_content_sha,
                ),
                credentials=CREDENTIALS,
            )
        )
        await client.request(
            RequestConfig(
                url=str(test_server.make_url("/items")),
                method="put",
                params={"version": "2"},
                data={"foo": "bar"},
            )
        )

    sent = recorder.requests[0]
    assert sent["body"] == b'{"foo":"bar"}'
    headers = {name.lower(): value for name, value in sent["headers"].items()}
    if add_content_sha:
        assert headers["x-amz-content-sha256"] == (
            "7a38bf81f383f69433ad6e900d35b3e2385593f76a7b7ab5d4355b8ba41ee24b"
        )
    else:
        assert "x-amz-content-sha256" not in headers
    assert_valid_signature(sent)


async def test_protocol_relative_url_sent_over_https():
    session = MagicMock()
    session.request.side_effect = ConnectionError("offline")
    client = AIOHTTPClient(_session=session)

    with pytest.raises(ConnectionError):
        await client.send(RequestConfig(url="//example.com/foo", params={"a": "1"}))

    url = session.request.call_args.kwargs["url"]
    assert str(url) == "https://example.com/foo?a=1"


async def test_interceptors_run_in_order(server: tuple[TestServer, RecordingServer]):
    test_server, recorder = server
    calls: list[str] = []

    async def first(config: RequestConfig) -> RequestConfig:
        calls.append("first")
        config.headers["X-Order"] = "first"
        return config

    async def second(config: RequestConfig) -> RequestConfig:
        calls.append("second")
        config.headers["X-Order"] += ",second"
        return config

    async with AIOHTTPClient() as client:
        client.interceptors.use(first)
        client.interceptors.use(second)
        await client.request(RequestConfig(url=str(test_server.make_url("/order"))))

    assert calls == ["first", "second"]
    assert recorder.requests[0]["headers"]["X-Order"] == "first,second"


async def test_auth_error(server: tuple[TestServer, RecordingServer]):
    test_server, _ = server
    async with AIOHTTPClient() as client:
        with pytest.raises(UpstreamAuthError) as exc_info:
            await client.request(RequestConfig(url=str(test_server.make_url("/forbidden"))))

    assert exc_info.value.response.status == 403
    assert exc_info.value.response.data == {"message": "Signature expired"}


async def test_error_status(server: tuple[TestServer, RecordingServer]):
    test_server, _ = server
    async with AIOHTTPClient() as client:
        with pytest.raises(HTTPResponseError) as exc_info:
            await client.request(RequestConfig(url=str(test_server.make_url("/broken"))))

    assert not isinstance(exc_info.value, UpstreamAuthError)
    assert exc_info.value.response.status == 500
    assert exc_info.value.response.data == "boom"


def test_merge_defaults_keeps_request_values():
    def transform(data: Any, headers: Any) -> Any:
        return data

    client = AIOHTTPClient(
        defaults=ClientDefaults(base_url="https://default.example.com")
    )
    config = RequestConfig(
        url="/foo",
        base_url="https://request.example.com",
        headers={"post": {"X-Post": "1"}, "X-Custom": "value"},
        transform_request=transform,
    )

    merged = client.merge_defaults(config)

    assert merged is not config
    assert merged.base_url == "https://request.example.com"
    assert merged.transform_request is transform
    assert merged.headers["post"] == {
        "Content-Type": "application/x-www-form-urlencoded",
        "X-Post": "1",
    }
    assert merged.headers["X-Custom"] == "value"
    assert client.defaults.headers["post"] == {
        "Content-Type": "application/x-www-form-urlencoded"
    }
