# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import logging
import re
from dataclasses import dataclass
from hashlib import sha256
from io import BytesIO
from typing import Any, Final
from urllib.parse import parse_qsl, urlsplit

from aws_sdk_signers import (
    URI,
    AsyncBytesReader,
    AsyncSigV4Signer,
    AWSCredentialIdentity,
    AWSRequest,
    Field,
    Fields,
    SigV4SigningProperties,
)
from botocore.auth import SigV4QueryAuth
from botocore.awsrequest import AWSRequest as BotocoreRequest
from botocore.credentials import Credentials as BotocoreCredentials

from .normalizer import RequestDescriptor

logger: Final = logging.getLogger(__name__)

CONTENT_SHA256_HEADER = "X-Amz-Content-Sha256"
DEFAULT_REGION = "us-east-1"
DEFAULT_QUERY_EXPIRES_SEC = 3600

_AWS_HOST_RE = re.compile(r"([^.]{1,63})\.(?:([^.]{0,63})\.)?amazonaws\.com(\.cn)?$")


@dataclass(kw_only=True, frozen=True)
class SigningResult:
    """Signing material for a request, as headers or as query parameters."""

    headers: dict[str, str] | None = None
    """All headers of a header signed request.

    For a query signed request, only the signed headers the request doesn't carry
    yet, or ``None`` if there are none.
    """

    query: dict[str, str] | None = None


class _PayloadSigningQueryAuth(SigV4QueryAuth):
    """Query presigner that signs the request body without moving it into the query.

    ``SigV4QueryAuth`` folds ``request.data`` into the query string, so the body
    is handed over separately and only its hash enters the canonical request.
    """

    def __init__(self, *args: Any, body: bytes | None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._body = body

    def payload(self, request: BotocoreRequest) -> str:
        return sha256(self._body or b"").hexdigest()


def infer_service_and_region(hostname: str) -> tuple[str | None, str | None]:
    """Derive the signing service and region from an ``amazonaws.com`` hostname.

    ``abc123.execute-api.eu-west-2.amazonaws.com`` resolves to
    ``("execute-api", "eu-west-2")``. Hosts outside ``amazonaws.com`` resolve to
    ``(None, None)``.
    """
    match = _AWS_HOST_RE.search(hostname)
    if match is None:
        return None, None

    service, region = match.group(1), match.group(2) or None
    # OpenSearch puts the region first, e.g. search-domain.us-east-1.es.amazonaws.com
    if region in ("es", "aoss"):
        service, region = region, service
    if region == "s3":
        return "s3", DEFAULT_REGION
    for part in (service, region):
        if part is not None and part.startswith("s3-"):
            return "s3", part[3:]
    return service, region


class SigV4RequestSigner:
    """Apply SigV4 signing material to a :py:class:`RequestDescriptor`.

    Header signing is delegated to :py:class:`aws_sdk_signers.AsyncSigV4Signer`,
    query signing to botocore's presigner.
    """

    def __init__(
        self,
        *,
        service: str | None = None,
        region: str | None = None,
        sign_query: bool = False,
        add_content_sha: bool = False,
        query_expires_sec: int = DEFAULT_QUERY_EXPIRES_SEC,
        signer: AsyncSigV4Signer | None = None,
    ) -> None:
        """
        :param service: Signing name of the target service. Inferred from the host
            when not given.
        :param region: Signing region. Inferred from the host when not given.
        :param sign_query: Whether to sign the query string instead of adding an
            ``Authorization`` header.
        :param add_content_sha: Whether to add an ``X-Amz-Content-Sha256`` header
            holding the hash of the body.
        :param query_expires_sec: Lifetime of a query signature.
        :param signer: Signer used for header signing.
        """
        self._service = service
        self._region = region
        self._sign_query = sign_query
        self._add_content_sha = add_content_sha
        self._query_expires_sec = query_expires_sec
        self._signer = signer or AsyncSigV4Signer()

    def signing_scope(self, hostname: str) -> tuple[str, str]:
        """Resolve the ``(service, region)`` pair used to sign requests to a host."""
        service, region = self._service, self._region
        if not service or not region:
            inferred_service, inferred_region = infer_service_and_region(hostname)
            service = service or inferred_service
            region = region or inferred_region
        return service or "", region or DEFAULT_REGION

    async def sign(
        self,
        descriptor: RequestDescriptor,
        credentials: AWSCredentialIdentity | None,
    ) -> SigningResult:
        identity = credentials or AWSCredentialIdentity(
            access_key_id="", secret_access_key=""
        )
        service, region = self.signing_scope(descriptor.hostname)

        headers = dict(descriptor.headers)
        if self._add_content_sha:
            headers = {
                k: v
                for k, v in headers.items()
                if k.lower() != CONTENT_SHA256_HEADER.lower()
            }
            headers[CONTENT_SHA256_HEADER] = sha256(descriptor.body or b"").hexdigest()

        if self._sign_query:
            logger.debug(
                "Signing query of %s for %s/%s.", descriptor.url, service, region
            )
            query = self._presign(descriptor, headers, identity, service, region)
            missing = {
                name: value
                for name, value in headers.items()
                if descriptor.headers.get(name) != value
            }
            return SigningResult(query=query, headers=missing or None)

        logger.debug(
            "Signing headers of %s for %s/%s.", descriptor.url, service, region
        )
        return SigningResult(
            headers=await self._sign_headers(
                descriptor, headers, identity, service, region
            )
        )

    async def _sign_headers(
        self,
        descriptor: RequestDescriptor,
        headers: dict[str, str],
        identity: AWSCredentialIdentity,
        service: str,
        region: str,
    ) -> dict[str, str]:
        request = AWSRequest(
            destination=URI(
                scheme=descriptor.scheme,
                host=descriptor.hostname,
                port=descriptor.port,
                path=descriptor.path,
                query=descriptor.query or None,
            ),
            method=descriptor.method,
            body=(
                AsyncBytesReader(BytesIO(descriptor.body))
                if descriptor.body is not None
                else None
            ),
            fields=Fields([Field(name=k, values=[v]) for k, v in headers.items()]),
        )
        signed_request = await self._signer.sign(
            request=request,
            identity=identity,
            properties=SigV4SigningProperties(region=region, service=service),
        )
        return {field.name: field.as_string() for field in signed_request.fields}

    def _presign(
        self,
        descriptor: RequestDescriptor,
        headers: dict[str, str],
        identity: AWSCredentialIdentity,
        service: str,
        region: str,
    ) -> dict[str, str]:
        request = BotocoreRequest(
            method=descriptor.method, url=descriptor.url, headers=headers
        )
        presigner = _PayloadSigningQueryAuth(
            BotocoreCredentials(
                identity.access_key_id,
                identity.secret_access_key,
                identity.session_token,
            ),
            service,
            region,
            expires=self._query_expires_sec,
            body=descriptor.body,
        )
        presigner.add_auth(request)

        # Only the parameters the presigner added, the rest already are in the URL.
        original = set(parse_qsl(descriptor.query, keep_blank_values=True))
        presigned = parse_qsl(urlsplit(request.url).query, keep_blank_values=True)
        return {
            key: value
            for key, value in presigned
            if (key, value) not in original
        }
