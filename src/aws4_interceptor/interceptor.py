# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Final

from aws_sdk_signers import AWSCredentialIdentity

from .credentials import (
    AssumeRoleCredentialsProvider,
    CredentialsProvider,
    StaticCredentialsProvider,
    is_credentials_provider,
)
from .normalizer import normalize_request
from .request import (
    DEFAULT_HEADER_GROUPS,
    ClientInstance,
    RequestConfig,
    RequestSnapshot,
)
from .signers import DEFAULT_QUERY_EXPIRES_SEC, SigningResult, SigV4RequestSigner

logger: Final = logging.getLogger(__name__)

type RequestInterceptor = Callable[[RequestConfig], Awaitable[RequestConfig]]


@dataclass(kw_only=True, frozen=True)
class InterceptorOptions:
    """Options used when signing a request."""

    service: str | None = None
    """Target service. Inferred from ``*.amazonaws.com`` hosts if not given."""

    region: str | None = None
    """AWS region name. Inferred from ``*.amazonaws.com`` hosts if not given."""

    sign_query: bool = False
    """Whether to sign the query instead of adding an ``Authorization`` header."""

    add_content_sha: bool = False
    """Whether to add an ``X-Amz-Content-Sha256`` header with the body hash."""

    assume_role_arn: str | None = None
    """ARN of the IAM role to get credentials from.

    The credentials are cached and refreshed as needed. Not used when credentials
    or a credentials provider are passed to :py:func:`aws4_interceptor`.
    """

    assume_role_session_name: str = "axios"

    assumed_role_expiration_margin_sec: int = 5
    """Seconds before the assumed role expiration at which the cache is refreshed."""

    sign_query_expires_sec: int = DEFAULT_QUERY_EXPIRES_SEC


def select_credentials_provider(
    options: InterceptorOptions,
    credentials: AWSCredentialIdentity | CredentialsProvider | None,
) -> CredentialsProvider:
    """Pick the credentials source, in order of precedence.

    A provider passed in is used as-is. Otherwise the role is assumed if one is
    configured and no static credentials were given, else the static credentials
    are used, even if there are none.
    """
    if is_credentials_provider(credentials):
        logger.debug("Using provided credentials provider %s.", type(credentials))
        return credentials
    if options.assume_role_arn and credentials is None:
        logger.debug("Using credentials of assumed role %s.", options.assume_role_arn)
        return AssumeRoleCredentialsProvider(
            options.assume_role_arn,
            region=options.region,
            expiration_margin_sec=options.assumed_role_expiration_margin_sec,
            role_session_name=options.assume_role_session_name,
        )
    return StaticCredentialsProvider(credentials)


def _apply_signing_result(config: RequestConfig, result: SigningResult) -> None:
    if result.query is not None:
        config.params = result.query
        if result.headers:
            signed_names = {name.lower() for name in result.headers}
            config.headers = {
                name: value
                for name, value in config.headers.items()
                if name in DEFAULT_HEADER_GROUPS or name.lower() not in signed_names
            }
            config.headers.update(result.headers)
        return

    assert result.headers is not None
    default_containers = {
        name: value
        for name, value in config.headers.items()
        if name in DEFAULT_HEADER_GROUPS
    }
    config.headers = {**default_containers, **result.headers}


def aws4_interceptor(
    *,
    instance: ClientInstance | None = None,
    options: InterceptorOptions | None = None,
    credentials: AWSCredentialIdentity | CredentialsProvider | None = None,
) -> RequestInterceptor:
    """Create a request interceptor that signs requests with AWS SigV4.

    Example::

        client.interceptors.use(
            aws4_interceptor(
                options=InterceptorOptions(region="eu-west-2", service="execute-api")
            )
        )

    :param instance: Client whose defaults supply ``transform_request`` when a
        request doesn't set one.
    :param options: The options used when signing a request.
    :param credentials: Credentials, or a provider of credentials, to sign with.
    """
    options = options or InterceptorOptions()
    credentials_provider = select_credentials_provider(options, credentials)
    signer = SigV4RequestSigner(
        service=options.service,
        region=options.region,
        sign_query=options.sign_query,
        add_content_sha=options.add_content_sha,
        query_expires_sec=options.sign_query_expires_sec,
    )

    async def sign(config: RequestConfig) -> RequestConfig:
        # A retried request is signed again from its state before the first pass.
        if config.snapshot is None:
            config.snapshot = RequestSnapshot.capture(config)
        else:
            config.snapshot.restore(config)

        descriptor = normalize_request(config, instance)
        resolved_credentials = await credentials_provider.get_credentials()
        result = await signer.sign(descriptor, resolved_credentials)
        _apply_signing_result(config, result)
        return config

    return sign
