# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
from typing import Any, Protocol, TypeGuard, runtime_checkable

from aws_sdk_signers import AWSCredentialIdentity


@runtime_checkable
class CredentialsProvider(Protocol):
    """Used to load the AWS credentials a request is signed with.

    Providers are created once, when the interceptor is installed, and asked for
    credentials on every request. Implementations that talk to the network are
    expected to cache what they fetch.
    """

    async def get_credentials(self) -> AWSCredentialIdentity | None:
        """Load the credentials from this provider.

        ``None`` means no credentials are available and the request is signed with
        empty key material.
        """
        ...


def is_credentials_provider(value: Any) -> TypeGuard[CredentialsProvider]:
    """Whether ``value`` exposes the ``get_credentials`` capability."""
    return value is not None and isinstance(value, CredentialsProvider)
