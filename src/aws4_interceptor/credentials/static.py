# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
from aws_sdk_signers import AWSCredentialIdentity

from .interfaces import CredentialsProvider


class StaticCredentialsProvider(CredentialsProvider):
    """Return a fixed set of credentials, or none at all."""

    def __init__(self, credentials: AWSCredentialIdentity | None = None) -> None:
        self._credentials = credentials

    async def get_credentials(self) -> AWSCredentialIdentity | None:
        return self._credentials
