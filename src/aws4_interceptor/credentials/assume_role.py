# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
import asyncio
import logging
import os
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Final, Protocol

import boto3
from aws_sdk_signers import AWSCredentialIdentity

from ..exceptions import CredentialsUnavailableError
from .interfaces import CredentialsProvider

logger: Final = logging.getLogger(__name__)

_DEFAULT_EXPIRATION_MARGIN_SEC = 5
_DEFAULT_ROLE_SESSION_NAME = "axios"


class STSClient(Protocol):
    """The subset of a boto3 STS client used to assume a role."""

    def assume_role(self, **kwargs: Any) -> dict[str, Any]: ...


@dataclass(kw_only=True, frozen=True)
class AssumeRoleConfig:
    """Configuration for assumed role credential retrieval."""

    role_arn: str
    region: str | None = None
    expiration_margin_sec: int = _DEFAULT_EXPIRATION_MARGIN_SEC
    role_session_name: str = _DEFAULT_ROLE_SESSION_NAME


class AssumeRoleCredentialsProvider(CredentialsProvider):
    """Resolves temporary AWS credentials by assuming an IAM role through STS.

    Credentials are cached until ``expiration_margin_sec`` seconds before they
    expire. Concurrent callers share a single refresh.
    """

    def __init__(
        self,
        role_arn: str,
        *,
        region: str | None = None,
        expiration_margin_sec: int = _DEFAULT_EXPIRATION_MARGIN_SEC,
        role_session_name: str = _DEFAULT_ROLE_SESSION_NAME,
        sts_client: STSClient | None = None,
    ) -> None:
        """
        :param role_arn: ARN of the IAM role to assume.
        :param region: Region of the STS endpoint. Defaults to ``AWS_REGION``.
        :param expiration_margin_sec: Number of seconds before the expiration of
            the assumed role at which the cached credentials are refreshed.
        :param role_session_name: Session name recorded for the assumed role.
        :param sts_client: STS client to use instead of a new boto3 client.
        """
        self._config = AssumeRoleConfig(
            role_arn=role_arn,
            region=region or os.environ.get("AWS_REGION"),
            expiration_margin_sec=expiration_margin_sec,
            role_session_name=role_session_name,
        )
        self._sts = sts_client or boto3.client("sts", region_name=self._config.region)
        self._credentials: AWSCredentialIdentity | None = None
        self._refresh_lock = asyncio.Lock()

    @property
    def config(self) -> AssumeRoleConfig:
        return self._config

    async def get_credentials(self) -> AWSCredentialIdentity:
        if self._credentials is not None and not self._needs_refresh(self._credentials):
            return self._credentials

        async with self._refresh_lock:
            # Another caller may have refreshed while we waited for the lock.
            if self._credentials is None or self._needs_refresh(self._credentials):
                self._credentials = await self._assume_role()
            return self._credentials

    def _needs_refresh(self, credentials: AWSCredentialIdentity) -> bool:
        if credentials.expiration is None:
            return False
        margin = timedelta(seconds=self._config.expiration_margin_sec)
        return datetime.now(UTC) + margin >= credentials.expiration

    async def _assume_role(self) -> AWSCredentialIdentity:
        logger.debug("Assuming role %s.", self._config.role_arn)
        response = await asyncio.to_thread(
            self._sts.assume_role,
            RoleArn=self._config.role_arn,
            RoleSessionName=self._config.role_session_name,
        )

        sts_credentials = response.get("Credentials")
        if not sts_credentials:
            raise CredentialsUnavailableError(
                "Failed to get credentials from the assumed role "
                f"{self._config.role_arn}"
            )

        expiration = sts_credentials.get("Expiration")
        if isinstance(expiration, str):
            expiration = datetime.fromisoformat(expiration)
        if expiration is not None and expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=UTC)

        logger.debug(
            "Assumed role %s, credentials expire at %s.",
            self._config.role_arn,
            expiration,
        )
        return AWSCredentialIdentity(
            access_key_id=sts_credentials.get("AccessKeyId", ""),
            secret_access_key=sts_credentials.get("SecretAccessKey", ""),
            session_token=sts_credentials.get("SessionToken"),
            expiration=expiration,
        )
