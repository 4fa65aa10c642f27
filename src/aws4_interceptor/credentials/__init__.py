# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
from .assume_role import AssumeRoleConfig, AssumeRoleCredentialsProvider, STSClient
from .interfaces import CredentialsProvider, is_credentials_provider
from .static import StaticCredentialsProvider

__all__ = (
    "AssumeRoleConfig",
    "AssumeRoleCredentialsProvider",
    "CredentialsProvider",
    "STSClient",
    "StaticCredentialsProvider",
    "is_credentials_provider",
)
