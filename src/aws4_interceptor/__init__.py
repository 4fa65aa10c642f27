# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""AWS4 Interceptor signs outgoing HTTP requests with AWS Signature Version 4 from a
request interceptor, using static, assumed role, or custom credentials."""

from __future__ import annotations

from .auth_errors import get_auth_error_message
from .client import (
    AIOHTTPClient,
    ClientDefaults,
    HTTPResponse,
    HTTPResponseError,
    RequestInterceptors,
    UpstreamAuthError,
)
from .credentials import (
    AssumeRoleCredentialsProvider,
    CredentialsProvider,
    StaticCredentialsProvider,
)
from .exceptions import (
    AWS4InterceptorError,
    ConfigurationError,
    CredentialsUnavailableError,
    MissingURLError,
)
from .interceptor import InterceptorOptions, RequestInterceptor, aws4_interceptor
from .normalizer import RequestDescriptor, normalize_request
from .request import RequestConfig
from .signers import SigningResult, SigV4RequestSigner

__license__ = "Apache-2.0"
__version__ = "0.1.0"

__all__ = (
    "AIOHTTPClient",
    "AWS4InterceptorError",
    "AssumeRoleCredentialsProvider",
    "ClientDefaults",
    "ConfigurationError",
    "CredentialsProvider",
    "CredentialsUnavailableError",
    "HTTPResponse",
    "HTTPResponseError",
    "InterceptorOptions",
    "MissingURLError",
    "RequestConfig",
    "RequestDescriptor",
    "RequestInterceptor",
    "RequestInterceptors",
    "SigV4RequestSigner",
    "SigningResult",
    "StaticCredentialsProvider",
    "UpstreamAuthError",
    "aws4_interceptor",
    "get_auth_error_message",
    "normalize_request",
)
