# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0


class AWS4InterceptorError(Exception):
    """Top-level exception to capture request signing errors."""


class MissingURLError(AWS4InterceptorError, ValueError):
    """The request does not resolve to an absolute URL, so it cannot be signed."""


class ConfigurationError(AWS4InterceptorError):
    """The request or client is configured in a way that prevents signing."""


class CredentialsUnavailableError(AWS4InterceptorError):
    """A credentials source answered but did not return any credentials."""
