# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
from collections.abc import Mapping

from .client import HTTPResponseError


def get_auth_error_message(error: BaseException) -> str | None:
    """Extract the message an AWS service put in an error response body.

    Services fronted by SigV4 authentication, such as API Gateway, reject bad
    signatures with a JSON body like ``{"message": "..."}``.

    :param error: The error raised while sending a request.
    :returns: The ``message`` of the response body, or ``None`` if the error
        carries no such message.
    """
    if not isinstance(error, HTTPResponseError):
        return None

    data = error.response.data
    if isinstance(data, Mapping):
        message = data.get("message")
        return message if isinstance(message, str) else None
    return None
