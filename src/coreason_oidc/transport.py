# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_oidc

"""
HTTP plumbing shared by the issuer and client: one request, no retries.
"""

import json
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from coreason_oidc.exceptions import NetworkError, OIDCValidationError, OversizedResponseError
from coreason_oidc.utils.logger import logger

MAX_RESPONSE_BYTES = 1_000_000

JSON_HEADERS = {"accept": "application/json"}
FORM_HEADERS = {
    "content-type": "application/x-www-form-urlencoded",
    "accept": "application/json",
}


@asynccontextmanager
async def http_session(
    client: httpx.AsyncClient | None, timeout: float | None = None
) -> AsyncIterator[httpx.AsyncClient]:
    """
    Yields the caller's client, or a transient one closed on exit.

    The transient client has no timeout unless one is given; cancellation and
    timeouts are the caller's decision.
    """
    if client is not None:
        yield client
        return

    async with httpx.AsyncClient(timeout=timeout) as transient:
        yield transient


async def send(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    max_bytes: int = MAX_RESPONSE_BYTES,
    **kwargs: Any,
) -> httpx.Response:
    """
    Issues a single GET or POST request.

    Args:
        client: The async HTTP client.
        method: "GET" or "POST".
        url: Target URL.
        max_bytes: Maximum accepted body size.
        **kwargs: Forwarded to `httpx.AsyncClient.get` / `post` (headers, data, json).

    Returns:
        httpx.Response: The response, whatever its status code.

    Raises:
        NetworkError: On transport failure.
        OversizedResponseError: If the body exceeds `max_bytes`.
    """
    try:
        if method == "GET":
            response = await client.get(url, **kwargs)
        elif method == "POST":
            response = await client.post(url, **kwargs)
        else:
            raise ValueError(f"Unsupported HTTP method {method}")
    except httpx.HTTPError as e:
        logger.error(f"{method} {url} failed: {e}")
        raise NetworkError(f"{method} {url} failed: {e}") from e

    if len(response.content) > max_bytes:
        logger.warning(f"{method} {url} returned an oversized body ({len(response.content)} bytes)")
        raise OversizedResponseError(f"Response from {url} too large", status_code=response.status_code)

    return response


def is_success(response: httpx.Response) -> bool:
    return 200 <= response.status_code < 300


def read_json(response: httpx.Response) -> Any:
    """
    Decodes a successful response body.

    Raises:
        OIDCValidationError: If the body is not JSON.
    """
    try:
        return json.loads(response.content)
    except ValueError as e:
        raise OIDCValidationError(f"Response body is not valid JSON: {e}") from e


def require_success(response: httpx.Response, url: str) -> None:
    """
    Raises:
        NetworkError: If the response status is not 2xx.
    """
    if not is_success(response):
        raise NetworkError(
            f"Unexpected HTTP status {response.status_code} from {url}",
            status_code=response.status_code,
        )
