# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_oidc

import base64
import json
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest

from coreason_oidc.client import Client
from coreason_oidc.issuer import Issuer

REQUIRED_METADATA = {
    "issuer": "https://auth.company.tld/",
    "authorization_endpoint": "https://auth.company.tld/authorize",
    "token_endpoint": "https://auth.company.tld/oauth/token",
    "userinfo_endpoint": "https://auth.company.tld/userinfo",
}

METADATA_DEFAULTS = {
    "claim_types_supported": ["normal"],
    "claims_parameter_supported": False,
    "grant_types_supported": ["authorization_code", "implicit"],
    "request_parameter_supported": False,
    "request_uri_parameter_supported": True,
    "require_request_uri_registration": False,
    "response_modes_supported": ["query", "fragment"],
    "token_endpoint_auth_methods_supported": ["client_secret_basic"],
}

TOKEN_RESPONSE = {
    "access_token": "ACCESS_TOKEN",
    "expires_in": 86400,
    "id_token": "ID_TOKEN",
    "scope": "openid offline_access",
    "token_type": "Bearer",
    "refresh_token": "REFRESH_TOKEN",
}

REDIRECT_URI = "https://company.tld/auth/callback"


def _b64(data: dict[str, Any]) -> str:
    return base64.urlsafe_b64encode(json.dumps(data).encode("utf-8")).decode("ascii").rstrip("=")


@pytest.fixture
def make_jwt() -> Callable[[dict[str, Any]], str]:
    """Builds an unsigned compact JWT around the given payload."""

    def _make(payload: dict[str, Any]) -> str:
        return f"{_b64({'alg': 'none', 'typ': 'JWT'})}.{_b64(payload)}.signature"

    return _make


@pytest.fixture
def mock_client() -> AsyncMock:
    return AsyncMock(spec=httpx.AsyncClient)


@pytest.fixture
def issuer() -> Issuer:
    return Issuer(REQUIRED_METADATA)


@pytest.fixture
def client(issuer: Issuer, mock_client: AsyncMock) -> Client:
    return issuer.client(
        client_id="CLIENT_ID",
        client_secret="CLIENT_SECRET",
        redirect_uri=REDIRECT_URI,
        response_type="code",
        http_client=mock_client,
    )


@pytest.fixture
def metadata() -> dict[str, Any]:
    return dict(REQUIRED_METADATA)


@pytest.fixture
def metadata_defaults() -> dict[str, Any]:
    return {key: list(value) if isinstance(value, list) else value for key, value in METADATA_DEFAULTS.items()}


@pytest.fixture
def token_response() -> dict[str, Any]:
    return dict(TOKEN_RESPONSE)
