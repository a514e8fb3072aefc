# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_oidc

import asyncio
from collections.abc import Callable, Iterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from coreason_oidc.client import Client
from coreason_oidc.config import OIDCClientConfig
from coreason_oidc.exceptions import NetworkError, StateMismatchError
from coreason_oidc.generator import Generator
from coreason_oidc.issuer import Issuer
from coreason_oidc.manager import RelyingParty
from coreason_oidc.models import LoginRequest

REDIRECT_URI = "https://app.company.tld/callback"


@pytest.fixture(autouse=True)
def instrumentor() -> Iterator[MagicMock]:
    # AsyncMock clients cannot be instrumented
    with patch("coreason_oidc.manager.HTTPXClientInstrumentor") as mock_instrumentor:
        yield mock_instrumentor


@pytest.fixture
def config() -> OIDCClientConfig:
    return OIDCClientConfig(
        issuer="https://auth.company.tld",
        client_id="CLIENT_ID",
        client_secret="CLIENT_SECRET",
        redirect_uri=REDIRECT_URI,
        scope="openid email",
    )


@pytest.fixture
def discovering(mock_client: AsyncMock, metadata: dict[str, Any]) -> AsyncMock:
    mock_client.get.return_value = httpx.Response(200, json=metadata)
    return mock_client


def test_instruments_http_client(config: OIDCClientConfig, mock_client: AsyncMock, instrumentor: MagicMock) -> None:
    RelyingParty(config, client=mock_client)
    instrumentor.return_value.instrument_client.assert_called_once_with(mock_client)


@pytest.mark.asyncio
async def test_discovers_issuer_once(config: OIDCClientConfig, discovering: AsyncMock) -> None:
    rp = RelyingParty(config, client=discovering)

    first = await rp.get_issuer()
    second = await rp.get_issuer()

    assert first is second
    assert discovering.get.await_count == 1
    assert discovering.get.call_args.args[0] == "https://auth.company.tld/.well-known/openid-configuration"


@pytest.mark.asyncio
async def test_concurrent_discovery_is_serialized(
    config: OIDCClientConfig, mock_client: AsyncMock, metadata: dict[str, Any]
) -> None:
    async def slow_get(*args: Any, **kwargs: Any) -> httpx.Response:
        await asyncio.sleep(0.01)
        return httpx.Response(200, json=metadata)

    mock_client.get.side_effect = slow_get
    rp = RelyingParty(config, client=mock_client)

    issuers = await asyncio.gather(*(rp.get_issuer() for _ in range(5)))

    assert all(issuer is issuers[0] for issuer in issuers)
    assert mock_client.get.await_count == 1


@pytest.mark.asyncio
async def test_discovery_failure_is_retried_on_next_call(
    config: OIDCClientConfig, mock_client: AsyncMock, metadata: dict[str, Any]
) -> None:
    mock_client.get.side_effect = [httpx.ConnectError("down"), httpx.Response(200, json=metadata)]
    rp = RelyingParty(config, client=mock_client)

    with pytest.raises(NetworkError):
        await rp.get_issuer()
    assert isinstance(await rp.get_issuer(), Issuer)


@pytest.mark.asyncio
async def test_prebuilt_issuer_skips_discovery(config: OIDCClientConfig, mock_client: AsyncMock, issuer: Issuer) -> None:
    rp = RelyingParty(config, client=mock_client, issuer=issuer)

    client = await rp.get_client()

    assert isinstance(client, Client)
    assert client.issuer is issuer
    assert client.options.client_id == "CLIENT_ID"
    assert await rp.get_client() is client
    mock_client.get.assert_not_called()


@pytest.mark.asyncio
async def test_begin_login(config: OIDCClientConfig, discovering: AsyncMock) -> None:
    rp = RelyingParty(config, client=discovering)

    login = await rp.begin_login(prompt="login")

    assert isinstance(login, LoginRequest)
    query = parse_qs(urlsplit(login.url).query)
    assert login.url.startswith("https://auth.company.tld/authorize?response_type=code&client_id=CLIENT_ID")
    assert query["scope"] == ["openid email"]
    assert query["redirect_uri"] == [REDIRECT_URI]
    assert query["state"] == [login.checks.state]
    assert query["nonce"] == [login.checks.nonce]
    assert query["prompt"] == ["login"]
    assert query["code_challenge_method"] == ["S256"]
    assert login.checks.code_verifier is not None
    assert query["code_challenge"] == [Generator.code_challenge(login.checks.code_verifier)]
    assert login.checks.response_type == "code"


@pytest.mark.asyncio
async def test_begin_login_generates_fresh_values(config: OIDCClientConfig, discovering: AsyncMock) -> None:
    rp = RelyingParty(config, client=discovering)

    first = await rp.begin_login()
    second = await rp.begin_login()

    assert first.checks.state != second.checks.state
    assert first.checks.nonce != second.checks.nonce
    assert first.checks.code_verifier != second.checks.code_verifier


@pytest.mark.asyncio
async def test_begin_login_without_pkce(
    config: OIDCClientConfig, discovering: AsyncMock
) -> None:
    rp = RelyingParty(config.model_copy(update={"use_pkce": False}), client=discovering)

    login = await rp.begin_login()

    assert "code_challenge" not in parse_qs(urlsplit(login.url).query)
    assert login.checks.code_verifier is None


@pytest.mark.asyncio
async def test_complete_login(
    config: OIDCClientConfig,
    discovering: AsyncMock,
    token_response: dict[str, Any],
    make_jwt: Callable[[dict[str, Any]], str],
) -> None:
    rp = RelyingParty(config, client=discovering)
    login = await rp.begin_login()
    token_response["id_token"] = make_jwt({"sub": "user-1", "nonce": login.checks.nonce})
    discovering.post.return_value = httpx.Response(200, json=token_response)

    tokens = await rp.complete_login(f"{REDIRECT_URI}?code=AUTH_CODE&state={login.checks.state}", login.checks)

    assert tokens.claims()["sub"] == "user-1"
    form = discovering.post.call_args.kwargs["data"]
    assert form["code"] == "AUTH_CODE"
    assert form["redirect_uri"] == REDIRECT_URI
    assert form["code_verifier"] == login.checks.code_verifier


@pytest.mark.asyncio
async def test_complete_login_rejects_forged_state(config: OIDCClientConfig, discovering: AsyncMock) -> None:
    rp = RelyingParty(config, client=discovering)
    login = await rp.begin_login()

    with pytest.raises(StateMismatchError):
        await rp.complete_login(f"{REDIRECT_URI}?code=AUTH_CODE&state=forged", login.checks)
    discovering.post.assert_not_called()


@pytest.mark.asyncio
async def test_userinfo_and_refresh(
    config: OIDCClientConfig, discovering: AsyncMock, token_response: dict[str, Any]
) -> None:
    rp = RelyingParty(config, client=discovering)
    discovering.post.return_value = httpx.Response(200, json=token_response)

    tokens = await rp.refresh("REFRESH_TOKEN")
    assert tokens.access_token == "ACCESS_TOKEN"

    discovering.get.return_value = httpx.Response(200, json={"sub": "user-1"})
    info = await rp.userinfo(tokens)
    assert info.sub == "user-1"


@pytest.mark.asyncio
async def test_context_manager_closes_internal_client(config: OIDCClientConfig) -> None:
    async with RelyingParty(config.model_copy(update={"http_timeout": 10.0})) as rp:
        internal = rp._client
        assert isinstance(internal, httpx.AsyncClient)
        assert internal.timeout.read == 10.0
    assert internal.is_closed


@pytest.mark.asyncio
async def test_context_manager_keeps_external_client(config: OIDCClientConfig, mock_client: AsyncMock) -> None:
    async with RelyingParty(config, client=mock_client):
        pass
    mock_client.aclose.assert_not_called()


@pytest.mark.asyncio
async def test_internal_client_has_no_timeout_by_default(config: OIDCClientConfig) -> None:
    async with RelyingParty(config) as rp:
        timeout = rp._client.timeout
        assert timeout.connect is None
        assert timeout.read is None
