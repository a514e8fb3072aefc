# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_oidc

from typing import Any
from urllib.parse import parse_qsl, urlsplit

import pytest

from coreason_oidc.client import Client
from coreason_oidc.exceptions import OIDCValidationError
from coreason_oidc.issuer import Issuer
from coreason_oidc.models import AuthorizationParams


@pytest.fixture
def app_client(issuer: Issuer) -> Client:
    return issuer.client(client_id="C", redirect_uri="https://app/cb")


def _query(url: str) -> list[tuple[str, str]]:
    return parse_qsl(urlsplit(url).query)


def test_authorization_url_exact(app_client: Client) -> None:
    url = app_client.authorization_url(state="abc", scope=["openid", "email"])
    assert url == (
        "https://auth.company.tld/authorize"
        "?response_type=code&client_id=C&scope=openid+email&redirect_uri=https%3A%2F%2Fapp%2Fcb&state=abc"
    )


def test_authorization_url_is_deterministic(app_client: Client) -> None:
    assert app_client.authorization_url(state="abc") == app_client.authorization_url(state="abc")


def test_default_scope_is_openid(app_client: Client) -> None:
    assert ("scope", "openid") in _query(app_client.authorization_url(state="abc"))


def test_scope_string_is_split(app_client: Client) -> None:
    url = app_client.authorization_url(state="abc", scope="openid   profile")
    assert ("scope", "openid profile") in _query(url)


def test_optional_parameters_in_fixed_order(app_client: Client) -> None:
    url = app_client.authorization_url(
        state="abc",
        login_hint="user@company.tld",
        nonce="n-0S6_WzA2Mj",
        code_challenge_method="S256",
        code_challenge="E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM",
        prompt="login",
        max_age=300,
    )
    assert [name for name, _ in _query(url)] == [
        "response_type",
        "client_id",
        "scope",
        "redirect_uri",
        "state",
        "code_challenge",
        "code_challenge_method",
        "nonce",
        "prompt",
        "max_age",
        "login_hint",
    ]
    assert ("max_age", "300") in _query(url)


def test_falsy_optional_parameters_omitted(app_client: Client) -> None:
    url = app_client.authorization_url(state="abc", max_age=0, nonce="", login_hint=None)
    names = [name for name, _ in _query(url)]
    assert "max_age" not in names
    assert "nonce" not in names
    assert "login_hint" not in names


def test_extra_parameters_appended(app_client: Client) -> None:
    url = app_client.authorization_url(state="abc", audience="https://api.company.tld", organization=None)
    query = _query(url)
    assert query[-1] == ("audience", "https://api.company.tld")
    assert "organization" not in [name for name, _ in query]


def test_per_call_overrides(app_client: Client) -> None:
    url = app_client.authorization_url(
        state="abc", client_id="OTHER", redirect_uri="https://app/other", response_type="code id_token"
    )
    query = dict(_query(url))
    assert query["client_id"] == "OTHER"
    assert query["redirect_uri"] == "https://app/other"
    assert query["response_type"] == "code id_token"


def test_accepts_params_model_and_mapping(app_client: Client) -> None:
    params = AuthorizationParams(state="abc", scope=["openid", "email"])
    expected = app_client.authorization_url(state="abc", scope=["openid", "email"])
    assert app_client.authorization_url(params) == expected
    assert app_client.authorization_url({"state": "abc", "scope": "openid email"}) == expected


def test_kwargs_merge_over_params_model(app_client: Client) -> None:
    params = AuthorizationParams(state="abc", prompt="login")
    query = dict(_query(app_client.authorization_url(params, prompt="consent")))
    assert query["prompt"] == "consent"
    assert query["state"] == "abc"


def test_existing_endpoint_query_is_kept(metadata: dict[str, Any]) -> None:
    issuer = Issuer({**metadata, "authorization_endpoint": "https://auth.company.tld/authorize?tenant=acme"})
    client = issuer.client(client_id="C", redirect_uri="https://app/cb")
    url = client.authorization_url(state="abc")
    assert url.startswith("https://auth.company.tld/authorize?tenant=acme&response_type=code&client_id=C")


@pytest.mark.parametrize(
    "kwargs",
    [
        {},
        {"state": ""},
        {"state": "abc", "scope": ["email"]},
        {"state": "abc", "scope": "profile email"},
        {"state": "abc", "redirect_uri": "/cb"},
        {"state": "abc", "display": "fullscreen"},
        {"state": "abc", "prompt": "always"},
        {"state": "abc", "max_age": -1},
        {"state": "abc", "response_type": "code token code"},
        {"state": "abc", "code_challenge_method": "S512"},
    ],
)
def test_invalid_arguments(app_client: Client, kwargs: dict[str, Any]) -> None:
    with pytest.raises(OIDCValidationError, match="Invalid arguments for Client.authorization_url"):
        app_client.authorization_url(**kwargs)


def test_no_network_access(client: Client) -> None:
    client.authorization_url(state="abc")
    client._http_client.get.assert_not_called()  # type: ignore[union-attr]
    client._http_client.post.assert_not_called()  # type: ignore[union-attr]
