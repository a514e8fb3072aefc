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
Data models for the coreason-oidc package.
"""

from typing import Any, Literal
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator

ResponseType = Literal[
    "code",
    "token",
    "id_token",
    "code token",
    "code id_token",
    "token id_token",
    "code token id_token",
    "none",
]

Display = Literal["page", "popup", "touch", "wap"]
Prompt = Literal["none", "login", "consent", "select_account"]


def ensure_absolute_url(value: str) -> str:
    """
    Checks that `value` is an absolute http(s) URL and returns it unchanged.

    Raises:
        ValueError: If the value has no http(s) scheme or no host.
    """
    parts = urlsplit(value)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError(f"{value!r} is not an absolute http(s) URL")
    return value


def response_type_components(response_type: str) -> set[str]:
    """Splits a space-delimited response type into its members."""
    return set(response_type.split())


class ClientOptions(BaseModel):
    """
    Relying party registration bound to one `Client`.

    Attributes:
        client_id (str): The OAuth client identifier.
        client_secret (SecretStr | None): The client secret, for confidential clients.
        redirect_uri (str): The registered callback URL.
        response_type (ResponseType): The flow the relying party intends to use.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    client_id: str = Field(..., min_length=1)
    client_secret: SecretStr | None = None
    redirect_uri: str
    response_type: ResponseType = "code"

    @field_validator("redirect_uri")
    @classmethod
    def check_redirect_uri(cls, v: str) -> str:
        return ensure_absolute_url(v)


class AuthorizationParams(BaseModel):
    """
    Per-call parameters of an OpenID Connect authentication request.

    `scope`, `response_type`, `client_id` and `redirect_uri` fall back to the client
    defaults when left unset.

    Parameters not declared here (e.g. `audience`, `organization`) are NOT rejected:
    they are kept in `model_extra` and appended verbatim to the authorization URL
    after the standard ones. A misspelled standard parameter therefore reaches the
    authorization server under its misspelled name instead of raising.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    state: str = Field(..., min_length=1)
    scope: list[str] = Field(default_factory=lambda: ["openid"])
    response_type: ResponseType | None = None
    client_id: str | None = None
    redirect_uri: str | None = None
    nonce: str | None = None
    code_challenge: str | None = None
    code_challenge_method: Literal["plain", "S256"] | None = None
    response_mode: str | None = None
    display: Display | None = None
    prompt: Prompt | None = None
    max_age: int | None = Field(default=None, ge=0)
    ui_locales: str | None = None
    id_token_hint: str | None = None
    login_hint: str | None = None
    acr_values: str | None = None

    @field_validator("scope", mode="before")
    @classmethod
    def split_scope(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.split()
        return v

    @field_validator("scope")
    @classmethod
    def require_openid(cls, v: list[str]) -> list[str]:
        if "openid" not in v:
            raise ValueError("openid scope is required")
        return v

    @field_validator("redirect_uri")
    @classmethod
    def check_redirect_uri(cls, v: str | None) -> str | None:
        return None if v is None else ensure_absolute_url(v)


class CallbackChecks(BaseModel):
    """
    Values the caller stored when starting the login and expects on the callback.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    response_type: ResponseType
    state: str | None = None
    nonce: str | None = None
    code_verifier: str | None = None


class LoginRequest(BaseModel):
    """
    A ready-to-redirect authentication request and the checks to persist for its callback.
    """

    model_config = ConfigDict(frozen=True)

    url: str
    checks: CallbackChecks


class OAuthErrorResponse(BaseModel):
    """Standard OAuth error body returned by the token endpoint."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    error: str = Field(..., min_length=1)
    error_description: str | None = None
    error_uri: str | None = None


class Address(BaseModel):
    """OIDC `address` claim."""

    model_config = ConfigDict(frozen=True, extra="allow")

    formatted: str | None = None
    street_address: str | None = None
    locality: str | None = None
    region: str | None = None
    postal_code: str | None = None
    country: str | None = None


class UserInfo(BaseModel):
    """
    Claims returned by the userinfo endpoint.

    Standard OpenID Connect claims are typed; unknown claims are preserved and
    available through `model_extra` and `model_dump()`.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    sub: str = Field(..., min_length=1)
    name: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    middle_name: str | None = None
    nickname: str | None = None
    preferred_username: str | None = None
    profile: str | None = None
    picture: str | None = None
    website: str | None = None
    email: str | None = None
    email_verified: bool | None = None
    gender: str | None = None
    birthdate: str | None = None
    zoneinfo: str | None = None
    locale: str | None = None
    phone_number: str | None = None
    phone_number_verified: bool | None = None
    address: Address | None = None
    updated_at: int | None = None

    def __repr__(self) -> str:
        # PII stays out of reprs; only the set of claim names is shown
        return f"UserInfo(sub='<REDACTED>', claims={sorted(self.model_dump(exclude_none=True))!r})"

    def __str__(self) -> str:
        return self.__repr__()


class RegistrationResponse(BaseModel):
    """
    Client information returned by a dynamic registration endpoint.

    Accepts both the singular `redirect_uri`/`response_type` members and the
    RFC 7591 `redirect_uris`/`response_types` arrays (first entry wins).
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    client_id: str = Field(..., min_length=1)
    client_secret: SecretStr | None = None
    redirect_uri: str
    response_type: ResponseType = "code"

    @model_validator(mode="before")
    @classmethod
    def collapse_plural_members(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        redirect_uris = data.get("redirect_uris")
        if "redirect_uri" not in data and isinstance(redirect_uris, list) and redirect_uris:
            data["redirect_uri"] = redirect_uris[0]
        response_types = data.get("response_types")
        if "response_type" not in data and isinstance(response_types, list) and response_types:
            data["response_type"] = response_types[0]
        return data

    def client_options(self) -> ClientOptions:
        return ClientOptions(
            client_id=self.client_id,
            client_secret=self.client_secret,
            redirect_uri=self.redirect_uri,
            response_type=self.response_type,
        )
