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
Configuration for the coreason-oidc package.
"""

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from coreason_oidc.models import ClientOptions, ResponseType, ensure_absolute_url
from coreason_oidc.transport import MAX_RESPONSE_BYTES


class OIDCClientConfig(BaseSettings):
    """
    Relying party settings, read from `COREASON_OIDC_*` environment variables.

    Attributes:
        issuer (str): Issuer base URL or its well-known discovery URL.
        client_id (str): The OAuth client identifier.
        client_secret (SecretStr | None): The client secret, for confidential clients.
        redirect_uri (str): The registered callback URL.
        response_type (ResponseType): The flow to use. Defaults to "code".
        scope (str): Space-delimited scopes to request; must include "openid".
        http_timeout (float | None): Timeout in seconds for IdP requests. None (the default) applies no timeout.
        max_response_bytes (int): Maximum accepted response body size.
        use_pkce (bool): Whether logins carry an S256 code challenge.
        unsafe_local_dev (bool): Allow plain-HTTP issuer and redirect URLs.
    """

    model_config = SettingsConfigDict(
        env_prefix="COREASON_OIDC_",
        case_sensitive=False,
    )

    issuer: str
    client_id: str = Field(..., min_length=1)
    client_secret: SecretStr | None = None
    redirect_uri: str
    response_type: ResponseType = "code"
    scope: str = "openid"
    http_timeout: float | None = Field(default=None, description="Timeout in seconds for all IdP network operations.")
    max_response_bytes: int = Field(default=MAX_RESPONSE_BYTES, gt=0)
    use_pkce: bool = True
    unsafe_local_dev: bool = False

    @field_validator("issuer", "redirect_uri")
    @classmethod
    def validate_url(cls, v: str) -> str:
        return ensure_absolute_url(v.strip())

    @field_validator("scope")
    @classmethod
    def require_openid(cls, v: str) -> str:
        if "openid" not in v.split():
            raise ValueError("scope must include 'openid'")
        return " ".join(v.split())

    @model_validator(mode="after")
    def validate_https(self) -> "OIDCClientConfig":
        """
        Ensures issuer and redirect URLs use HTTPS, unless strictly opted out for local dev.
        """
        if self.unsafe_local_dev:
            return self
        for name in ("issuer", "redirect_uri"):
            if getattr(self, name).startswith("http://"):
                raise ValueError(
                    f"HTTPS is required for {name} in production. Set 'unsafe_local_dev=True' only for local testing."
                )
        return self

    @property
    def scopes(self) -> list[str]:
        return self.scope.split()

    def client_options(self) -> ClientOptions:
        return ClientOptions(
            client_id=self.client_id,
            client_secret=self.client_secret,
            redirect_uri=self.redirect_uri,
            response_type=self.response_type,
        )
