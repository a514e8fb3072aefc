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
Issuer component: validated authorization server metadata and discovery.
"""

import copy
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Literal
from urllib.parse import urlsplit, urlunsplit

import httpx
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from coreason_oidc.exceptions import CoreasonOIDCError, OIDCValidationError
from coreason_oidc.models import ClientOptions, ResponseType, ensure_absolute_url
from coreason_oidc.transport import JSON_HEADERS, MAX_RESPONSE_BYTES, http_session, read_json, require_success, send
from coreason_oidc.utils.logger import logger

if TYPE_CHECKING:
    from coreason_oidc.client import Client

tracer = trace.get_tracer(__name__)

WELL_KNOWN_PATH = ".well-known/openid-configuration"

TokenEndpointAuthMethod = Literal[
    "client_secret_basic",
    "client_secret_post",
    "client_secret_jwt",
    "private_key_jwt",
    "tls_client_auth",
    "self_signed_tls_client_auth",
    "none",
]


class IssuerMetadata(BaseModel):
    """
    OpenID Provider metadata (OpenID Connect Discovery 1.0, section 3).

    Endpoints are stored verbatim after checking they are absolute URLs. Members not
    declared here are preserved in `model_extra`.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    issuer: str = Field(..., min_length=1)
    authorization_endpoint: str
    token_endpoint: str
    userinfo_endpoint: str

    registration_endpoint: str | None = None
    revocation_endpoint: str | None = None
    introspection_endpoint: str | None = None
    end_session_endpoint: str | None = None
    jwks_uri: str | None = None
    device_authorization_endpoint: str | None = None
    mfa_challenge_endpoint: str | None = None

    claim_types_supported: list[Literal["normal", "aggregated", "distributed"]] = Field(
        default_factory=lambda: ["normal"]
    )
    claims_parameter_supported: bool = False
    grant_types_supported: list[str] = Field(default_factory=lambda: ["authorization_code", "implicit"])
    request_parameter_supported: bool = False
    request_uri_parameter_supported: bool = True
    require_request_uri_registration: bool = False
    response_modes_supported: list[Literal["query", "fragment", "form_post"]] = Field(
        default_factory=lambda: ["query", "fragment"]
    )
    token_endpoint_auth_methods_supported: list[TokenEndpointAuthMethod] = Field(
        default_factory=lambda: ["client_secret_basic"]
    )

    response_types_supported: list[ResponseType] | None = None
    scopes_supported: list[str] | None = None
    code_challenge_methods_supported: list[Literal["plain", "S256"]] | None = None
    claims_supported: list[str] | None = None
    subject_types_supported: list[str] | None = None
    id_token_signing_alg_values_supported: list[str] | None = None
    token_endpoint_auth_signing_alg_values_supported: list[str] | None = None

    @field_validator(
        "authorization_endpoint",
        "token_endpoint",
        "userinfo_endpoint",
        "registration_endpoint",
        "revocation_endpoint",
        "introspection_endpoint",
        "end_session_endpoint",
        "jwks_uri",
        "device_authorization_endpoint",
        "mfa_challenge_endpoint",
    )
    @classmethod
    def check_endpoint(cls, v: str | None) -> str | None:
        return None if v is None else ensure_absolute_url(v)


class Issuer:
    """
    An authorization server described by validated, immutable metadata.

    Example:
        issuer = await Issuer.discover("https://auth.company.tld")
        client = issuer.client(client_id="...", redirect_uri="https://app.tld/callback")
    """

    def __init__(self, metadata: "Mapping[str, Any] | IssuerMetadata") -> None:
        """
        Validate the given metadata.

        Args:
            metadata: A metadata document or an already validated `IssuerMetadata`.

        Raises:
            OIDCValidationError: If required endpoints are missing or malformed.
        """
        if isinstance(metadata, IssuerMetadata):
            self._metadata = metadata.model_copy(deep=True)
            return
        try:
            self._metadata = IssuerMetadata.model_validate(dict(metadata))
        except (ValidationError, TypeError, ValueError) as e:
            raise OIDCValidationError(f"Invalid issuer metadata: {e}") from e

    @property
    def metadata(self) -> dict[str, Any]:
        """A deep copy of the metadata, defaults and unknown members included."""
        return copy.deepcopy(self._metadata.model_dump(exclude_none=True))

    def get(self, name: str) -> Any:
        """Returns a copy of a single metadata member, or None when absent."""
        return self.metadata.get(name)

    @property
    def issuer(self) -> str:
        return self._metadata.issuer

    def client(
        self,
        options: "ClientOptions | Mapping[str, Any] | None" = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        **kwargs: Any,
    ) -> "Client":
        """
        Binds this issuer to a relying party configuration. No I/O.

        Args:
            options: A `ClientOptions`, or a mapping of its fields.
            http_client: Optional shared HTTP client for the returned `Client`.
            **kwargs: `ClientOptions` fields, when `options` is omitted.

        Raises:
            OIDCValidationError: If the options are invalid.
        """
        from coreason_oidc.client import Client

        if not isinstance(options, ClientOptions):
            try:
                options = ClientOptions.model_validate({**dict(options or {}), **kwargs})
            except ValidationError as e:
                raise OIDCValidationError(f"Invalid client options: {e}") from e

        return Client(self, options, http_client=http_client)

    @staticmethod
    def well_known_url(location: str | httpx.URL) -> str:
        """
        Resolves the discovery document URL for an issuer location.

        Locations whose path already contains `/.well-known/` are used as-is;
        otherwise `.well-known/openid-configuration` is appended to the path.
        """
        location = str(location)
        try:
            ensure_absolute_url(location)
        except ValueError as e:
            raise OIDCValidationError(f"Invalid issuer location: {e}") from e

        parts = urlsplit(location)
        if "/.well-known/" in parts.path:
            return location

        path = parts.path if parts.path.endswith("/") else f"{parts.path}/"
        return urlunsplit((parts.scheme, parts.netloc, f"{path}{WELL_KNOWN_PATH}", "", ""))

    @classmethod
    async def discover(
        cls,
        location: str | httpx.URL,
        http_client: httpx.AsyncClient | None = None,
        max_bytes: int = MAX_RESPONSE_BYTES,
    ) -> "Issuer":
        """
        Fetches and validates the issuer's discovery document.

        Emits an OpenTelemetry span `oidc.discover`.

        Args:
            location: The issuer base URL or its well-known metadata URL.
            http_client: The async HTTP client to use. A transient client is used when omitted.
            max_bytes: Maximum accepted response size.

        Returns:
            Issuer: The discovered issuer, defaults applied.

        Raises:
            NetworkError: If the request fails or returns a non-success status.
            OIDCValidationError: If the document is not JSON or fails schema validation.
        """
        url = cls.well_known_url(location)

        with tracer.start_as_current_span("oidc.discover") as span:
            span.set_attribute("http.url", url)
            try:
                async with http_session(http_client) as client:
                    response = await send(client, "GET", url, max_bytes=max_bytes, headers=JSON_HEADERS)
                require_success(response, url)

                body = read_json(response)
                if not isinstance(body, dict):
                    raise OIDCValidationError(f"Discovery document from {url} is not a JSON object")

                issuer = cls(body)
            except CoreasonOIDCError as e:
                logger.error(f"OIDC discovery failed for {url}: {e}")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            logger.info(f"Discovered issuer {issuer.issuer}")
            span.set_status(Status(StatusCode.OK))
            return issuer

    def __repr__(self) -> str:
        return f"Issuer(issuer={self._metadata.issuer!r})"
