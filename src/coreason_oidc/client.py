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
Client component: authorization requests, callback verification and token grants.
"""

import hmac
import re
from collections.abc import Mapping
from typing import Any, Literal
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import ValidationError

from coreason_oidc.exceptions import (
    CallbackChecksError,
    ConfigurationError,
    CoreasonOIDCError,
    NetworkError,
    OIDCError,
    OIDCValidationError,
    StateMismatchError,
    StateMissingError,
    UnsupportedFlowError,
)
from coreason_oidc.issuer import Issuer
from coreason_oidc.models import (
    AuthorizationParams,
    CallbackChecks,
    ClientOptions,
    OAuthErrorResponse,
    RegistrationResponse,
    UserInfo,
    response_type_components,
)
from coreason_oidc.token_set import TokenSet, resolve_refresh_token
from coreason_oidc.transport import (
    FORM_HEADERS,
    JSON_HEADERS,
    MAX_RESPONSE_BYTES,
    http_session,
    is_success,
    read_json,
    send,
)
from coreason_oidc.utils.logger import fingerprint, logger

tracer = trace.get_tracer(__name__)

# Standard parameters following the five required ones, in emission order
OPTIONAL_AUTHORIZATION_PARAMS = (
    "code_challenge",
    "code_challenge_method",
    "response_mode",
    "nonce",
    "display",
    "prompt",
    "max_age",
    "ui_locales",
    "id_token_hint",
    "login_hint",
    "acr_values",
)

# Parameters each response type member requires on the callback
RESPONSE_TYPE_PARAMS = {
    "code": ("code",),
    "id_token": ("id_token",),
    "token": ("access_token", "token_type"),
}

WWW_AUTHENTICATE_PARAM = re.compile(r'(\w+)=(?:"([^"]*)"|([^\s,]+))')


def _query_value(value: Any) -> str | None:
    if not value:
        return None
    if isinstance(value, (list, tuple)):
        return " ".join(str(item) for item in value)
    return str(value)


def _parse_www_authenticate(header: str) -> dict[str, str]:
    """Extracts `key="value"` pairs from a Bearer challenge."""
    params = {}
    for match in WWW_AUTHENTICATE_PARAM.finditer(header):
        quoted, bare = match.group(2), match.group(3)
        params[match.group(1)] = quoted if quoted is not None else bare
    return params


class Client:
    """
    A relying party bound to one issuer.

    Instances hold no mutable state: the issuer metadata is copied on read and the
    options are frozen, so a single Client can be shared by concurrent tasks.

    Attributes:
        issuer (Issuer): The authorization server this client talks to.
        options (ClientOptions): The relying party registration.
    """

    def __init__(
        self,
        issuer: Issuer,
        options: ClientOptions,
        http_client: httpx.AsyncClient | None = None,
        max_response_bytes: int = MAX_RESPONSE_BYTES,
    ) -> None:
        """
        Initialize the Client.

        Args:
            issuer: The issuer to bind to.
            options: Client credentials and defaults.
            http_client: Async HTTP client to reuse. When omitted every call uses a fresh transient client.
            max_response_bytes: Maximum accepted response body size.
        """
        self.issuer = issuer
        self.options = options
        self._http_client = http_client
        self.max_response_bytes = max_response_bytes

    def _endpoint(self, name: str) -> str:
        """
        Raises:
            ConfigurationError: If the issuer metadata has no such endpoint.
        """
        url = self.issuer.get(name)
        if not url:
            raise ConfigurationError(name)
        return str(url)

    def authorization_url(self, params: AuthorizationParams | Mapping[str, Any] | None = None, **kwargs: Any) -> str:
        """
        Builds the authorization endpoint URL for an authentication request. No I/O.

        Query order is fixed: response_type, client_id, scope, redirect_uri, state, then
        the optional standard parameters, then any extra parameters as given.

        Args:
            params: An `AuthorizationParams`, or a mapping of its fields.
            **kwargs: `AuthorizationParams` fields, merged over `params`.

        Returns:
            str: The URL to redirect the user agent to.

        Raises:
            OIDCValidationError: If `state` is missing, `scope` lacks `openid`, or a value is malformed.
            ConfigurationError: If the issuer has no authorization endpoint.
        """
        if isinstance(params, AuthorizationParams) and not kwargs:
            request = params
        else:
            raw = params.model_dump(exclude_unset=True) if isinstance(params, AuthorizationParams) else dict(params or {})
            try:
                request = AuthorizationParams.model_validate({**raw, **kwargs})
            except ValidationError as e:
                raise OIDCValidationError(f"Invalid arguments for Client.authorization_url: {e}") from e

        endpoint = self._endpoint("authorization_endpoint")

        query: list[tuple[str, str]] = [
            ("response_type", request.response_type or self.options.response_type),
            ("client_id", request.client_id or self.options.client_id),
            ("scope", " ".join(request.scope)),
            ("redirect_uri", request.redirect_uri or self.options.redirect_uri),
            ("state", request.state),
        ]
        for name in OPTIONAL_AUTHORIZATION_PARAMS:
            value = _query_value(getattr(request, name))
            if value is not None:
                query.append((name, value))
        for name, raw_value in (request.model_extra or {}).items():
            value = _query_value(raw_value)
            if value is not None:
                query.append((name, value))

        parts = urlsplit(endpoint)
        existing = parse_qsl(parts.query, keep_blank_values=True)
        return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(existing + query), ""))

    async def callback_params(self, source: str | httpx.URL | httpx.Request) -> dict[str, str]:
        """
        Extracts the authorization response parameters from a callback.

        URLs and GET requests yield their query string; POST requests (form_post
        response mode) yield their form-encoded body.

        Raises:
            OIDCValidationError: If a POST request has no body, or the method is neither GET nor POST.
        """
        if isinstance(source, httpx.Request):
            if source.method == "GET":
                return dict(parse_qsl(source.url.query.decode("ascii"), keep_blank_values=True))
            if source.method != "POST":
                raise OIDCValidationError(f"Cannot read callback parameters from a {source.method} request")

            body = await source.aread()
            if not body:
                raise OIDCValidationError("Callback POST request has no body")
            try:
                decoded = body.decode("utf-8")
            except UnicodeDecodeError as e:
                raise OIDCValidationError(f"Callback POST body is not valid UTF-8: {e}") from e
            return dict(parse_qsl(decoded, keep_blank_values=True))

        return dict(parse_qsl(urlsplit(str(source)).query, keep_blank_values=True))

    async def oauth_callback(
        self,
        redirect_uri: str | httpx.URL,
        params: Mapping[str, str],
        checks: CallbackChecks | Mapping[str, Any],
    ) -> TokenSet:
        """
        Verifies an authorization response and exchanges its code for tokens.

        Checks run in a fixed order, each one terminal: state, server error,
        response type parameters, unsupported flows, then the code exchange.
        Nothing reaches the network until state verification has passed.

        Args:
            redirect_uri: The redirect URI used in the authorization request.
            params: The callback parameters (see `callback_params`).
            checks: The values stored when the login started.

        Returns:
            TokenSet: The tokens issued for the authorization code.

        Raises:
            CallbackChecksError: If `checks.state` is missing, required parameters are absent, or the nonce differs.
            StateMissingError: If the callback carries no state while one is expected.
            StateMismatchError: If the callback state differs from `checks.state`.
            OIDCError: If the callback carries an `error`, or the token endpoint rejects the code.
            UnsupportedFlowError: For implicit and hybrid response types.
        """
        if not isinstance(checks, CallbackChecks):
            try:
                checks = CallbackChecks.model_validate(dict(checks))
            except ValidationError as e:
                raise OIDCValidationError(f"Invalid callback checks: {e}") from e

        incoming_state = params.get("state")
        if incoming_state is not None and checks.state is None:
            raise CallbackChecksError("checks.state argument is missing")
        if incoming_state is None and checks.state is not None:
            raise StateMissingError("state missing from the response")
        if incoming_state is not None and checks.state is not None:
            if not hmac.compare_digest(incoming_state.encode("utf-8"), checks.state.encode("utf-8")):
                logger.warning("Callback state mismatch")
                raise StateMismatchError("state mismatch")

        if params.get("error"):
            raise OIDCError(params["error"], params.get("error_description"), params.get("error_uri"))

        components = response_type_components(checks.response_type)
        for component in sorted(components & RESPONSE_TYPE_PARAMS.keys()):
            for name in RESPONSE_TYPE_PARAMS[component]:
                if not params.get(name):
                    raise CallbackChecksError(f"{name} missing from response (response_type={checks.response_type})")

        if "none" in components:
            for name in ("code", "id_token", "access_token"):
                if name in params:
                    raise CallbackChecksError(f"unexpected {name} in response (response_type=none)")

        if components & {"id_token", "token"}:
            raise UnsupportedFlowError(
                f"response_type={checks.response_type} is not supported; implicit and hybrid flows are not implemented"
            )

        if "code" in components:
            body = {
                "grant_type": "authorization_code",
                "code": params["code"],
                "redirect_uri": str(redirect_uri),
            }
            if checks.code_verifier:
                body["code_verifier"] = checks.code_verifier

            tokens = await self.grant(body)
            if checks.nonce is not None:
                self._check_nonce(tokens, checks.nonce)
            return tokens

        raise CallbackChecksError("no valid response_type")

    @staticmethod
    def _check_nonce(tokens: TokenSet, expected: str) -> None:
        if not tokens.id_token:
            raise CallbackChecksError("id_token missing from token response while a nonce was expected")
        nonce = tokens.claims().get("nonce")
        if not isinstance(nonce, str) or not hmac.compare_digest(nonce.encode("utf-8"), expected.encode("utf-8")):
            logger.warning("ID token nonce mismatch")
            raise CallbackChecksError("nonce mismatch")

    async def grant(self, body: Mapping[str, str]) -> TokenSet:
        """
        Performs a token endpoint request. Every grant type goes through here.

        `client_id` and, when configured, `client_secret` are added to the form body.
        Emits an OpenTelemetry span `oidc.grant`.

        Args:
            body: Form parameters, including `grant_type`.

        Returns:
            TokenSet: The validated token response.

        Raises:
            ConfigurationError: If the issuer has no token endpoint.
            OIDCError: If the server answers with an OAuth error body.
            NetworkError: On transport failure or an error status without an OAuth error body.
            OIDCValidationError: If a successful body does not match the token response schema.
        """
        url = self._endpoint("token_endpoint")

        form = dict(body)
        form["client_id"] = self.options.client_id
        if self.options.client_secret is not None:
            form["client_secret"] = self.options.client_secret.get_secret_value()

        grant_type = form.get("grant_type", "unknown")
        with tracer.start_as_current_span("oidc.grant") as span:
            span.set_attribute("oauth.grant_type", grant_type)
            try:
                async with http_session(self._http_client) as client:
                    response = await send(
                        client, "POST", url, max_bytes=self.max_response_bytes, headers=FORM_HEADERS, data=form
                    )

                if not is_success(response):
                    raise self._token_error(response, url)

                tokens = TokenSet.from_response(read_json(response))
            except CoreasonOIDCError as e:
                logger.warning(f"{grant_type} grant failed: {e}")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            logger.info(f"{grant_type} grant succeeded")
            span.set_status(Status(StatusCode.OK))
            return tokens

    @staticmethod
    def _token_error(response: httpx.Response, url: str) -> CoreasonOIDCError:
        try:
            error = OAuthErrorResponse.model_validate(read_json(response))
        except (OIDCValidationError, ValidationError):
            return NetworkError(
                f"{url} returned HTTP {response.status_code}", status_code=response.status_code
            )
        return OIDCError(error.error, error.error_description, error.error_uri)

    async def refresh(self, token: TokenSet | str, scope: str | None = None) -> TokenSet:
        """
        Exchanges a refresh token for a new TokenSet.

        Args:
            token: A raw refresh token, or a TokenSet holding one.
            scope: Optional narrower scope.

        Raises:
            OIDCValidationError: If a TokenSet without refresh token is given.
        """
        body = {"grant_type": "refresh_token", "refresh_token": resolve_refresh_token(token)}
        if scope:
            body["scope"] = scope
        return await self.grant(body)

    async def client_credentials(self, audience: str | None = None, scope: str | None = None) -> TokenSet:
        """Requests a token for the client itself (client_credentials grant)."""
        body = {"grant_type": "client_credentials"}
        if audience:
            body["audience"] = audience
        if scope:
            body["scope"] = scope
        return await self.grant(body)

    async def userinfo(
        self,
        access_token: TokenSet | str,
        method: Literal["GET", "POST"] = "GET",
        via: Literal["header", "body"] = "header",
    ) -> UserInfo:
        """
        Fetches the claims about the authenticated end-user.

        Emits an OpenTelemetry span `oidc.userinfo`.

        Args:
            access_token: The access token, or a TokenSet holding it.
            method: HTTP method, "GET" or "POST".
            via: Send the token as an Authorization header or as a form body parameter.

        Returns:
            UserInfo: The claims, unknown ones preserved.

        Raises:
            OIDCValidationError: For an invalid method/via combination or a malformed response.
            ConfigurationError: If the issuer has no userinfo endpoint.
            OIDCError: If the server returns a Bearer error challenge.
            NetworkError: On transport failure or other error statuses.
        """
        method = method.upper()  # type: ignore[assignment]
        if method not in ("GET", "POST"):
            raise OIDCValidationError("Client.userinfo method can only be GET or POST")
        if via not in ("header", "body"):
            raise OIDCValidationError("Client.userinfo via can only be header or body")
        if via == "body" and method == "GET":
            raise OIDCValidationError("Cannot send the access token in the body with the GET method")

        url = self._endpoint("userinfo_endpoint")
        token = access_token.access_token if isinstance(access_token, TokenSet) else access_token

        kwargs: dict[str, Any] = {"headers": dict(JSON_HEADERS)}
        if via == "header":
            kwargs["headers"]["authorization"] = f"Bearer {token}"
        else:
            kwargs["headers"]["content-type"] = "application/x-www-form-urlencoded"
            kwargs["data"] = {"access_token": token}

        with tracer.start_as_current_span("oidc.userinfo") as span:
            try:
                async with http_session(self._http_client) as client:
                    response = await send(client, method, url, max_bytes=self.max_response_bytes, **kwargs)

                if not is_success(response):
                    raise self._userinfo_error(response, url)

                try:
                    info = UserInfo.model_validate(read_json(response))
                except ValidationError as e:
                    raise OIDCValidationError(f"Invalid userinfo response: {e}") from e
            except CoreasonOIDCError as e:
                logger.warning(f"Userinfo request failed: {e}")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            user_hash = fingerprint(info.sub)
            logger.info(f"Fetched userinfo for subject {user_hash}")
            span.set_attribute("enduser.id", user_hash)
            span.set_status(Status(StatusCode.OK))
            return info

    @staticmethod
    def _userinfo_error(response: httpx.Response, url: str) -> CoreasonOIDCError:
        challenge = _parse_www_authenticate(response.headers.get("www-authenticate", ""))
        if challenge.get("error"):
            return OIDCError(challenge["error"], challenge.get("error_description"), challenge.get("error_uri"))
        return NetworkError(
            f"Failed to fetch userinfo: HTTP {response.status_code} from {url}", status_code=response.status_code
        )

    async def revoke(self, token: str, token_type_hint: Literal["access_token", "refresh_token"] | None = None) -> None:
        """
        Revokes an access or refresh token (RFC 7009).

        Raises:
            ConfigurationError: If the issuer has no revocation endpoint.
            OIDCError: If the server answers with an OAuth error body.
            NetworkError: On transport failure or an error status without an OAuth error body.
        """
        url = self._endpoint("revocation_endpoint")

        form = {"token": token, "client_id": self.options.client_id}
        if token_type_hint:
            form["token_type_hint"] = token_type_hint
        if self.options.client_secret is not None:
            form["client_secret"] = self.options.client_secret.get_secret_value()

        with tracer.start_as_current_span("oidc.revoke") as span:
            try:
                async with http_session(self._http_client) as client:
                    response = await send(
                        client, "POST", url, max_bytes=self.max_response_bytes, headers=FORM_HEADERS, data=form
                    )
                if not is_success(response):
                    raise self._token_error(response, url)
            except CoreasonOIDCError as e:
                logger.warning(f"Token revocation failed: {e}")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            logger.info("Token revoked")
            span.set_status(Status(StatusCode.OK))

    @classmethod
    async def register(
        cls,
        issuer: Issuer | str | httpx.URL,
        *,
        initial_access_token: str | None = None,
        client_metadata: Mapping[str, Any] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> "Client":
        """
        Registers a new client with the issuer (dynamic client registration).

        The request body is the issuer metadata, with `client_metadata` merged over it.
        Emits an OpenTelemetry span `oidc.register`.

        Args:
            issuer: An Issuer, or a location to discover one from.
            initial_access_token: Bearer token authorizing the registration, if required.
            client_metadata: Additional members for the registration request.
            http_client: The async HTTP client to use.

        Returns:
            Client: A client bound to the issuer with the issued credentials.

        Raises:
            ConfigurationError: If the issuer has no registration endpoint.
            NetworkError: On transport failure or a non-success status.
            OIDCValidationError: If the registration response is malformed.
        """
        if not isinstance(issuer, Issuer):
            issuer = await Issuer.discover(issuer, http_client=http_client)

        url = issuer.get("registration_endpoint")
        if not url:
            raise ConfigurationError("registration_endpoint")

        payload = {**issuer.metadata, **dict(client_metadata or {})}
        headers = dict(JSON_HEADERS)
        if initial_access_token:
            headers["authorization"] = f"Bearer {initial_access_token}"

        with tracer.start_as_current_span("oidc.register") as span:
            try:
                async with http_session(http_client) as client:
                    response = await send(client, "POST", url, headers=headers, json=payload)
                if not is_success(response):
                    raise cls._token_error(response, url)

                try:
                    registration = RegistrationResponse.model_validate(read_json(response))
                    options = registration.client_options()
                except ValidationError as e:
                    raise OIDCValidationError(f"Invalid registration response: {e}") from e
            except CoreasonOIDCError as e:
                logger.error(f"Client registration failed: {e}")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            logger.info(f"Registered client {options.client_id}")
            span.set_status(Status(StatusCode.OK))
            return cls(issuer, options, http_client=http_client)

    def __repr__(self) -> str:
        return f"Client(client_id={self.options.client_id!r}, issuer={self.issuer.issuer!r})"
