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
RelyingParty component orchestrating discovery, login and token use from configuration.
"""

from typing import Any

import anyio
import httpx
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from coreason_oidc.client import Client
from coreason_oidc.config import OIDCClientConfig
from coreason_oidc.generator import Generator
from coreason_oidc.issuer import Issuer
from coreason_oidc.models import CallbackChecks, LoginRequest, UserInfo
from coreason_oidc.token_set import TokenSet
from coreason_oidc.utils.logger import logger


class RelyingParty:
    """
    Async facade over Issuer and Client driven by `OIDCClientConfig`.

    Handles the HTTP client via async context manager. Session persistence of the
    `CallbackChecks` between `begin_login` and `complete_login` is the caller's job.
    """

    def __init__(
        self,
        config: OIDCClientConfig,
        client: httpx.AsyncClient | None = None,
        issuer: Issuer | None = None,
    ) -> None:
        """
        Initialize the RelyingParty.

        Args:
            config: The configuration object.
            client: External async client (optional). If not provided, one is created with the configured timeout.
            issuer: A pre-built issuer (optional). If not provided, it is discovered on first use.
        """
        self.config = config
        self._internal_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.http_timeout)

        # Instrument the client for distributed tracing
        HTTPXClientInstrumentor().instrument_client(self._client)

        self._issuer = issuer
        self._oidc_client: Client | None = None
        self._lock: anyio.Lock | None = None

    async def __aenter__(self) -> "RelyingParty":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._internal_client:
            await self._client.aclose()

    async def get_issuer(self) -> Issuer:
        """
        Returns the issuer, discovering it once on first call.

        Raises:
            NetworkError: If discovery fails.
            OIDCValidationError: If the discovery document is invalid.
        """
        if self._issuer is not None:
            return self._issuer

        if self._lock is None:
            self._lock = anyio.Lock()

        async with self._lock:
            # Another task may have finished discovery while we waited
            if self._issuer is None:
                logger.debug(f"Discovering issuer from {self.config.issuer}")
                self._issuer = await Issuer.discover(
                    self.config.issuer, http_client=self._client, max_bytes=self.config.max_response_bytes
                )
        return self._issuer

    async def get_client(self) -> Client:
        if self._oidc_client is None:
            issuer = await self.get_issuer()
            self._oidc_client = Client(
                issuer,
                self.config.client_options(),
                http_client=self._client,
                max_response_bytes=self.config.max_response_bytes,
            )
        return self._oidc_client

    async def begin_login(self, **params: Any) -> LoginRequest:
        """
        Starts an authorization code login.

        Generates fresh state and nonce (and a PKCE pair when `use_pkce` is set) and builds
        the authorization URL.

        Args:
            **params: Extra authorization parameters (prompt, login_hint, ...).

        Returns:
            LoginRequest: The URL to redirect to and the checks to persist for the callback.
        """
        client = await self.get_client()

        state = Generator.state()
        nonce = Generator.nonce()
        code_verifier = None
        request: dict[str, Any] = {"scope": self.config.scopes, **params, "state": state, "nonce": nonce}
        if self.config.use_pkce:
            code_verifier, code_challenge = Generator.pkce()
            request["code_challenge"] = code_challenge
            request["code_challenge_method"] = "S256"

        url = client.authorization_url(request)
        checks = CallbackChecks(
            response_type=self.config.response_type,
            state=state,
            nonce=nonce,
            code_verifier=code_verifier,
        )
        return LoginRequest(url=url, checks=checks)

    async def complete_login(
        self, callback: str | httpx.URL | httpx.Request, checks: CallbackChecks
    ) -> TokenSet:
        """
        Verifies the callback against the stored checks and exchanges the code.

        Raises:
            StateMismatchError, StateMissingError, CallbackChecksError, OIDCError, UnsupportedFlowError:
                See `Client.oauth_callback`.
        """
        client = await self.get_client()
        params = await client.callback_params(callback)
        return await client.oauth_callback(self.config.redirect_uri, params, checks)

    async def userinfo(self, tokens: TokenSet | str) -> UserInfo:
        client = await self.get_client()
        return await client.userinfo(tokens)

    async def refresh(self, tokens: TokenSet | str) -> TokenSet:
        client = await self.get_client()
        return await client.refresh(tokens)
