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
OpenID Connect relying party engine: discovery, authorization requests, callback
verification and token grants.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .client import Client
from .config import OIDCClientConfig
from .exceptions import (
    CallbackChecksError,
    ConfigurationError,
    CoreasonOIDCError,
    ErrorKind,
    NetworkError,
    OAuthErrorCode,
    OIDCError,
    OIDCValidationError,
    OversizedResponseError,
    ProtocolError,
    StateMismatchError,
    StateMissingError,
    UnsupportedFlowError,
)
from .generator import Generator
from .issuer import Issuer, IssuerMetadata
from .manager import RelyingParty
from .models import AuthorizationParams, CallbackChecks, ClientOptions, LoginRequest, UserInfo
from .token_set import TokenSet, resolve_refresh_token

__all__ = [
    "AuthorizationParams",
    "CallbackChecks",
    "CallbackChecksError",
    "Client",
    "ClientOptions",
    "ConfigurationError",
    "CoreasonOIDCError",
    "ErrorKind",
    "Generator",
    "Issuer",
    "IssuerMetadata",
    "LoginRequest",
    "NetworkError",
    "OAuthErrorCode",
    "OIDCClientConfig",
    "OIDCError",
    "OIDCValidationError",
    "OversizedResponseError",
    "ProtocolError",
    "RelyingParty",
    "StateMismatchError",
    "StateMissingError",
    "TokenSet",
    "UnsupportedFlowError",
    "UserInfo",
    "resolve_refresh_token",
]
