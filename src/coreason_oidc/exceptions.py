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
Custom exceptions for the coreason-oidc package.

Every error carries a `kind` from the closed `ErrorKind` enumeration so callers can
branch on the failure category (e.g. log CSRF attempts separately) without relying
on class identity alone.
"""

from enum import StrEnum
from typing import ClassVar


class ErrorKind(StrEnum):
    VALIDATION = "validation"
    CONFIGURATION = "configuration"
    PROTOCOL = "protocol"
    STATE_MISMATCH = "state_mismatch"
    STATE_MISSING = "state_missing"
    CALLBACK_CHECKS = "callback_checks"
    NETWORK = "network"
    UNSUPPORTED_FLOW = "unsupported_flow"


class OAuthErrorCode(StrEnum):
    """Standard OAuth 2.0 error codes (RFC 6749 sections 4.1.2.1 and 5.2)."""

    INVALID_REQUEST = "invalid_request"
    INVALID_CLIENT = "invalid_client"
    INVALID_GRANT = "invalid_grant"
    UNAUTHORIZED_CLIENT = "unauthorized_client"
    UNSUPPORTED_GRANT_TYPE = "unsupported_grant_type"
    INVALID_SCOPE = "invalid_scope"
    ACCESS_DENIED = "access_denied"
    UNSUPPORTED_RESPONSE_TYPE = "unsupported_response_type"
    SERVER_ERROR = "server_error"
    TEMPORARILY_UNAVAILABLE = "temporarily_unavailable"


class CoreasonOIDCError(Exception):
    """Base exception for all coreason-oidc errors."""

    kind: ClassVar[ErrorKind]


class OIDCValidationError(CoreasonOIDCError):
    """
    Raised when caller-supplied or server-supplied data fails schema checks
    (issuer metadata, authorization parameters, token responses, claims).
    """

    kind = ErrorKind.VALIDATION


class ConfigurationError(CoreasonOIDCError):
    """Raised when the issuer metadata lacks an endpoint an operation needs."""

    kind = ErrorKind.CONFIGURATION

    def __init__(self, endpoint: str) -> None:
        super().__init__(f"{endpoint} must be configured on the issuer")
        self.endpoint = endpoint


class OIDCError(CoreasonOIDCError):
    """
    Raised when the authorization server explicitly reports an OAuth error,
    either on the callback or in a token/userinfo endpoint response.

    Attributes:
        code (str): The OAuth error code (see `OAuthErrorCode`), verbatim from the server.
        description (str | None): Human-readable error description.
        uri (str | None): URI of a page with more information.
    """

    kind = ErrorKind.PROTOCOL

    def __init__(self, code: str, description: str | None = None, uri: str | None = None) -> None:
        message = code
        if description:
            message += f": {description}"
        if uri:
            message += f" ({uri})"
        super().__init__(message)
        self.code = code
        self.description = description
        self.uri = uri


ProtocolError = OIDCError


class StateMismatchError(CoreasonOIDCError):
    """Raised when the callback state differs from the expected state (possible CSRF)."""

    kind = ErrorKind.STATE_MISMATCH


class StateMissingError(CoreasonOIDCError):
    """Raised when a state was expected but the callback carries none."""

    kind = ErrorKind.STATE_MISSING


class CallbackChecksError(CoreasonOIDCError):
    """
    Raised when callback parameters do not satisfy the caller's checks
    (missing state check, missing response parameters, nonce mismatch).
    """

    kind = ErrorKind.CALLBACK_CHECKS


class NetworkError(CoreasonOIDCError):
    """Raised on transport failure or a non-success status without an OAuth error body."""

    kind = ErrorKind.NETWORK

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class OversizedResponseError(NetworkError):
    """Raised when an HTTP response is too large."""


class UnsupportedFlowError(CoreasonOIDCError):
    """Raised for implicit and hybrid flow responses, which are not implemented."""

    kind = ErrorKind.UNSUPPORTED_FLOW
