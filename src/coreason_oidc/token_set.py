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
TokenSet value object wrapping a token endpoint response.
"""

import json
import time
from typing import Any

from authlib.common.encoding import to_bytes, urlsafe_b64decode
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from coreason_oidc.exceptions import OIDCValidationError


def decode_jwt_payload(token: str) -> dict[str, Any]:
    """
    Decodes the payload segment of a compact JWT WITHOUT verifying its signature.

    Args:
        token: A `<header>.<payload>.<signature>` string.

    Returns:
        dict[str, Any]: The JSON payload.

    Raises:
        ValueError: If the token is not a compact JWS or the payload is not a JSON object.
    """
    segments = token.split(".")
    if len(segments) != 3:
        raise ValueError("token is not a compact JWT")

    payload = json.loads(urlsafe_b64decode(to_bytes(segments[1], "ascii")))
    if not isinstance(payload, dict):
        raise ValueError("JWT payload is not a JSON object")
    return payload


class TokenSet(BaseModel):
    """
    Immutable snapshot of one token endpoint response.

    A refresh produces a new TokenSet; instances are never mutated.

    Attributes:
        access_token (str): The access token issued by the authorization server.
        token_type (str): Always "Bearer" (input is matched case-insensitively).
        expires_in (int): Lifetime of the access token in seconds.
        scope (str | None): Space-delimited granted scopes.
        id_token (str | None): The ID token, if issued.
        refresh_token (str | None): The refresh token, if issued.
        session_state (str | None): OIDC session management state, if issued.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: str = Field(..., min_length=1)
    token_type: str
    expires_in: int = Field(..., ge=0)
    scope: str | None = None
    id_token: str | None = None
    refresh_token: str | None = None
    session_state: str | None = None

    @field_validator("token_type")
    @classmethod
    def normalize_token_type(cls, v: str) -> str:
        if v.lower() != "bearer":
            raise ValueError(f"unsupported token_type {v!r}, expected Bearer")
        return "Bearer"

    @classmethod
    def from_response(cls, data: Any) -> "TokenSet":
        """
        Validates a decoded token endpoint body.

        Raises:
            OIDCValidationError: If the body does not match the token response schema.
        """
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise OIDCValidationError(f"Invalid token response: {e}") from e

    @classmethod
    def from_json(cls, raw: str | bytes) -> "TokenSet":
        """
        Rebuilds a TokenSet from `to_json()` output.

        Raises:
            OIDCValidationError: If the document is not a valid token set.
        """
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise OIDCValidationError(f"Invalid serialized TokenSet: {e}") from e

    @property
    def scopes(self) -> list[str]:
        return self.scope.split() if self.scope else []

    def expired(self, now: float | None = None) -> bool:
        """
        Whether the access token's `exp` claim lies in the past.

        Opaque access tokens and tokens without a numeric `exp` claim are never
        considered expired.
        """
        try:
            exp = decode_jwt_payload(self.access_token).get("exp")
        except ValueError:
            return False

        if isinstance(exp, bool) or not isinstance(exp, (int, float)):
            return False

        current = time.time() if now is None else now
        return exp <= current

    def claims(self) -> dict[str, Any]:
        """
        Returns the ID token payload. The signature is NOT verified.

        Raises:
            OIDCValidationError: If no ID token is present or it cannot be decoded.
        """
        if not self.id_token:
            raise OIDCValidationError("id_token not present in TokenSet")
        try:
            return decode_jwt_payload(self.id_token)
        except ValueError as e:
            raise OIDCValidationError(f"Malformed id_token: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)

    def to_json(self) -> str:
        """Serializes the validated fields, e.g. for persisting into a session."""
        return self.model_dump_json(exclude_none=True)

    def __repr__(self) -> str:
        # Token values MUST NOT leak through reprs or logs
        return (
            f"TokenSet(access_token='<REDACTED>', "
            f"token_type={self.token_type!r}, "
            f"expires_in={self.expires_in!r}, "
            f"scope={self.scope!r}, "
            f"id_token={'<REDACTED>' if self.id_token else None!r}, "
            f"refresh_token={'<REDACTED>' if self.refresh_token else None!r})"
        )

    def __str__(self) -> str:
        return self.__repr__()


def resolve_refresh_token(value: "TokenSet | str") -> str:
    """
    Extracts the refresh token from a TokenSet, or passes a raw token through.

    Raises:
        OIDCValidationError: If no refresh token is available.
    """
    token = value.refresh_token if isinstance(value, TokenSet) else value
    if not token:
        raise OIDCValidationError("refresh_token not present in TokenSet")
    return token
