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
Random values for `state`, `nonce` and PKCE (RFC 7636).
"""

import string

from authlib.common.security import generate_token
from authlib.oauth2.rfc7636 import create_s256_code_challenge

from coreason_oidc.exceptions import OIDCValidationError

# RFC 7636 section 4.1 unreserved characters
UNRESERVED_CHARACTERS = string.ascii_letters + string.digits + "-._~"

MIN_VERIFIER_LENGTH = 43
MAX_VERIFIER_LENGTH = 128
OPAQUE_VALUE_LENGTH = 43


class Generator:
    """
    Produces unguessable values for an authorization request.

    All randomness comes from the operating system CSPRNG (`random.SystemRandom`
    through Authlib's `generate_token`).
    """

    @staticmethod
    def state() -> str:
        """Opaque value echoed back on the callback to detect CSRF."""
        return generate_token(OPAQUE_VALUE_LENGTH, UNRESERVED_CHARACTERS)

    @staticmethod
    def nonce() -> str:
        """Opaque value bound into the ID token to detect replay."""
        return generate_token(OPAQUE_VALUE_LENGTH, UNRESERVED_CHARACTERS)

    @staticmethod
    def code_verifier(length: int = MAX_VERIFIER_LENGTH) -> str:
        """
        Generate a PKCE code verifier.

        Args:
            length: Number of characters, between 43 and 128 inclusive. Defaults to 128.

        Returns:
            A random string over the unreserved character set.

        Raises:
            OIDCValidationError: If `length` is outside the RFC 7636 bounds.
        """
        if not MIN_VERIFIER_LENGTH <= length <= MAX_VERIFIER_LENGTH:
            raise OIDCValidationError(
                f"code_verifier length must be between {MIN_VERIFIER_LENGTH} and {MAX_VERIFIER_LENGTH}, got {length}"
            )
        return generate_token(length, UNRESERVED_CHARACTERS)

    @staticmethod
    def code_challenge(code_verifier: str) -> str:
        """
        Derive the S256 code challenge: BASE64URL(SHA256(ASCII(code_verifier))) without padding.
        """
        return create_s256_code_challenge(code_verifier)

    @classmethod
    def pkce(cls) -> tuple[str, str]:
        """Returns a fresh `(code_verifier, code_challenge)` pair."""
        verifier = cls.code_verifier()
        return verifier, cls.code_challenge(verifier)
