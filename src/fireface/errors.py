"""Authentication client errors.

This module defines the exception hierarchy raised by the Fireface auth
client. All errors inherit from AuthError to allow catch-all error handling.

Each error class carries a ``stage`` naming the part of the verification
pipeline that failed (config, fetch, parse, signature, claims, request) so
callers and logs can tell a key-endpoint outage apart from a bad token.

Security Note:
    Error messages never contain raw token contents. Key identifiers and
    endpoint URLs are considered safe to surface.
"""

from __future__ import annotations

from typing import ClassVar


class AuthError(Exception):
    """Base exception for all authentication failures.

    Attributes:
        stage: Pipeline stage that produced the error.
        error_code: HTTP status a host application should answer with.
    """

    stage: ClassVar[str] = "verify"
    error_code: ClassVar[int] = 401

    @property
    def description(self) -> str:
        return str(self.args[0]) if self.args else self.__class__.__name__


class ConfigError(AuthError):
    """Raised when the client is constructed with unusable configuration.

    This occurs when:
    - The secret key is empty
    - The base URL is empty or not an absolute http(s) URL
    """

    stage = "config"
    error_code = 500


class FetchError(AuthError):
    """Raised when the key set document cannot be retrieved.

    Covers network failures, timeouts, non-2xx responses and bodies that are
    not JSON. Fatal when warming up a client; tolerated afterwards while a
    previously fetched key set is available.
    """

    stage = "fetch"
    error_code = 503


class ParseError(AuthError):
    """Raised when a fetched key set document is not a usable JWKS."""

    stage = "parse"
    error_code = 503


class MalformedToken(AuthError):  # noqa: N818
    """Raised when a token cannot be parsed or lacks mandatory claims.

    This occurs when:
    - The compact form does not have three segments
    - The header or payload is not base64url-encoded JSON
    - The header has no ``kid`` or ``alg``
    - ``iss``, ``sub``, ``exp`` or ``iat`` is missing or has the wrong type
    - ``email`` / ``email_verified`` is present with the wrong type
    """

    stage = "parse"


class UnknownKey(AuthError):  # noqa: N818
    """Raised when the token's ``kid`` is not in the current key set."""

    stage = "signature"

    def __init__(self, message: str, kid: str | None = None) -> None:
        super().__init__(message)
        self.kid = kid


class InvalidSignature(AuthError):  # noqa: N818
    """Raised when the signature does not verify against the selected key.

    Also raised when the header algorithm is not allowed or does not match
    the algorithm declared by the key.
    """

    stage = "signature"


class ExpiredToken(AuthError):  # noqa: N818
    """Raised when the token's expiration time (exp claim) has passed.

    Note:
        Treat identically to InvalidSignature from a security perspective. The
        distinction helps with metrics and debugging.
    """

    stage = "claims"


class ImmatureToken(AuthError):  # noqa: N818
    """Raised when ``iat`` or ``nbf`` lies in the future beyond the leeway."""

    stage = "claims"


class InvalidClaim(AuthError):  # noqa: N818
    """Raised when a configured issuer or audience check fails."""

    stage = "claims"


class MissingToken(AuthError):  # noqa: N818
    """Raised when no bearer token is found in an incoming request.

    This occurs when:
    - The Authorization header is missing
    - The Authorization header is not "Bearer <token>"
    """

    stage = "request"
