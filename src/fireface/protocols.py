"""Protocol definitions for the auth client.

This module defines structural interfaces using Protocol (PEP 544) for:
- Key set fetching
- Token verification
- Token extraction

Using protocols allows for duck-typing and easier testing/mocking without
requiring explicit inheritance.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from .key_set import KeySet
    from .verifier import DecodedIdToken

# ============================================================================
# Type Aliases
# ============================================================================

type Clock = Callable[[], float]
"""Returns the current time as Unix seconds."""


# ============================================================================
# Core Protocols
# ============================================================================


class KeyFetcher(Protocol):
    """Protocol for retrieving a key set document.

    Implementers fetch and parse the JWKS at ``url`` in one step and never
    retry; retry policy belongs to the cache.
    """

    def fetch(self, url: str, *, timeout: float | None = None) -> KeySet:
        """Fetch the key set published at ``url``.

        Raises:
            FetchError: Network failure, timeout, non-2xx or non-JSON body.
            ParseError: The document is not a usable key set.
        """
        ...


class TokenVerifier(Protocol):
    """Protocol for client-level ID token verification."""

    def verify_id_token(self, token: str) -> DecodedIdToken:
        """Verify a compact ID token and return its decoded claims.

        Raises:
            AuthError: Any verification failure.
        """
        ...


class Extractor(Protocol):
    """Protocol for extracting tokens from HTTP requests."""

    def extract(self) -> str:
        """Extract the raw token from the current Flask request.

        Raises:
            MissingToken: Token not found or improperly formatted.
        """
        ...
