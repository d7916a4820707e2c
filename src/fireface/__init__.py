"""
Fireface authentication client.

Verifies ID tokens issued by a Fireface identity service against the
service's published JSON Web Key Set, and updates users through its REST API.

High-level flow (per verification)
----------------------------------
1. `AuthClient.verify_id_token(token)` is called.
2. `KeySetCache.ensure_fresh()` returns the cached key set, refreshing it
   first if it is older than the refresh interval (default 5 minutes).
   A failed refresh keeps serving the previous set.
3. `IDTokenVerifier.verify(token, key_set)`:
   - Reads the unverified header to get `kid` and `alg`
   - Selects the key by `kid`
   - Verifies the signature, then `exp`/`iat`/`iss`/`sub`
4. On an unknown `kid` the cache is force-refreshed once (throttled by
   `RefreshGate`) and verification is retried.
5. A `DecodedIdToken` is returned, or a typed `AuthError` is raised.

Example usage
-------------

.. code-block:: python

    from fireface import AuthConfig, create_client

    client = create_client(
        AuthConfig(base_url="https://fireface.example.com", secret_key="sk_..."),
        timeout=5,
    )
    token = client.verify_id_token(raw_id_token)
    print(token.sub, token.email, token.email_verified)
"""

# Application wrapper
from .app import App, AppSettings

# Client
from .client import (
    SDK_VERSION,
    AuthClient,
    AuthClientOption,
    AuthConfig,
    User,
    UserToUpdate,
    create_client,
    with_logger,
    with_verifier,
)

# Errors
from .errors import (
    AuthError,
    ConfigError,
    ExpiredToken,
    FetchError,
    ImmatureToken,
    InvalidClaim,
    InvalidSignature,
    MalformedToken,
    MissingToken,
    ParseError,
    UnknownKey,
)

# Extractors
from .extractors import BearerExtractor

# Flask extension
from .flask_extension import AuthExtension

# Key cache
from .key_cache import CacheEntry, KeySetCache

# Key providers
from .key_providers import JWKSFetcher

# Key sets
from .key_set import KeySet, MalformedKeyPolicy, VerificationKey, parse_key_set

# Logging
from .log import build_logger

# Protocols
from .protocols import Clock, Extractor, KeyFetcher, TokenVerifier

# Refresh gate
from .refresh_gate import RefreshGate

# Verifier
from .verifier import DecodedIdToken, IDTokenVerifier, VerifyOptions

__version__ = SDK_VERSION

__all__ = [
    # Errors
    "AuthError",
    "ConfigError",
    "ExpiredToken",
    "FetchError",
    "ImmatureToken",
    "InvalidClaim",
    "InvalidSignature",
    "MalformedToken",
    "MissingToken",
    "ParseError",
    "UnknownKey",
    # Protocols
    "Clock",
    "Extractor",
    "KeyFetcher",
    "TokenVerifier",
    # Key sets
    "KeySet",
    "MalformedKeyPolicy",
    "VerificationKey",
    "parse_key_set",
    # Key providers
    "JWKSFetcher",
    # Refresh gate
    "RefreshGate",
    # Key cache
    "CacheEntry",
    "KeySetCache",
    # Verifier
    "DecodedIdToken",
    "IDTokenVerifier",
    "VerifyOptions",
    # Client
    "AuthClient",
    "AuthClientOption",
    "AuthConfig",
    "User",
    "UserToUpdate",
    "create_client",
    "with_logger",
    "with_verifier",
    # Application wrapper
    "App",
    "AppSettings",
    # Logging
    "build_logger",
    # Flask extension
    "AuthExtension",
    "BearerExtractor",
    "__version__",
]
